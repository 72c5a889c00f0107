"""
tests/test_onboarding_orchestrator.py

Onboarding state machine tests on SQLite with a scripted completion client.

Coverage
--------
- Happy path: guide -> plan -> drafts scored and accepted -> done
- Plan longer than requested is truncated; shorter counts as a failed attempt
- Guide generation exhaustion fails the run before any plan call
- Newer crawl result supersedes an in-flight run; stale results are dropped
- BFS rejection regenerates with feedback, then escalates after max retries
- Draft generation exhaustion escalates the draft
- Duplicate events and missing extraction results
- Per-brand locks are dropped once no run holds them
- Stalled runs resume from their persisted stage
"""

from __future__ import annotations

import dataclasses
import gc
import json
import uuid

import pytest

from app.events import CrawlCompletedEvent
from app.services.onboarding_orchestrator import OnboardingOrchestrator
from app.services.pipeline import build_scorer
from content_generation.adapter import (
    KIND_BRAND_GUIDE,
    KIND_CONTENT_DRAFT,
    KIND_CONTENT_PLAN,
    MockCompletionClient,
)
from db.models.content_draft import ContentDraftStatus
from db.models.onboarding_run import OnboardingStage
from db.repositories.content_draft_repository import ContentDraftRepository
from db.repositories.crawl_job_repository import CrawlJobRepository
from db.repositories.extraction_result_repository import ExtractionResultRepository
from db.repositories.onboarding_repository import OnboardingRepository

BRAND = "brand-1"


def _plan_json(count: int) -> str:
    platforms = ("instagram", "facebook", "linkedin", "twitter", "email", "blog")
    return json.dumps(
        {
            "weekly_focus": "Introduce the studio",
            "items": [
                {
                    "day": index + 1,
                    "platform": platforms[index % len(platforms)],
                    "content_type": "post",
                    "topic": f"Topic {index + 1}",
                }
                for index in range(count)
            ],
        }
    )


@pytest.fixture()
def make_orchestrator(
    session_factory, completion_client, onboarding_settings, bfs_settings, clock, no_sleep
):
    def _make(**setting_overrides) -> OnboardingOrchestrator:
        return OnboardingOrchestrator(
            session_factory=session_factory,
            completion_client=completion_client,
            scorer=build_scorer(bfs_settings),
            settings=dataclasses.replace(onboarding_settings, **setting_overrides),
            clock=clock,
            sleep=no_sleep,
        )

    return _make


@pytest.fixture()
def orchestrator(make_orchestrator) -> OnboardingOrchestrator:
    return make_orchestrator()


@pytest.fixture()
def crawl_event(session_factory, clock):
    """Persist a succeeded crawl job with an extraction result and return its event."""

    def _make(brand_id: str = BRAND, url: str = "https://harborandpine.example/") -> CrawlCompletedEvent:
        with session_factory() as db, db.begin():
            job = CrawlJobRepository(db).create_job(
                brand_id=brand_id,
                target_url=url,
                max_attempts=3,
                created_at=clock(),
            )
            record = ExtractionResultRepository(db).create_result(
                brand_id=brand_id,
                crawl_job_id=job.id,
                source_url=url,
                text_blocks=[{"kind": "h1", "text": "Harbor & Pine Studio"}],
                images=[{"url": "https://cdn.example/mug.jpg", "alt_text": "Mug"}],
                detected_host="squarespace",
                host_confidence=0.75,
                host_signals=["meta:Squarespace"],
                extraction_errors=[],
                extracted_at=clock(),
            )
            event = CrawlCompletedEvent(job_id=job.id, brand_id=brand_id, result_ref=record.id)
        clock.advance(1)
        return event

    return _make


def _run(session_factory, run_id):
    with session_factory() as db:
        return OnboardingRepository(db).get_run(run_id)


def _drafts(session_factory, run_id):
    with session_factory() as db:
        return ContentDraftRepository(db).list_drafts(run_id=run_id)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestHappyPath:
    def test_run_reaches_done(self, orchestrator, crawl_event, session_factory, completion_client) -> None:
        run_id = orchestrator.handle_crawl_completed(crawl_event())

        run = _run(session_factory, run_id)
        assert run.stage == OnboardingStage.DONE
        assert run.brand_guide["brand_name"] == "Mock Brand"
        assert len(run.content_plan["items"]) == 3
        assert run.items_queued == 3
        assert run.items_completed == 3
        assert run.completed_at is not None

        drafts = _drafts(session_factory, run_id)
        assert [draft.status for draft in drafts] == [ContentDraftStatus.ACCEPTED] * 3
        assert [draft.platform for draft in drafts] == ["instagram", "facebook", "linkedin"]
        assert all(draft.bfs_score >= 80.0 for draft in drafts)
        assert all(draft.bfs_breakdown["passed"] for draft in drafts)

        assert len(completion_client.calls_for(KIND_BRAND_GUIDE)) == 1
        assert len(completion_client.calls_for(KIND_CONTENT_PLAN)) == 1
        assert len(completion_client.calls_for(KIND_CONTENT_DRAFT)) == 3

    def test_guide_prompt_uses_snapshot(self, orchestrator, crawl_event, completion_client) -> None:
        orchestrator.handle_crawl_completed(crawl_event())
        prompt = completion_client.calls_for(KIND_BRAND_GUIDE)[0]
        assert "Harbor & Pine Studio" in prompt
        assert "Brand ID: brand-1" in prompt

    def test_long_plan_is_truncated(self, orchestrator, crawl_event, session_factory, completion_client) -> None:
        completion_client.script(KIND_CONTENT_PLAN, _plan_json(6))

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        assert len(_run(session_factory, run_id).content_plan["items"]) == 3
        assert len(_drafts(session_factory, run_id)) == 3

    def test_short_plan_is_retried(
        self, orchestrator, crawl_event, session_factory, completion_client, no_sleep
    ) -> None:
        completion_client.script(KIND_CONTENT_PLAN, _plan_json(2))

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        assert _run(session_factory, run_id).stage == OnboardingStage.DONE
        assert len(completion_client.calls_for(KIND_CONTENT_PLAN)) == 2
        assert no_sleep.calls == [1.0]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestGenerationFailures:
    def test_guide_exhaustion_fails_run(
        self, orchestrator, crawl_event, session_factory, completion_client, no_sleep
    ) -> None:
        completion_client.script(KIND_BRAND_GUIDE, "nope", TimeoutError("slow"), "{}")

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        run = _run(session_factory, run_id)
        assert run.stage == OnboardingStage.FAILED
        assert run.error.startswith("guide_generation_exhausted")
        assert run.brand_guide is None
        assert run.superseded_by is None
        assert completion_client.calls_for(KIND_CONTENT_PLAN) == []
        assert no_sleep.calls == [1.0, 2.0]

    def test_plan_exhaustion_fails_run(self, orchestrator, crawl_event, session_factory, completion_client) -> None:
        completion_client.script(KIND_CONTENT_PLAN, _plan_json(1), _plan_json(1), _plan_json(1))

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        run = _run(session_factory, run_id)
        assert run.stage == OnboardingStage.FAILED
        assert run.error.startswith("plan_generation_exhausted: contract")
        assert _drafts(session_factory, run_id) == []

    def test_draft_exhaustion_escalates(
        self, make_orchestrator, crawl_event, session_factory, completion_client
    ) -> None:
        orchestrator = make_orchestrator(content_items_per_run=1)
        completion_client.script(KIND_CONTENT_DRAFT, "bad", "bad", "bad")

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        (draft,) = _drafts(session_factory, run_id)
        assert draft.status == ContentDraftStatus.ESCALATED
        assert draft.error.startswith("draft_generation_exhausted")
        assert _run(session_factory, run_id).stage == OnboardingStage.DONE

    def test_missing_extraction_returns_none(self, orchestrator, session_factory) -> None:
        event = CrawlCompletedEvent(job_id=uuid.uuid4(), brand_id=BRAND, result_ref=uuid.uuid4())
        assert orchestrator.handle_crawl_completed(event) is None
        with session_factory() as db:
            assert OnboardingRepository(db).list_active_runs(brand_id=BRAND) == []

    def test_result_of_other_brand_is_ignored(self, orchestrator, crawl_event) -> None:
        event = crawl_event(brand_id="brand-2")
        spoofed = CrawlCompletedEvent(job_id=event.job_id, brand_id=BRAND, result_ref=event.result_ref)
        assert orchestrator.handle_crawl_completed(spoofed) is None


# ---------------------------------------------------------------------------
# BFS policy
# ---------------------------------------------------------------------------


class TestDraftScoring:
    def test_rejected_draft_escalates_after_retries(
        self, make_orchestrator, crawl_event, session_factory, completion_client, make_draft_json
    ) -> None:
        orchestrator = make_orchestrator(content_items_per_run=1)
        off_brand = make_draft_json(body="Guaranteed results or your money back!!")
        completion_client.script(KIND_CONTENT_DRAFT, off_brand, off_brand, off_brand)

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        (draft,) = _drafts(session_factory, run_id)
        assert draft.status == ContentDraftStatus.ESCALATED
        assert draft.retry_count == 2
        assert draft.bfs_breakdown["passed"] is False
        assert draft.bfs_breakdown["dimensions"]["compliance"] == 0.0
        assert draft.error.startswith("bfs_retries_exhausted")

        prompts = completion_client.calls_for(KIND_CONTENT_DRAFT)
        assert len(prompts) == 3
        assert "Fix these issues" not in prompts[0]
        assert "Fix these issues" in prompts[1]

        run = _run(session_factory, run_id)
        assert run.stage == OnboardingStage.DONE
        assert run.items_completed == 1

    def test_regenerated_draft_can_be_accepted(
        self, make_orchestrator, crawl_event, session_factory, completion_client, make_draft_json
    ) -> None:
        orchestrator = make_orchestrator(content_items_per_run=1)
        completion_client.script(
            KIND_CONTENT_DRAFT,
            make_draft_json(body="Guaranteed results, always."),
        )

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        (draft,) = _drafts(session_factory, run_id)
        assert draft.status == ContentDraftStatus.ACCEPTED
        assert draft.retry_count == 1
        assert draft.error is None

    def test_zero_retries_escalates_first_rejection(
        self, make_orchestrator, crawl_event, session_factory, completion_client, make_draft_json
    ) -> None:
        orchestrator = make_orchestrator(content_items_per_run=1, draft_max_retries=0)
        completion_client.script(KIND_CONTENT_DRAFT, make_draft_json(body="Guaranteed results."))

        run_id = orchestrator.handle_crawl_completed(crawl_event())

        (draft,) = _drafts(session_factory, run_id)
        assert draft.status == ContentDraftStatus.ESCALATED
        assert len(completion_client.calls_for(KIND_CONTENT_DRAFT)) == 1


# ---------------------------------------------------------------------------
# Supersession and idempotency
# ---------------------------------------------------------------------------


class TestSupersession:
    def test_newer_result_supersedes_in_flight_run(
        self, orchestrator, crawl_event, session_factory, completion_client
    ) -> None:
        first_event = crawl_event()
        second_event = crawl_event()
        started: dict[str, uuid.UUID] = {}

        def plan_while_new_crawl_lands(prompt: str) -> str:
            started["second"] = orchestrator.handle_crawl_completed(second_event)
            return MockCompletionClient().generate(prompt, kind=KIND_CONTENT_PLAN, timeout=1)

        completion_client.script(KIND_CONTENT_PLAN, plan_while_new_crawl_lands)

        first_run_id = orchestrator.handle_crawl_completed(first_event)
        second_run_id = started["second"]

        first = _run(session_factory, first_run_id)
        assert first.stage == OnboardingStage.FAILED
        assert first.superseded_by == second_run_id
        assert first.error.startswith("superseded")
        assert first.content_plan is None
        assert _drafts(session_factory, first_run_id) == []

        second = _run(session_factory, second_run_id)
        assert second.stage == OnboardingStage.DONE
        assert second.items_completed == 3

    def test_at_most_one_active_run_per_brand(
        self, orchestrator, crawl_event, session_factory, completion_client
    ) -> None:
        first_event = crawl_event()
        second_event = crawl_event()
        active_counts: list[int] = []

        def land_second_crawl(prompt: str) -> str:
            orchestrator.handle_crawl_completed(second_event)
            return MockCompletionClient().generate(prompt, kind=KIND_BRAND_GUIDE, timeout=1)

        def count_active(prompt: str) -> str:
            with session_factory() as db:
                active_counts.append(len(OnboardingRepository(db).list_active_runs(brand_id=BRAND)))
            return MockCompletionClient().generate(prompt, kind=KIND_BRAND_GUIDE, timeout=1)

        completion_client.script(KIND_BRAND_GUIDE, land_second_crawl, count_active)
        first_run_id = orchestrator.handle_crawl_completed(first_event)

        assert active_counts == [1]
        assert _run(session_factory, first_run_id).brand_guide is None

    def test_duplicate_event_returns_existing_run(
        self, orchestrator, crawl_event, session_factory, completion_client
    ) -> None:
        event = crawl_event()

        first = orchestrator.handle_crawl_completed(event)
        second = orchestrator.handle_crawl_completed(event)

        assert first == second
        assert len(completion_client.calls_for(KIND_BRAND_GUIDE)) == 1
        assert _run(session_factory, first).stage == OnboardingStage.DONE

    def test_other_brands_are_untouched(self, orchestrator, crawl_event, session_factory) -> None:
        first = orchestrator.handle_crawl_completed(crawl_event(brand_id="brand-1"))
        second = orchestrator.handle_crawl_completed(crawl_event(brand_id="brand-2"))

        assert _run(session_factory, first).superseded_by is None
        assert _run(session_factory, second).stage == OnboardingStage.DONE

    def test_brand_locks_do_not_accumulate(self, orchestrator, crawl_event) -> None:
        held = orchestrator._lock_for("brand-1")
        assert orchestrator._lock_for("brand-1") is held

        for index in range(5):
            orchestrator.handle_crawl_completed(crawl_event(brand_id=f"brand-{index + 2}"))
        gc.collect()

        assert list(orchestrator._brand_locks.keys()) == ["brand-1"]
        del held
        gc.collect()
        assert len(orchestrator._brand_locks) == 0


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


class TestResume:
    def _create_pending_run(self, session_factory, crawl_event, clock) -> uuid.UUID:
        event = crawl_event()
        with session_factory() as db, db.begin():
            repository = OnboardingRepository(db)
            snapshot = repository.create_snapshot(
                brand_id=BRAND,
                extraction_result_id=event.result_ref,
                payload={"source_url": "https://harborandpine.example/", "text_blocks": []},
                created_at=clock(),
            )
            run = repository.create_run(brand_id=BRAND, snapshot_id=snapshot.id, started_at=clock())
            return run.id

    def test_resume_from_persisted_stage(self, orchestrator, crawl_event, session_factory, clock) -> None:
        run_id = self._create_pending_run(session_factory, crawl_event, clock)

        assert orchestrator.resume(run_id) == OnboardingStage.DONE

    def test_resume_stalled_runs(self, orchestrator, crawl_event, session_factory, clock) -> None:
        run_id = self._create_pending_run(session_factory, crawl_event, clock)

        clock.advance(60)
        assert orchestrator.resume_stalled_runs() == 0
        assert _run(session_factory, run_id).stage == OnboardingStage.SNAPSHOT_CREATED

        clock.advance(900)
        assert orchestrator.resume_stalled_runs() == 1
        assert _run(session_factory, run_id).stage == OnboardingStage.DONE

    def test_resume_terminal_run_is_noop(self, orchestrator, crawl_event, completion_client) -> None:
        run_id = orchestrator.handle_crawl_completed(crawl_event())
        calls = len(completion_client.calls)

        assert orchestrator.resume(run_id) == OnboardingStage.DONE
        assert len(completion_client.calls) == calls
