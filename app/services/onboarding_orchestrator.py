"""
Event-driven onboarding state machine.

snapshot_created -> guide_generating -> guide_ready -> plan_generating ->
plan_ready -> content_generating -> done, with failed reachable from every
non-terminal stage. The stage is persisted, so recovery after a restart is
`resume(run_id)` from whatever stage was last committed.

A newer crawl-completed event for the same brand supersedes the current
run. Every write a run makes after it starts is conditional on the run
still being current, so results produced by a superseded run are dropped.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
import weakref
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from app import failure_codes
from app.config import OnboardingSettings, get_onboarding_settings
from app.errors import GenerationFailure, ScoringFailure
from app.events import CrawlCompletedEvent
from app.logging_utils import log_event
from bfs.base import BaseFidelityScorer, BFSScore, DraftCandidate
from bfs.policy import DraftDecision, decide
from content_generation.adapter import (
    KIND_BRAND_GUIDE,
    KIND_CONTENT_DRAFT,
    KIND_CONTENT_PLAN,
    CompletionClient,
)
from content_generation.prompt_builder import ContentPromptBuilder
from content_generation.retry import call_with_retry
from content_generation.schema import BrandGuide, ContentPlan, DraftContent, PlannedItem
from content_generation.validator import CompletionValidationError
from db.base import utcnow
from db.models.content_draft import ContentDraft, ContentDraftStatus
from db.models.extraction_result import ExtractionResultRecord
from db.models.onboarding_run import OnboardingRun, OnboardingStage
from db.repositories.content_draft_repository import ContentDraftRepository
from db.repositories.extraction_result_repository import ExtractionResultRepository
from db.repositories.onboarding_repository import OnboardingRepository

logger = logging.getLogger(__name__)


def build_snapshot_payload(record: ExtractionResultRecord) -> dict[str, Any]:
    return {
        "crawl_job_id": str(record.crawl_job_id),
        "source_url": record.source_url,
        "detected_host": record.detected_host,
        "host_confidence": record.host_confidence,
        "host_signals": list(record.host_signals or []),
        "text_blocks": list(record.text_blocks or []),
        "images": list(record.images or []),
        "extraction_errors": list(record.extraction_errors or []),
        "extracted_at": record.extracted_at.isoformat() if record.extracted_at else None,
    }


class OnboardingOrchestrator:
    """
    Drives onboarding runs from a completed crawl to scored drafts.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session],
        completion_client: CompletionClient,
        scorer: BaseFidelityScorer,
        settings: OnboardingSettings | None = None,
        prompt_builder: ContentPromptBuilder | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._client = completion_client
        self._scorer = scorer
        self._settings = settings or get_onboarding_settings()
        self._prompts = prompt_builder or ContentPromptBuilder()
        self._clock = clock
        self._sleep = sleep
        # Entries vanish once no caller holds the lock.
        self._brand_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._brand_locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle_crawl_completed(self, event: CrawlCompletedEvent) -> uuid.UUID | None:
        """
        Start a run for a completed crawl, superseding any current run.

        Returns the run id, or None when the extraction result is missing.
        A duplicate event for the same extraction result returns the existing
        run id without starting anything.
        """

        with self._lock_for(event.brand_id):
            with self._session_factory() as db, db.begin():
                record = ExtractionResultRepository(db).get_result(
                    event.result_ref,
                    brand_id=event.brand_id,
                )
                if record is None:
                    log_event(
                        logger,
                        logging.ERROR,
                        "onboarding_extraction_missing",
                        brand_id=event.brand_id,
                        job_id=event.job_id,
                        result_ref=event.result_ref,
                        code=failure_codes.EXTRACTION_MISSING,
                    )
                    return None

                repository = OnboardingRepository(db)
                existing = repository.find_run_for_extraction(
                    brand_id=event.brand_id,
                    extraction_result_id=record.id,
                )
                if existing is not None:
                    log_event(
                        logger,
                        logging.INFO,
                        "onboarding_duplicate_event_ignored",
                        brand_id=event.brand_id,
                        run_id=existing.id,
                        result_ref=record.id,
                    )
                    return existing.id

                now = self._clock()
                snapshot = repository.create_snapshot(
                    brand_id=event.brand_id,
                    extraction_result_id=record.id,
                    payload=build_snapshot_payload(record),
                    created_at=now,
                )
                run = repository.create_run(
                    brand_id=event.brand_id,
                    snapshot_id=snapshot.id,
                    started_at=now,
                )
                run_id = run.id

                superseded: list[uuid.UUID] = []
                for active in repository.list_active_runs(brand_id=event.brand_id):
                    if active.id == run_id:
                        continue
                    if repository.supersede(
                        run_id=active.id,
                        superseded_by=run_id,
                        reason=failure_codes.reason(
                            failure_codes.SUPERSEDED,
                            f"newer crawl result {record.id} started run {run_id}",
                        ),
                        now=now,
                    ):
                        superseded.append(active.id)

        log_event(
            logger,
            logging.INFO,
            "onboarding_run_started",
            brand_id=event.brand_id,
            run_id=run_id,
            snapshot_id=snapshot.id,
            superseded_runs=superseded,
        )
        self._advance(run_id)
        return run_id

    def resume(self, run_id: uuid.UUID) -> str | None:
        """
        Continue a run from its persisted stage; returns the resulting stage.
        """

        self._advance(run_id)
        run = self._load_run(run_id)
        return run.stage if run is not None else None

    def resume_stalled_runs(self, limit: int = 20) -> int:
        """
        Resume runs stuck in a non-terminal stage past the stale timeout.
        """

        cutoff = self._clock() - timedelta(seconds=self._settings.stale_run_timeout_seconds)
        with self._session_factory() as db:
            stalled = [
                run.id
                for run in OnboardingRepository(db).list_stalled_runs(
                    updated_before=cutoff,
                    limit=limit,
                )
            ]

        for run_id in stalled:
            log_event(logger, logging.WARNING, "onboarding_run_resumed", run_id=run_id)
            try:
                self._advance(run_id)
            except Exception:
                logger.exception("Resuming onboarding run %s failed", run_id)
        return len(stalled)

    # ------------------------------------------------------------------
    # Stage machine
    # ------------------------------------------------------------------

    def _advance(self, run_id: uuid.UUID) -> None:
        while True:
            run = self._load_run(run_id)
            if run is None or run.is_terminal or run.superseded_by is not None:
                return

            if run.stage in (OnboardingStage.SNAPSHOT_CREATED, OnboardingStage.GUIDE_GENERATING):
                progressed = self._run_guide_stage(run)
            elif run.stage in (OnboardingStage.GUIDE_READY, OnboardingStage.PLAN_GENERATING):
                progressed = self._run_plan_stage(run)
            elif run.stage in (OnboardingStage.PLAN_READY, OnboardingStage.CONTENT_GENERATING):
                progressed = self._run_content_stage(run)
            else:
                raise ValueError(f"Unknown onboarding stage '{run.stage}' for run {run_id}")

            if not progressed:
                return

    def _run_guide_stage(self, run: OnboardingRun) -> bool:
        if not self._transition(
            run.id,
            (OnboardingStage.SNAPSHOT_CREATED, OnboardingStage.GUIDE_GENERATING),
            OnboardingStage.GUIDE_GENERATING,
        ):
            return False

        with self._session_factory() as db:
            snapshot = OnboardingRepository(db).get_snapshot(run.snapshot_id)
            payload = dict(snapshot.payload) if snapshot is not None else {}

        prompt = self._prompts.build_guide_prompt(brand_id=run.brand_id, snapshot=payload)
        try:
            guide = self._generate(prompt, kind=KIND_BRAND_GUIDE, model=BrandGuide)
        except GenerationFailure as exc:
            return self._fail_run(
                run,
                OnboardingStage.GUIDE_GENERATING,
                failure_codes.reason(failure_codes.GUIDE_GENERATION_EXHAUSTED, exc.reason),
            )

        return self._transition(
            run.id,
            (OnboardingStage.GUIDE_GENERATING,),
            OnboardingStage.GUIDE_READY,
            brand_guide=guide.model_dump(),
        )

    def _run_plan_stage(self, run: OnboardingRun) -> bool:
        if not self._transition(
            run.id,
            (OnboardingStage.GUIDE_READY, OnboardingStage.PLAN_GENERATING),
            OnboardingStage.PLAN_GENERATING,
        ):
            return False

        guide = BrandGuide.model_validate(run.brand_guide)
        item_count = self._settings.content_items_per_run
        prompt = self._prompts.build_plan_prompt(
            guide=guide,
            item_count=item_count,
            plan_days=self._settings.plan_days,
        )

        def require_enough_items(plan: ContentPlan) -> None:
            if len(plan.items) < item_count:
                raise CompletionValidationError(
                    stage="contract",
                    errors=[f"plan has {len(plan.items)} items, expected {item_count}"],
                    raw_response="",
                )

        try:
            plan = self._generate(
                prompt,
                kind=KIND_CONTENT_PLAN,
                model=ContentPlan,
                contract=require_enough_items,
            )
        except GenerationFailure as exc:
            return self._fail_run(
                run,
                OnboardingStage.PLAN_GENERATING,
                failure_codes.reason(failure_codes.PLAN_GENERATION_EXHAUSTED, exc.reason),
            )

        stored_plan = plan.model_dump()
        stored_plan["items"] = stored_plan["items"][:item_count]
        return self._transition(
            run.id,
            (OnboardingStage.PLAN_GENERATING,),
            OnboardingStage.PLAN_READY,
            content_plan=stored_plan,
        )

    def _run_content_stage(self, run: OnboardingRun) -> bool:
        if run.stage == OnboardingStage.PLAN_READY:
            with self._session_factory() as db, db.begin():
                items = list((run.content_plan or {}).get("items") or [])
                moved = OnboardingRepository(db).transition(
                    run_id=run.id,
                    from_stages=(OnboardingStage.PLAN_READY,),
                    to_stage=OnboardingStage.CONTENT_GENERATING,
                    now=self._clock(),
                    items_queued=len(items),
                    items_completed=0,
                )
                if moved:
                    ContentDraftRepository(db).create_drafts(
                        brand_id=run.brand_id,
                        run_id=run.id,
                        plan_items=items,
                    )
            if not moved:
                return False
            log_event(
                logger,
                logging.INFO,
                "onboarding_drafts_queued",
                brand_id=run.brand_id,
                run_id=run.id,
                items_queued=len(items),
            )

        guide = BrandGuide.model_validate(run.brand_guide)
        weekly_focus = str((run.content_plan or {}).get("weekly_focus") or "")

        with self._session_factory() as db:
            pending = [
                draft.id
                for draft in ContentDraftRepository(db).list_drafts(run_id=run.id)
                if not draft.is_terminal
            ]

        with ThreadPoolExecutor(
            max_workers=self._settings.max_in_flight,
            thread_name_prefix="onboarding-drafts",
        ) as executor:
            futures = {
                executor.submit(
                    self._process_draft, run.id, draft_id, guide, weekly_focus
                ): draft_id
                for draft_id in pending
            }
            for future, draft_id in futures.items():
                try:
                    future.result()
                except Exception:
                    logger.exception("Draft %s of run %s failed unexpectedly", draft_id, run.id)

        return self._finish_if_complete(run)

    def _finish_if_complete(self, run: OnboardingRun) -> bool:
        with self._session_factory() as db, db.begin():
            drafts = ContentDraftRepository(db).list_drafts(run_id=run.id)
            terminal = sum(1 for draft in drafts if draft.is_terminal)
            if terminal < len(drafts):
                return False
            done = OnboardingRepository(db).transition(
                run_id=run.id,
                from_stages=(OnboardingStage.CONTENT_GENERATING,),
                to_stage=OnboardingStage.DONE,
                now=self._clock(),
                items_completed=terminal,
            )

        if done:
            statuses = [draft.status for draft in drafts]
            log_event(
                logger,
                logging.INFO,
                "onboarding_run_done",
                brand_id=run.brand_id,
                run_id=run.id,
                accepted=statuses.count(ContentDraftStatus.ACCEPTED),
                rejected=statuses.count(ContentDraftStatus.REJECTED),
                escalated=statuses.count(ContentDraftStatus.ESCALATED),
            )
        return done

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def _process_draft(
        self,
        run_id: uuid.UUID,
        draft_id: uuid.UUID,
        guide: BrandGuide,
        weekly_focus: str,
    ) -> None:
        """
        Generate, score and decide one draft until it reaches a terminal status.
        """

        while True:
            with self._session_factory() as db:
                draft = ContentDraftRepository(db).get_draft(draft_id)
            if draft is None or draft.is_terminal:
                return

            if draft.status == ContentDraftStatus.GENERATING:
                if not self._generate_and_score(run_id, draft, guide, weekly_focus):
                    return
                continue

            if draft.status == ContentDraftStatus.SCORED:
                if not self._apply_decision(run_id, draft):
                    return
                continue

            return

    def _generate_and_score(
        self,
        run_id: uuid.UUID,
        draft: ContentDraft,
        guide: BrandGuide,
        weekly_focus: str,
    ) -> bool:
        item = PlannedItem.model_validate(draft.plan_item)
        feedback = None
        if draft.retry_count:
            feedback = list((draft.bfs_breakdown or {}).get("issues") or [])
        prompt = self._prompts.build_draft_prompt(
            guide=guide,
            item=item,
            weekly_focus=weekly_focus,
            feedback=feedback,
        )

        try:
            content = self._generate(prompt, kind=KIND_CONTENT_DRAFT, model=DraftContent)
        except GenerationFailure as exc:
            self._update_draft_if_current(
                run_id,
                draft,
                status=ContentDraftStatus.ESCALATED,
                error=failure_codes.reason(failure_codes.DRAFT_GENERATION_EXHAUSTED, exc.reason),
            )
            log_event(
                logger,
                logging.WARNING,
                "onboarding_draft_escalated",
                run_id=run_id,
                draft_id=draft.id,
                reason=failure_codes.DRAFT_GENERATION_EXHAUSTED,
            )
            return False

        candidate = DraftCandidate(
            platform=item.platform,
            body=content.body,
            headline=content.headline,
            cta=content.cta,
            hashtags=tuple(content.hashtags),
        )
        error: str | None = None
        try:
            score: BFSScore | None = self._scorer.score(candidate, guide)
            breakdown = score.to_dict()
        except ScoringFailure as exc:
            score = None
            error = failure_codes.reason(failure_codes.SCORING_FAILED, str(exc))
            breakdown = {
                "overall": None,
                "dimensions": {},
                "passed": False,
                "issues": [str(exc)],
                "failed_dimension": exc.dimension,
            }

        return self._update_draft_if_current(
            run_id,
            draft,
            status=ContentDraftStatus.SCORED,
            body=content.body,
            headline=content.headline,
            cta=content.cta,
            hashtags=list(content.hashtags),
            bfs_score=score.overall if score is not None else None,
            bfs_breakdown=breakdown,
            error=error,
        )

    def _apply_decision(self, run_id: uuid.UUID, draft: ContentDraft) -> bool:
        breakdown = draft.bfs_breakdown or {}
        passed = bool(breakdown.get("passed")) and draft.bfs_score is not None
        score = (
            BFSScore(
                overall=float(draft.bfs_score),
                dimensions=dict(breakdown.get("dimensions") or {}),
                passed=passed,
                issues=list(breakdown.get("issues") or []),
            )
            if draft.bfs_score is not None
            else None
        )
        decision = decide(score, draft.retry_count, self._settings.draft_max_retries)

        if decision is DraftDecision.ACCEPT:
            values: dict[str, Any] = {"status": ContentDraftStatus.ACCEPTED}
        elif decision is DraftDecision.REGENERATE:
            values = {
                "status": ContentDraftStatus.GENERATING,
                "retry_count": draft.retry_count + 1,
            }
        else:
            code = failure_codes.BFS_RETRIES_EXHAUSTED
            if score is None:
                code = failure_codes.SCORING_FAILED
            values = {
                "status": ContentDraftStatus.ESCALATED,
                "error": failure_codes.reason(
                    code,
                    f"not accepted after {draft.retry_count} regeneration(s); "
                    f"last score {draft.bfs_score}",
                ),
            }

        applied = self._update_draft_if_current(run_id, draft, **values)
        log_event(
            logger,
            logging.INFO,
            "onboarding_draft_decided",
            run_id=run_id,
            draft_id=draft.id,
            decision=decision.value,
            bfs_score=draft.bfs_score,
            retry_count=draft.retry_count,
            applied=applied,
        )
        return applied and decision is DraftDecision.REGENERATE

    def _update_draft_if_current(
        self,
        run_id: uuid.UUID,
        draft: ContentDraft,
        **values: Any,
    ) -> bool:
        """
        Conditionally update a draft, only while its run is still current.

        The run row is touched first in the same transaction; a superseded or
        finished run makes the touch a no-op and the draft write is skipped.
        """

        with self._session_factory() as db, db.begin():
            now = self._clock()
            runs = OnboardingRepository(db)
            if not runs.touch(run_id=run_id, now=now):
                log_event(
                    logger,
                    logging.INFO,
                    "onboarding_stale_draft_result_discarded",
                    run_id=run_id,
                    draft_id=draft.id,
                )
                return False

            drafts = ContentDraftRepository(db)
            updated = drafts.update_draft(
                draft_id=draft.id,
                expected_status=draft.status,
                expected_retry_count=draft.retry_count,
                updated_at=now,
                **values,
            )
            if updated and values.get("status") in ContentDraftStatus.TERMINAL:
                runs.touch(
                    run_id=run_id,
                    now=now,
                    items_completed=drafts.count_terminal(run_id=run_id),
                )
            return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _generate(self, prompt: str, **kwargs: Any) -> Any:
        return call_with_retry(
            self._client,
            prompt,
            max_attempts=self._settings.generation_max_attempts,
            timeout=self._settings.completion_timeout_seconds,
            backoff_initial_seconds=self._settings.backoff_initial_seconds,
            backoff_multiplier=self._settings.backoff_multiplier,
            sleep=self._sleep,
            **kwargs,
        )

    def _transition(
        self,
        run_id: uuid.UUID,
        from_stages: tuple[str, ...],
        to_stage: str,
        **values: Any,
    ) -> bool:
        with self._session_factory() as db, db.begin():
            moved = OnboardingRepository(db).transition(
                run_id=run_id,
                from_stages=from_stages,
                to_stage=to_stage,
                now=self._clock(),
                **values,
            )
        log_event(
            logger,
            logging.INFO if moved else logging.WARNING,
            "onboarding_stage_changed" if moved else "onboarding_stale_transition_discarded",
            run_id=run_id,
            from_stages=list(from_stages),
            to_stage=to_stage,
        )
        return moved

    def _fail_run(self, run: OnboardingRun, from_stage: str, reason: str) -> bool:
        self._transition(run.id, (from_stage,), OnboardingStage.FAILED, error=reason)
        log_event(
            logger,
            logging.ERROR,
            "onboarding_run_failed",
            brand_id=run.brand_id,
            run_id=run.id,
            stage=from_stage,
            error=reason,
        )
        return False

    def _load_run(self, run_id: uuid.UUID) -> OnboardingRun | None:
        with self._session_factory() as db:
            return OnboardingRepository(db).get_run(run_id)

    def _lock_for(self, brand_id: str) -> threading.RLock:
        with self._brand_locks_guard:
            lock = self._brand_locks.get(brand_id)
            if lock is None:
                lock = threading.RLock()
                self._brand_locks[brand_id] = lock
            return lock
