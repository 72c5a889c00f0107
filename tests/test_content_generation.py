"""
tests/test_content_generation.py

Completion output validation, bounded retry and prompt construction.

Coverage
--------
- Markdown fences stripped before JSON parsing
- json_parse / schema failure stages
- Output contracts normalise platforms and hashtags
- call_with_retry: success after failures, exponential delays, GenerationFailure
- Contract checks count as a failed attempt
- Mock completion client answers every kind deterministically
- Prompts embed the brand material and the requested item count
"""

from __future__ import annotations

import json

import pytest

from app.config import CompletionSettings
from app.errors import GenerationFailure
from content_generation.adapter import (
    KIND_BRAND_GUIDE,
    KIND_CONTENT_DRAFT,
    KIND_CONTENT_PLAN,
    MockCompletionClient,
    build_completion_client,
)
from content_generation.prompt_builder import ContentPromptBuilder
from content_generation.retry import backoff_delays, call_with_retry
from content_generation.schema import BrandGuide, ContentPlan, DraftContent, PlannedItem
from content_generation.validator import CompletionValidationError, validate_completion

GUIDE_JSON = json.dumps(
    {
        "brand_name": "Harbor & Pine",
        "voice_description": "Warm and conversational",
        "tone_keywords": ["warm", " ", "handmade"],
        "unexpected": "ignored",
    }
)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class TestValidateCompletion:
    def test_plain_json(self) -> None:
        guide = validate_completion(GUIDE_JSON, BrandGuide)
        assert guide.brand_name == "Harbor & Pine"
        assert guide.tone_keywords == ["warm", "handmade"]

    def test_markdown_fences(self) -> None:
        guide = validate_completion(f"```json\n{GUIDE_JSON}\n```", BrandGuide)
        assert guide.voice_description == "Warm and conversational"

    def test_invalid_json(self) -> None:
        with pytest.raises(CompletionValidationError) as excinfo:
            validate_completion("{not json", BrandGuide)
        assert excinfo.value.stage == "json_parse"
        assert excinfo.value.raw_response == "{not json"

    def test_top_level_must_be_object(self) -> None:
        with pytest.raises(CompletionValidationError) as excinfo:
            validate_completion("[1, 2]", BrandGuide)
        assert excinfo.value.stage == "schema"

    def test_schema_violation_lists_fields(self) -> None:
        with pytest.raises(CompletionValidationError) as excinfo:
            validate_completion(json.dumps({"brand_name": "X"}), BrandGuide)
        assert excinfo.value.stage == "schema"
        assert any(error.startswith("voice_description") for error in excinfo.value.errors)

    def test_plan_platform_normalised(self) -> None:
        raw = json.dumps(
            {
                "weekly_focus": "Launch",
                "items": [{"day": 1, "platform": " Instagram ", "content_type": "post", "topic": "Hi"}],
            }
        )
        plan = validate_completion(raw, ContentPlan)
        assert plan.items[0].platform == "instagram"

    def test_plan_rejects_unknown_platform(self) -> None:
        raw = json.dumps(
            {
                "weekly_focus": "Launch",
                "items": [{"day": 1, "platform": "myspace", "content_type": "post", "topic": "Hi"}],
            }
        )
        with pytest.raises(CompletionValidationError):
            validate_completion(raw, ContentPlan)

    def test_draft_hashtags_prefixed(self, make_draft_json) -> None:
        draft = validate_completion(
            make_draft_json(body="Fresh batch", hashtags=["local", "#Clay", " "]),
            DraftContent,
        )
        assert draft.hashtags == ["#local", "#Clay"]


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def _retry(client, *, kind=KIND_BRAND_GUIDE, model=BrandGuide, sleep, **overrides):
    options = {
        "kind": kind,
        "model": model,
        "max_attempts": 3,
        "timeout": 5.0,
        "backoff_initial_seconds": 1.0,
        "backoff_multiplier": 2.0,
        "sleep": sleep,
    }
    options.update(overrides)
    return call_with_retry(client, "prompt", **options)


class TestCallWithRetry:
    def test_backoff_delays(self) -> None:
        assert backoff_delays(3, 1.0, 2.0) == [1.0, 2.0]
        assert backoff_delays(1, 1.0, 2.0) == []

    def test_first_attempt_success(self, completion_client, no_sleep) -> None:
        completion_client.script(KIND_BRAND_GUIDE, GUIDE_JSON)
        guide = _retry(completion_client, sleep=no_sleep)
        assert guide.brand_name == "Harbor & Pine"
        assert no_sleep.calls == []

    def test_recovers_after_failures(self, completion_client, no_sleep) -> None:
        completion_client.script(KIND_BRAND_GUIDE, TimeoutError("slow"), "not json", GUIDE_JSON)

        guide = _retry(completion_client, sleep=no_sleep)

        assert guide.brand_name == "Harbor & Pine"
        assert len(completion_client.calls_for(KIND_BRAND_GUIDE)) == 3
        assert no_sleep.calls == [1.0, 2.0]

    def test_exhausted_raises_generation_failure(self, completion_client, no_sleep) -> None:
        completion_client.script(KIND_BRAND_GUIDE, "x", "y", "{}")

        with pytest.raises(GenerationFailure) as excinfo:
            _retry(completion_client, sleep=no_sleep)

        assert excinfo.value.kind == KIND_BRAND_GUIDE
        assert excinfo.value.attempts == 3
        assert excinfo.value.reason.startswith("schema:")
        assert len(completion_client.calls) == 3
        assert no_sleep.calls == [1.0, 2.0]

    def test_contract_failure_counts_as_attempt(self, completion_client, no_sleep) -> None:
        def at_least_three(plan: ContentPlan) -> None:
            if len(plan.items) < 3:
                raise CompletionValidationError("contract", ["too few items"], "")

        short = json.dumps(
            {
                "weekly_focus": "Launch",
                "items": [{"day": 1, "platform": "blog", "content_type": "post", "topic": "Hi"}],
            }
        )
        completion_client.script(KIND_CONTENT_PLAN, short, short, short)

        with pytest.raises(GenerationFailure) as excinfo:
            _retry(
                completion_client,
                kind=KIND_CONTENT_PLAN,
                model=ContentPlan,
                sleep=no_sleep,
                contract=at_least_three,
            )
        assert excinfo.value.reason == "contract: too few items"


# ---------------------------------------------------------------------------
# Adapters and prompts
# ---------------------------------------------------------------------------


class TestMockCompletionClient:
    def test_guide_is_valid(self) -> None:
        raw = MockCompletionClient().generate("anything", kind=KIND_BRAND_GUIDE, timeout=1)
        assert validate_completion(raw, BrandGuide).banned_phrases == ["guaranteed results"]

    def test_plan_honours_item_count(self) -> None:
        prompt = ContentPromptBuilder().build_plan_prompt(
            guide=validate_completion(
                MockCompletionClient().generate("", kind=KIND_BRAND_GUIDE, timeout=1),
                BrandGuide,
            ),
            item_count=5,
            plan_days=7,
        )
        plan = validate_completion(
            MockCompletionClient().generate(prompt, kind=KIND_CONTENT_PLAN, timeout=1),
            ContentPlan,
        )
        assert len(plan.items) == 5
        assert [item.platform for item in plan.items[:2]] == ["instagram", "facebook"]

    def test_draft_hashtags_follow_platform(self) -> None:
        raw = MockCompletionClient().generate(
            "intro\nPlatform: twitter\nTopic: x",
            kind=KIND_CONTENT_DRAFT,
            timeout=1,
        )
        assert len(validate_completion(raw, DraftContent).hashtags) == 1

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            MockCompletionClient().generate("", kind="poem", timeout=1)

    def test_build_completion_client(self) -> None:
        client = build_completion_client(CompletionSettings(adapter="mock"))
        assert isinstance(client, MockCompletionClient)
        with pytest.raises(ValueError):
            build_completion_client(CompletionSettings(adapter="carrier-pigeon"))


class TestContentPromptBuilder:
    def test_guide_prompt_caps_material(self) -> None:
        snapshot = {
            "source_url": "https://harborandpine.example/",
            "detected_host": "squarespace",
            "text_blocks": [{"kind": "p", "text": f"block {index}"} for index in range(60)],
            "images": [{"url": f"https://cdn.example/{index}.jpg", "alt_text": None} for index in range(20)],
        }
        prompt = ContentPromptBuilder().build_guide_prompt(brand_id="brand-1", snapshot=snapshot)
        assert "Brand ID: brand-1" in prompt
        assert "block 39" in prompt
        assert "block 40" not in prompt
        assert "https://cdn.example/11.jpg" in prompt
        assert "https://cdn.example/12.jpg" not in prompt

    def test_draft_prompt_includes_feedback(self) -> None:
        guide = BrandGuide(
            brand_name="Harbor & Pine",
            voice_description="Warm",
            tone_keywords=["warm"],
        )
        item = PlannedItem(day=2, platform="linkedin", content_type="post", topic="Studio tour")
        builder = ContentPromptBuilder()

        first = builder.build_draft_prompt(guide=guide, item=item, weekly_focus="Launch")
        retry = builder.build_draft_prompt(
            guide=guide,
            item=item,
            weekly_focus="Launch",
            feedback=["Tone does not match brand personality"],
        )

        assert "Platform: linkedin" in first
        assert "Fix these issues" not in first
        assert "Tone does not match brand personality" in retry
