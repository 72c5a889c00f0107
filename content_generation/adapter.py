"""Completion adapters for brand guide, plan and draft generation.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for local runs and tests.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Optional

from app.config import CompletionSettings, get_completion_settings

KIND_BRAND_GUIDE = "brand_guide"
KIND_CONTENT_PLAN = "content_plan"
KIND_CONTENT_DRAFT = "content_draft"


class CompletionClient(ABC):
    """Abstract base for all completion adapters."""

    @abstractmethod
    def generate(self, prompt: str, *, kind: str, timeout: float) -> str:
        """Send a prompt to the model and return the raw response text.

        Args:
            prompt: The fully formatted prompt string.
            kind: Which artefact is requested (brand_guide, content_plan,
                content_draft); used for routing and logging only.
            timeout: Per-call timeout in seconds.

        Returns:
            Raw string response from the model (expected to be JSON).
        """


class OpenAICompletionClient(CompletionClient):
    """Adapter for OpenAI-compatible chat completion APIs.

    Configured for deterministic, non-streaming JSON output.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        max_tokens: int = 2048,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        from openai import OpenAI

        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens

    def generate(self, prompt: str, *, kind: str, timeout: float) -> str:
        # Retries are owned by the caller's bounded backoff loop.
        client = self._client.with_options(timeout=timeout, max_retries=0)
        response = client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.2 if kind == KIND_CONTENT_DRAFT else 0,
            top_p=1,
            max_tokens=self._max_tokens,
            response_format={"type": "json_object"},
            stream=False,
        )
        return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Fixed mock responses used for local runs.
# ---------------------------------------------------------------------------
_MOCK_GUIDE = {
    "brand_name": "Mock Brand",
    "voice_description": "Conversational, warm and confident.",
    "tone_keywords": ["warm", "confident"],
    "personality": ["helpful"],
    "brand_phrases": ["made for you"],
    "banned_phrases": ["guaranteed results"],
    "required_disclaimers": [],
    "required_hashtags": [],
    "audience": "Local customers",
}

_MOCK_PLATFORMS = ("instagram", "facebook", "linkedin", "twitter", "email", "blog")

_ITEM_COUNT_REGEX = re.compile(r"exactly (\d+) items", re.IGNORECASE)
_PLATFORM_REGEX = re.compile(r"^Platform:\s*(\w+)", re.MULTILINE)

_MOCK_BODY = (
    "We're warm, confident and always helpful. This week we're sharing what makes our "
    "work special, made for you by a team that cares about every detail. "
    "Don't miss what's next?"
)


class MockCompletionClient(CompletionClient):
    """Deterministic adapter that returns fixed valid JSON per kind."""

    def generate(self, prompt: str, *, kind: str, timeout: float) -> str:
        if kind == KIND_BRAND_GUIDE:
            return json.dumps(_MOCK_GUIDE)
        if kind == KIND_CONTENT_PLAN:
            match = _ITEM_COUNT_REGEX.search(prompt)
            count = int(match.group(1)) if match else 7
            items = [
                {
                    "day": index + 1,
                    "platform": _MOCK_PLATFORMS[index % len(_MOCK_PLATFORMS)],
                    "content_type": "post",
                    "topic": f"Brand story part {index + 1}",
                }
                for index in range(count)
            ]
            return json.dumps({"weekly_focus": "Introduce the brand", "items": items})
        if kind == KIND_CONTENT_DRAFT:
            match = _PLATFORM_REGEX.search(prompt)
            platform = match.group(1).lower() if match else "instagram"
            hashtag_count = {"instagram": 6, "facebook": 2, "linkedin": 3, "twitter": 1}.get(
                platform, 0
            )
            return json.dumps(
                {
                    "body": _MOCK_BODY,
                    "headline": "Made for you",
                    "cta": "Visit us today for a warm welcome",
                    "hashtags": [f"#brand{index}" for index in range(hashtag_count)],
                }
            )
        raise ValueError(f"Unknown completion kind '{kind}'.")


def build_completion_client(settings: Optional[CompletionSettings] = None) -> CompletionClient:
    """Create the configured completion adapter (``openai`` or ``mock``)."""
    resolved = settings or get_completion_settings()
    if resolved.adapter == "mock":
        return MockCompletionClient()
    if resolved.adapter == "openai":
        return OpenAICompletionClient(
            model=resolved.model,
            max_tokens=resolved.max_tokens,
            api_key=resolved.api_key,
            base_url=resolved.base_url,
        )
    raise ValueError(f"Unsupported LLM_ADAPTER '{resolved.adapter}'. Use 'openai' or 'mock'.")
