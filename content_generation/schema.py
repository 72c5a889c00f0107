"""Structured output contracts for brand guide, plan and draft generation."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Platform = Literal["instagram", "facebook", "linkedin", "twitter", "email", "blog"]

PLATFORMS: tuple = ("instagram", "facebook", "linkedin", "twitter", "email", "blog")


class _CompletionModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )


class BrandGuide(_CompletionModel):
    """Brand voice and guardrails derived from a brand snapshot."""

    brand_name: str = Field(min_length=1)
    voice_description: str = Field(min_length=1)
    tone_keywords: List[str] = Field(min_length=1)
    personality: List[str] = Field(default_factory=list)
    brand_phrases: List[str] = Field(default_factory=list)
    banned_phrases: List[str] = Field(default_factory=list)
    required_disclaimers: List[str] = Field(default_factory=list)
    required_hashtags: List[str] = Field(default_factory=list)
    audience: str = ""

    @field_validator(
        "tone_keywords",
        "personality",
        "brand_phrases",
        "banned_phrases",
        "required_disclaimers",
        "required_hashtags",
    )
    @classmethod
    def _drop_blank_entries(cls, values: List[str]) -> List[str]:
        return [value.strip() for value in values if value and value.strip()]


class PlannedItem(_CompletionModel):
    """One slot of the onboarding content plan."""

    day: int = Field(ge=1, le=31)
    platform: Platform
    content_type: str = Field(min_length=1)
    topic: str = Field(min_length=1)

    @field_validator("platform", mode="before")
    @classmethod
    def _lower_platform(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class ContentPlan(_CompletionModel):
    """Multi-day plan keyed to a brand guide."""

    weekly_focus: str = Field(min_length=1)
    items: List[PlannedItem] = Field(min_length=1)


class DraftContent(_CompletionModel):
    """Generated copy for one planned item."""

    body: str = Field(min_length=1)
    headline: Optional[str] = None
    cta: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)

    @field_validator("hashtags")
    @classmethod
    def _normalize_hashtags(cls, values: List[str]) -> List[str]:
        normalized = []
        for value in values:
            tag = value.strip()
            if not tag:
                continue
            normalized.append(tag if tag.startswith("#") else f"#{tag}")
        return normalized
