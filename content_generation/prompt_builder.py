"""Structured prompt builder for onboarding content generation."""

import json
from typing import Any, Dict, List, Optional

from content_generation.schema import PLATFORMS, BrandGuide, ContentPlan, DraftContent, PlannedItem

_SYSTEM_INSTRUCTIONS = """\
You are a brand strategist writing for a small business.

STRICT RULES:
- Use ONLY the brand material provided below. Do not invent facts, prices or offers.
- Return strictly valid JSON matching the schema defined below.
- Do NOT include any text outside the JSON object.
- Do NOT wrap the JSON in markdown code fences.
"""

_SECTION_TEMPLATE = """\
## {title}
```json
{data}
```
"""

# Copy sent to the model is capped to keep prompts bounded.
MAX_TEXT_BLOCKS = 40
MAX_IMAGES = 12


def _section(title: str, data: Any) -> str:
    return _SECTION_TEMPLATE.format(
        title=title,
        data=json.dumps(data, indent=2, sort_keys=True, default=str),
    )


def _schema(model: Any) -> str:
    return _section("Output schema", model.model_json_schema())


class ContentPromptBuilder:
    """Builds deterministic prompts for the guide, the plan and each draft."""

    def build_guide_prompt(self, *, brand_id: str, snapshot: Dict[str, Any]) -> str:
        """Prompt for a brand guide from a frozen brand snapshot payload."""
        material = {
            "source_url": snapshot.get("source_url"),
            "detected_host": snapshot.get("detected_host"),
            "text_blocks": list(snapshot.get("text_blocks") or [])[:MAX_TEXT_BLOCKS],
            "images": [
                {"url": image.get("url"), "alt_text": image.get("alt_text")}
                for image in list(snapshot.get("images") or [])[:MAX_IMAGES]
            ],
        }
        return "\n".join(
            [
                _SYSTEM_INSTRUCTIONS,
                f"Brand ID: {brand_id}",
                "Task: derive the brand guide (voice, tone keywords, phrases to use and avoid).",
                "",
                _section("Website material", material),
                _schema(BrandGuide),
            ]
        )

    def build_plan_prompt(
        self,
        *,
        guide: BrandGuide,
        item_count: int,
        plan_days: int,
    ) -> str:
        return "\n".join(
            [
                _SYSTEM_INSTRUCTIONS,
                f"Task: plan a {plan_days}-day onboarding content calendar with exactly "
                f"{item_count} items.",
                f"Spread items across these platforms: {', '.join(PLATFORMS)}.",
                f"Use day numbers between 1 and {plan_days}.",
                "",
                _section("Brand guide", guide.model_dump()),
                _schema(ContentPlan),
            ]
        )

    def build_draft_prompt(
        self,
        *,
        guide: BrandGuide,
        item: PlannedItem,
        weekly_focus: str,
        feedback: Optional[List[str]] = None,
    ) -> str:
        """Prompt for one draft; ``feedback`` carries BFS issues from a rejected attempt."""
        lines = [
            _SYSTEM_INSTRUCTIONS,
            f"Platform: {item.platform}",
            f"Content type: {item.content_type}",
            f"Topic: {item.topic}",
            f"Weekly focus: {weekly_focus}",
            "",
            _section("Brand guide", guide.model_dump()),
        ]
        if feedback:
            lines.append(_section("Fix these issues from the previous attempt", feedback))
        lines.append(_schema(DraftContent))
        return "\n".join(lines)
