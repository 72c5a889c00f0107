"""Validation layer for raw completion output.

Parses and validates JSON strings against a pydantic output contract.
"""

import json
import re
from typing import List, Type, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class CompletionValidationError(Exception):
    """Raised when completion output fails parsing or validation.

    Attributes:
        stage: Which validation step failed ("json_parse", "schema" or
            "contract").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed validation.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"Completion output validation failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message)


def _strip_markdown_fences(text: str) -> str:
    """Remove optional markdown code fences wrapping JSON."""
    stripped = text.strip()
    match = re.match(
        r"^```(?:json)?\s*\n?(.*?)\n?\s*```$",
        stripped,
        re.DOTALL,
    )
    if match:
        return match.group(1).strip()
    return stripped


def validate_completion(raw_response: str, model: Type[ModelT]) -> ModelT:
    """Parse and validate a raw completion string.

    Steps:
        1. Strip optional markdown fences.
        2. Parse as JSON.
        3. Require a top-level object.
        4. Validate against ``model``.

    Raises:
        CompletionValidationError: If JSON parsing or schema validation fails.
    """
    cleaned = _strip_markdown_fences(raw_response or "")

    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as exc:
        raise CompletionValidationError(
            stage="json_parse",
            errors=[str(exc)],
            raw_response=raw_response,
        ) from exc

    if not isinstance(data, dict):
        raise CompletionValidationError(
            stage="schema",
            errors=["top-level JSON must be an object"],
            raw_response=raw_response,
        )

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}"
            for e in exc.errors()
        ]
        raise CompletionValidationError(
            stage="schema",
            errors=errors,
            raw_response=raw_response,
        ) from exc
