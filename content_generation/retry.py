"""Bounded retry with exponential backoff for completion calls.

Every failure mode of a single call counts as one attempt: transport
errors and timeouts raised by the adapter, unparseable JSON, schema
violations and contract checks (e.g. a plan that is too short).
"""

import logging
import time
from typing import Callable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from app.errors import GenerationFailure
from content_generation.adapter import CompletionClient
from content_generation.validator import CompletionValidationError, validate_completion

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def backoff_delays(max_attempts: int, initial_seconds: float, multiplier: float) -> List[float]:
    """Delays slept between attempts; one fewer than ``max_attempts``."""
    return [initial_seconds * (multiplier**index) for index in range(max(0, max_attempts - 1))]


def call_with_retry(
    client: CompletionClient,
    prompt: str,
    *,
    kind: str,
    model: Type[ModelT],
    max_attempts: int,
    timeout: float,
    backoff_initial_seconds: float,
    backoff_multiplier: float,
    contract: Optional[Callable[[ModelT], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ModelT:
    """Generate and validate one artefact, retrying up to ``max_attempts``.

    Args:
        client: Completion adapter.
        prompt: Fully formatted prompt.
        kind: Artefact kind passed through to the adapter.
        model: Pydantic output contract.
        max_attempts: Total attempts including the first.
        timeout: Per-call timeout in seconds.
        backoff_initial_seconds: Delay after the first failed attempt.
        backoff_multiplier: Growth factor for later delays.
        contract: Optional extra check; raise CompletionValidationError to
            reject an otherwise valid result.
        sleep: Injected for tests.

    Returns:
        A validated ``model`` instance.

    Raises:
        GenerationFailure: When every attempt failed.
    """
    delays = backoff_delays(max_attempts, backoff_initial_seconds, backoff_multiplier)
    last_reason = "no attempts made"

    for attempt in range(1, max_attempts + 1):
        try:
            raw = client.generate(prompt, kind=kind, timeout=timeout)
            result = validate_completion(raw, model)
            if contract is not None:
                contract(result)
            if attempt > 1:
                logger.info("%s validated on attempt %d/%d", kind, attempt, max_attempts)
            return result
        except CompletionValidationError as exc:
            last_reason = f"{exc.stage}: {'; '.join(exc.errors)}"
        except Exception as exc:
            last_reason = f"{type(exc).__name__}: {exc}"

        logger.warning(
            "%s attempt %d/%d failed: %s",
            kind,
            attempt,
            max_attempts,
            last_reason,
        )
        if attempt < max_attempts:
            sleep(delays[attempt - 1])

    raise GenerationFailure(kind=kind, reason=last_reason, attempts=max_attempts)
