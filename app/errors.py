"""
app/errors.py

Exception taxonomy for the crawl-and-score pipeline.

Only InvalidInput and IngestionTimeout escape the service boundary; the
others are recovered inside the Job Store / Orchestrator and end up as
terminal states with a recorded reason.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for crawl and onboarding failures."""


class InvalidInput(PipelineError):
    """Raised for malformed requests, before any job is created."""


class FetchError(PipelineError):
    """Raised when the target page cannot be fetched (network or HTTP status)."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class ExtractionPartialFailure(PipelineError):
    """One extraction facet (text or images) failed; the other is kept."""

    def __init__(self, facet: str, cause: Exception) -> None:
        self.facet = facet
        self.cause = cause
        super().__init__(f"{facet} extraction failed: {type(cause).__name__}: {cause}")


class GenerationFailure(PipelineError):
    """Completion service error, timeout or unusable output."""

    def __init__(self, kind: str, reason: str, attempts: int = 1) -> None:
        self.kind = kind
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"{kind} generation failed after {attempts} attempt(s): {reason}")


class ScoringFailure(PipelineError):
    """A BFS dimension could not be computed; never treated as a pass."""

    def __init__(self, dimension: str, cause: Exception) -> None:
        self.dimension = dimension
        self.cause = cause
        super().__init__(f"BFS dimension '{dimension}' failed: {type(cause).__name__}: {cause}")


class IngestionTimeout(PipelineError):
    """Synchronous ingestion did not reach a terminal job state in time."""

    def __init__(self, job_id: object, state: str, timeout_seconds: float) -> None:
        self.job_id = job_id
        self.state = state
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Crawl job {job_id} still '{state}' after {timeout_seconds:.1f}s"
        )
