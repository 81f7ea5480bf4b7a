"""
Error taxonomy for the document engine.

Every stage of the pipeline reports failure with one of these types.
Stages return them inside a ``StageResult`` rather than raising them
through the pipeline; the orchestrator decides what to do next.

Error messages are diagnostic only. They are logged, never shown to the
caller of the HTTP surface.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(RuntimeError):
    """Base class for every failure the pipeline can report."""

    stage: str = "pipeline"

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class ValidationError(PipelineError):
    """Request settings are malformed or incomplete."""

    stage = "validate"


# ----------------------------------------------------------------------
# Upstream retrieval
# ----------------------------------------------------------------------

class FetchError(PipelineError):
    """Upstream record retrieval failed or returned nothing usable."""

    stage = "fetch"


class UpstreamClientError(FetchError):
    """Upstream answered with a 4xx status."""


class UpstreamServerError(FetchError):
    """Upstream answered with a 5xx status."""


class UpstreamTransportError(FetchError):
    """Connection, read or timeout failure before a response arrived."""


class UpstreamRequestError(FetchError):
    """Any other failure while issuing the request."""


# ----------------------------------------------------------------------
# Document production
# ----------------------------------------------------------------------

class TransformError(PipelineError):
    stage = "transform"


class SanitizeError(PipelineError):
    """Best-effort: logged by the sanitizer, never aborts a run."""

    stage = "sanitize"


class RenderError(PipelineError):
    stage = "render"


class ConversionError(PipelineError):
    stage = "convert"


class MergeError(PipelineError):
    stage = "merge"


class InternalError(PipelineError):
    """
    Generic failure substituted for anything unanticipated.

    Carries no text from the original exception.
    """

    stage = "internal"

    def __init__(self) -> None:
        super().__init__("Document creation failed.")
