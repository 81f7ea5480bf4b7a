"""
Document creation endpoint.

Callers identify a record and choose a layout and output format through
query parameters; the engine retrieves, renders and converts. The
response is the produced file itself.

    GET|POST /document?employeeId=...&ecvFormat=far&academicYear=...&outputFormat=pdf

With XML debugging enabled a POST body may carry raw record XML, which
then replaces upstream retrieval.
"""

import logging
import secrets
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import FileResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from ecv.app.config import Settings
from ecv.app.errors import FetchError, PipelineError, ValidationError
from ecv.app.pipeline.orchestrator import DocumentPipeline
from ecv.app.schemas.artifact import ProducedDocument
from ecv.app.schemas.request import parse_request_settings

logger = logging.getLogger("ecv.api")

router = APIRouter(tags=["Documents"])

security = HTTPBasic(auto_error=False)

# Request fields read from the query string, by wire name.
_WIRE_FIELDS = (
    "employeeId",
    "ecvType",
    "ecvFormat",
    "academicYear",
    "outputFormat",
    "operatorId",
    "useContentDisposition",
)

# =============================================================================
# Dependency providers
# =============================================================================


def get_correlation_id(
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """Extract or generate a correlation ID for end-to-end traceability."""
    if x_correlation_id and len(x_correlation_id) > 128:
        return str(uuid.uuid4())
    return x_correlation_id or str(uuid.uuid4())


def get_settings(request: Request) -> Settings:
    settings: Optional[Settings] = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def get_pipeline(request: Request) -> DocumentPipeline:
    pipeline: Optional[DocumentPipeline] = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise RuntimeError("pipeline not initialized")
    return pipeline


def require_credentials(
    credentials: Annotated[Optional[HTTPBasicCredentials], Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> str:
    """
    HTTP basic auth. Every failure is a plain 403.

    With no service username configured every request is refused.
    """
    if credentials is not None and settings.auth_username:
        user_ok = secrets.compare_digest(
            credentials.username.encode("utf-8"),
            settings.auth_username.encode("utf-8"),
        )
        password_ok = secrets.compare_digest(
            credentials.password.encode("utf-8"),
            settings.auth_password.get_secret_value().encode("utf-8"),
        )
        if user_ok and password_ok:
            return credentials.username

    logger.warning("authentication_failed", extra={"trace_id": correlation_id})
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Forbidden",
        headers={"X-Correlation-ID": correlation_id},
    )


# =============================================================================
# Helpers
# =============================================================================


# Diagnostic messages stay in the logs.
_PUBLIC_DETAIL = {
    status.HTTP_400_BAD_REQUEST: "Invalid request settings.",
    status.HTTP_502_BAD_GATEWAY: "Record system unavailable.",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "Document creation failed.",
}


def status_for(error: PipelineError) -> int:
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, FetchError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _safe_filename(filename: str) -> str:
    return (
        filename.replace('"', "")
        .replace("\n", "")
        .replace("\r", "")
        .replace("/", "_")
        .replace("\\", "_")
    )


def _file_response(
    document: ProducedDocument,
    *,
    attachment: bool,
    correlation_id: str,
) -> FileResponse:
    headers = {"X-Correlation-ID": correlation_id}
    if attachment:
        headers["Content-Disposition"] = (
            f'attachment; filename="{_safe_filename(document.filename)}"'
        )
    return FileResponse(
        document.path,
        media_type=document.media_type,
        headers=headers,
        background=BackgroundTask(document.path.unlink, missing_ok=True),
    )


# =============================================================================
# GET|POST /document
# =============================================================================


@router.api_route(
    "/document",
    methods=["GET", "POST"],
    summary="Create an eCV or Faculty Annual Report document",
    response_class=FileResponse,
    responses={
        200: {"description": "Produced document"},
        400: {"description": "Invalid request settings"},
        403: {"description": "Missing or invalid credentials"},
        502: {"description": "Record system unavailable or rejected the request"},
        500: {"description": "Document creation failure"},
    },
)
async def create_document(
    request: Request,
    _user: Annotated[str, Depends(require_credentials)],
    settings: Annotated[Settings, Depends(get_settings)],
    pipeline: Annotated[DocumentPipeline, Depends(get_pipeline)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> FileResponse:
    wire_settings = {
        key: value
        for key, value in request.query_params.items()
        if key in _WIRE_FIELDS
    }

    parsed = parse_request_settings(wire_settings, debug_xml=settings.debug_xml)
    if not parsed.ok:
        raise HTTPException(
            status_code=status_for(parsed.error),
            detail=_PUBLIC_DETAIL[status_for(parsed.error)],
            headers={"X-Correlation-ID": correlation_id},
        )
    request_settings = parsed.value

    raw_xml: Optional[bytes] = None
    if request.method == "POST" and settings.debug_xml:
        body = await request.body()
        if body.strip():
            raw_xml = body
            logger.info(
                "raw_xml_supplied",
                extra={"trace_id": correlation_id, "bytes": len(body)},
            )

    # The pipeline blocks on subprocesses and file I/O.
    result = await run_in_threadpool(
        pipeline.create_document,
        request_settings,
        raw_xml=raw_xml,
        trace_id=correlation_id,
    )

    if not result.ok:
        code = status_for(result.error)
        raise HTTPException(
            status_code=code,
            detail=_PUBLIC_DETAIL[code],
            headers={"X-Correlation-ID": correlation_id},
        )

    return _file_response(
        result.value,
        attachment=request_settings.use_content_disposition,
        correlation_id=correlation_id,
    )
