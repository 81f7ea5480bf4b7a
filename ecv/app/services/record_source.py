"""
Upstream record-system retrieval.

Raw record XML is fetched with one GET per document:

    self:  {base}get/{employeeId}
    far:   {base}far/{employeeId}/{academicYear}

Failures are classified so that they can be diagnosed remotely:

    UpstreamClientError      4xx response
    UpstreamServerError      5xx response
    UpstreamTransportError   no response (connect, read, timeout)
    UpstreamRequestError     anything else raised while requesting

Only transport-level failures are retried; a response, even an error
response, is final.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ecv.app.config import Settings
from ecv.app.errors import (
    FetchError,
    UpstreamClientError,
    UpstreamRequestError,
    UpstreamServerError,
    UpstreamTransportError,
)
from ecv.app.schemas.request import RequestSettings
from ecv.app.schemas.result import StageResult

logger = logging.getLogger("ecv.record_source")

_EXCERPT = 2000


def _excerpt(text: str) -> str:
    return text if len(text) <= _EXCERPT else text[:_EXCERPT] + "..."


def _describe_request(request: Optional[httpx.Request]) -> str:
    if request is None:
        return "<no request>"
    # Authorization is deliberately left out.
    return f"{request.method} {request.url} Accept={request.headers.get('accept', '')}"


def _request_of(exc: httpx.RequestError) -> Optional[httpx.Request]:
    try:
        return exc.request
    except RuntimeError:
        return None


def _describe_response(response: httpx.Response) -> str:
    return (
        f"HTTP {response.status_code} {response.reason_phrase} "
        f"content-type={response.headers.get('content-type', '')} "
        f"body={_excerpt(response.text)!r}"
    )


class RecordSourceClient:
    def __init__(self, http_client: httpx.Client, settings: Settings) -> None:
        self._client = http_client
        self._base_url = str(settings.record_source_url).rstrip("/") + "/"
        self._auth = (
            settings.record_source_username,
            settings.record_source_password.get_secret_value(),
        )
        self._attempts = settings.record_source_retry_attempts

    def uri_for(self, settings: RequestSettings) -> str:
        employee = quote(settings.employee_id, safe="")
        if settings.ecv_type == "far":
            year = quote(settings.academic_year or "", safe="")
            return f"far/{employee}/{year}"
        return f"get/{employee}"

    def fetch(self, settings: RequestSettings, *, trace_id: str = "-") -> StageResult[bytes]:
        url = self._base_url + self.uri_for(settings)
        logger.info("record_fetch_started", extra={"trace_id": trace_id, "url": url})

        try:
            response = self._get_with_retry(url)
            response.raise_for_status()

        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            context = {
                "trace_id": trace_id,
                "request": _describe_request(exc.request),
                "response": _describe_response(exc.response),
            }
            if 400 <= status < 500:
                logger.warning("record_fetch_client_error", extra=context)
                return StageResult.failure(
                    UpstreamClientError(f"Upstream rejected request ({status})")
                )
            if status >= 500:
                logger.error("record_fetch_server_error", extra=context)
                return StageResult.failure(
                    UpstreamServerError(f"Upstream failed ({status})")
                )
            logger.error("record_fetch_request_error", extra=context)
            return StageResult.failure(
                UpstreamRequestError(f"Unexpected upstream status {status}")
            )

        except httpx.TransportError as exc:
            logger.error(
                "record_fetch_transport_error",
                extra={
                    "trace_id": trace_id,
                    "request": _describe_request(_request_of(exc)),
                    "error": repr(exc),
                    "attempts": self._attempts,
                },
            )
            return StageResult.failure(
                UpstreamTransportError("Upstream unreachable", detail=repr(exc))
            )

        except httpx.HTTPError as exc:
            logger.error(
                "record_fetch_request_error",
                extra={"trace_id": trace_id, "url": url, "error": repr(exc)},
            )
            return StageResult.failure(
                UpstreamRequestError("Upstream request failed", detail=repr(exc))
            )

        body = response.content
        if not body or not body.strip():
            logger.warning(
                "record_fetch_empty_body",
                extra={"trace_id": trace_id, "response": _describe_response(response)},
            )
            return StageResult.failure(FetchError("Upstream returned no XML"))

        logger.info(
            "record_fetch_complete",
            extra={"trace_id": trace_id, "url": url, "bytes": len(body)},
        )
        return StageResult.success(body)

    def _get_with_retry(self, url: str) -> httpx.Response:
        @retry(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=0.5, max=8),
            reraise=True,
        )
        def _get() -> httpx.Response:
            return self._client.get(
                url,
                auth=self._auth,
                headers={"Accept": "text/xml"},
            )

        return _get()


def build_http_client(settings: Settings) -> httpx.Client:
    """Shared, pooled HTTP client for upstream retrieval."""
    timeout = settings.record_source_timeout_seconds
    return httpx.Client(
        timeout=httpx.Timeout(timeout=timeout, connect=min(10.0, timeout)),
        verify=settings.record_source_verify_tls,
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        headers={"User-Agent": "ecv-document-engine"},
    )
