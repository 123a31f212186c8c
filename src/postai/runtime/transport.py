"""HTTP transport — executes PendingRequests over httpx and reports status as data."""

from __future__ import annotations

import json
import time
from typing import Any

import httpx

from postai.errors import TransportError
from postai.models import ErrorInfo, ExecutionResult, PendingRequest, TransportResponse
from postai.utils.logging import get_logger

logger = get_logger(__name__)

# Methods that never carry a request body
_BODYLESS_METHODS = {"GET", "HEAD", "OPTIONS"}


def _decode_body(response: httpx.Response) -> Any:
    """JSON when possible, text otherwise, None for an empty body."""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


class HttpTransport:
    """Send one request, return one response. No retries, cookies, or pooling across calls."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the transport.

        Args:
            transport: Optional httpx transport (tests inject httpx.MockTransport).
        """
        self._transport = transport

    async def execute(self, request: PendingRequest) -> TransportResponse:
        """Execute a request.

        Args:
            request: Built request descriptor.

        Returns:
            TransportResponse for any HTTP status code.

        Raises:
            TransportError: On timeout, DNS/connection failure or an unusable URL.
        """
        method = request.method.upper()
        kwargs: dict[str, Any] = {"headers": request.headers, "params": request.query_params or None}
        if request.body is not None and method not in _BODYLESS_METHODS:
            if isinstance(request.body, (dict, list)):
                kwargs["json"] = request.body
            else:
                kwargs["content"] = str(request.body)

        logger.info("request_started", method=method, url=request.url)
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=request.timeout_ms / 1000, transport=self._transport) as client:
                response = await client.request(method, request.url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"timeout of {request.timeout_ms}ms exceeded", code="ETIMEDOUT", name=type(exc).__name__
            ) from exc
        except httpx.ConnectError as exc:
            raise TransportError(str(exc) or "connection failed", code="ECONNREFUSED", name=type(exc).__name__) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(str(exc) or "request failed", code="EREQUEST", name=type(exc).__name__) from exc

        timing_ms = int((time.perf_counter() - start) * 1000)
        logger.info("request_completed", method=method, url=request.url, status=response.status_code, ms=timing_ms)
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response),
            timing_ms=timing_ms,
        )


async def run_request(transport: HttpTransport, request: PendingRequest) -> ExecutionResult:
    """Execute a request and fold transport failures into an ExecutionResult.

    Args:
        transport: Transport collaborator.
        request: Request to run.

    Returns:
        ExecutionResult; status "error" only for connection-level failures.
    """
    start = time.perf_counter()
    try:
        response = await transport.execute(request)
    except TransportError as exc:
        elapsed = int((time.perf_counter() - start) * 1000)
        logger.warning("request_failed", url=request.url, code=exc.code, error=exc.message)
        return ExecutionResult(
            status="error",
            response_time_ms=elapsed,
            error=ErrorInfo(name=exc.name, message=exc.message, code=exc.code),
        )
    return ExecutionResult(
        status="success",
        status_code=response.status_code,
        response_time_ms=response.timing_ms,
        headers=response.headers,
        body=response.body,
    )
