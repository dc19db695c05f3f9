"""Request id propagation and timing for the CPQ pricing API."""
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("cpq-api.middleware")

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"

# Load balancer probes; not worth a log line each
QUIET_PATHS = frozenset({"/health"})


def _log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a request id (the caller's X-Request-ID when sent)
    and echoes it back with the processing time in ms.  Rejected pricing input
    (4xx) is logged at WARNING.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[PROCESS_TIME_HEADER] = str(elapsed_ms)

        path = request.url.path
        if path not in QUIET_PATHS:
            logger.log(
                _log_level(response.status_code),
                f"{request.method} {path} -> {response.status_code}",
                extra={
                    "request_id": request_id,
                    "http_method": request.method,
                    "http_path": path,
                    "http_status": response.status_code,
                    "duration_ms": elapsed_ms,
                },
            )
        return response
