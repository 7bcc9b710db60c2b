"""Per-request correlation id and access logging."""
import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from slideai.core.logging import LOGGER_NAME, duration_bucket, request_id_ctx_var

# Polled by orchestrators; logged at DEBUG only
QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id for the duration of the request.

    An incoming `x-request-id` is reused so the UI can correlate its calls;
    otherwise one is generated. The id is echoed on the response.
    """

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name
        self.logger = logging.getLogger(LOGGER_NAME)

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        path = request.url.path
        self.logger.log(
            logging.DEBUG if path in QUIET_PATHS else logging.INFO,
            "http.request",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration": duration_bucket((time.perf_counter() - started) * 1000),
            },
        )
        return response
