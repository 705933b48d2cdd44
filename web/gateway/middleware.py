"""Gateway middleware: request correlation and payload size limits.

``RequestIdMiddleware`` gives every request an identifier, taken from the
incoming ``X-Request-Id`` header when the caller (or the payment provider)
sends one and generated otherwise. The id is stored on the request, in the
``REQUEST_ID_CTX`` ContextVar (read by the logging filter and by the
outbound provider client) and echoed back in the ``X-Request-ID`` response
header.

``ApiSizeLimitMiddleware`` rejects oversized bodies on ``/api/`` before any
view reads them. Webhook bodies are read in full for signature checks, so
the cap also bounds the memory a single notification can take.
"""

import logging
import os
import time
import uuid
import contextvars

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger("gateway")

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(256 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    """Assign a request id and log one line per handled request.

    Attributes:
        HEADER (str): Incoming header in ``request.META`` casing.
        RESPONSE_HEADER (str): Header set on every response.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._started_at = time.monotonic()
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        started = getattr(request, "_started_at", None)
        logger.info(
            "request handled",
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2) if started else None,
            },
        )
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Return 413 for ``/api/`` requests whose Content-Length exceeds the cap."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
            logger.warning("payload too large", extra={"path": request.path, "content_length": int(clen)})
            return JsonResponse({"error": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
