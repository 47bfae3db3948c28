"""Middleware for request correlation and API payload limits.

``RequestIdMiddleware`` gives every incoming request an identifier, reused
from the ``X-Request-Id`` header when the client sends one and generated
(UUIDv4) otherwise. The id is stored on the request, echoed back in the
``X-Request-ID`` response header, and published through ``REQUEST_ID_CTX``
so that the rewards HTTP adapter and the logging filter can read it
without it being passed around. gunicorn's gthread workers reuse threads,
so the context variable is reset once the response is produced.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
is larger than ``settings.API_MAX_BYTES`` with 413 ``PAYLOAD_TOO_LARGE``.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    """Sets and returns a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > settings.API_MAX_BYTES:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
