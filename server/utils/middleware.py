from urllib.parse import parse_qs
from uuid import uuid4

from .config_log import request_id_ctx


def _new_request_id():
    return uuid4().hex[:12]


class RequestIDMiddleware:
    """
    HTTP: take X-Request-ID from the client or generate one, expose it to
    logging through the context var and echo it back on the response.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = request.headers.get("X-Request-ID") or _new_request_id()
        token = request_id_ctx.set(rid)
        try:
            response = self.get_response(request)
        finally:
            request_id_ctx.reset(token)
        response["X-Request-ID"] = rid
        return response


class RequestIDWebSocketMiddleware:
    """ASGI counterpart: header first, then `?rid=`, then a fresh id."""
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        headers = dict(scope.get("headers", []))
        rid = (
            headers.get(b"x-request-id", b"").decode()
            or parse_qs(scope.get("query_string", b"").decode()).get("rid", [None])[0]
            or _new_request_id()
        )

        token = request_id_ctx.set(rid)
        scope["request_id"] = rid
        try:
            return await self.app(scope, receive, send)
        finally:
            request_id_ctx.reset(token)
