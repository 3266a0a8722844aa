import threading
import time
import uuid
from collections import Counter
from typing import Callable, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from relief_app.core.logging import request_id_var


class ApiCallCounter:
    """
    Per-process request tally keyed by "METHOD /path".
    Lives on app.state so each app instance (and each test client) has its own.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._since = time.time()

    def record(self, method: str, path: str) -> int:
        key = f"{method.upper()} {path}"
        with self._lock:
            self._counts[key] += 1
            return self._counts[key]

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "since": self._since,
                "total": sum(self._counts.values()),
                "byEndpoint": dict(self._counts),
            }


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Ensures every request has a request-id, placed into response headers.
    Uses configured header name (default X-Request-Id).
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = rid
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[self.header_name] = rid
        return response


class ApiCallCounterMiddleware(BaseHTTPMiddleware):
    """Counts every request against the route template, not the raw path."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        counter = getattr(request.app.state, "api_calls", None)
        if counter is not None:
            route = request.scope.get("route")
            path = getattr(route, "path", None) or request.url.path
            counter.record(request.method, path)
        return response
