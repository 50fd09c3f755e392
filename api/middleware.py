"""Store isolation middleware using ContextVar.

Extracts the current store from the X-Store-ID request header (or falls
back to subdomain detection). The store ID is stored in a ContextVar so
that routers and services can call get_current_store() without explicit
parameter passing.
"""

from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.observability.logging import bind_request_context, clear_request_context

# ---------------------------------------------------------------------------
# Context variable: task-safe store state
# ---------------------------------------------------------------------------

DEFAULT_STORE = "default"

_current_store: ContextVar[str] = ContextVar("current_store", default=DEFAULT_STORE)


def get_current_store() -> str:
    """Return the store ID for the current request.

    Safe to call from any async context within the request lifecycle::

        store = get_current_store()
        totals = await service.quote(store, request)
    """
    return _current_store.get()


def store_from_request(request: Request, default: str = DEFAULT_STORE) -> str:
    """Resolve the store for a request.

    Priority:
    1. X-Store-ID header (explicit)
    2. First subdomain segment (e.g., acme.shop.example → "acme")
    3. Falls back to the configured default store
    """
    store_id = (request.headers.get("X-Store-ID") or "").strip()
    if not store_id:
        host = request.headers.get("host", "").split(":")[0]
        parts = host.split(".")
        if len(parts) > 2:
            store_id = parts[0]
    return store_id or default


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class StoreMiddleware(BaseHTTPMiddleware):
    """Bind the request's store to the ContextVar and the log context."""

    def __init__(self, app, default_store: str = DEFAULT_STORE):
        super().__init__(app)
        self.default_store = default_store

    async def dispatch(self, request: Request, call_next) -> Response:
        store_id = store_from_request(request, self.default_store)
        token = _current_store.set(store_id)
        clear_request_context()
        bind_request_context(store_id=store_id, path=request.url.path)
        try:
            response = await call_next(request)
            return response
        finally:
            _current_store.reset(token)
            clear_request_context()
