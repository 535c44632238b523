"""Construction of the httpx client used by the event-stream transport."""

from typing import Any, Protocol

import httpx

__all__ = ["McpHttpClientFactory", "create_mcp_http_client"]

DEFAULT_HTTP_TIMEOUT = 30.0


class McpHttpClientFactory(Protocol):
    """Builds the AsyncClient a transport sends its requests through."""

    def __call__(self, **kwargs: Any) -> httpx.AsyncClient: ...


def create_mcp_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create an AsyncClient that follows redirects and times out after 30 seconds.

    Keyword arguments go to ``httpx.AsyncClient`` and override the defaults;
    ones passed as None are ignored, so callers can forward optional settings
    such as ``headers`` unconditionally. Use the result as an async context
    manager so its connections are released.
    """
    options: dict[str, Any] = {"follow_redirects": True, "timeout": httpx.Timeout(DEFAULT_HTTP_TIMEOUT)}
    options.update({key: value for key, value in kwargs.items() if value is not None})
    return httpx.AsyncClient(**options)
