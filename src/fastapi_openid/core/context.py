"""Per-request OpenID context exposed to the wrapped application."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from fastapi_openid.core.responses import OpenIDResponse

SCOPE_KEY = "openid"


@dataclass(frozen=True)
class OpenIDContext:
    """What the middleware learned about the request's OpenID handshake.

    Attributes:
        response: Outcome of the handshake.
        identity: Normalized identity URL (the claimed identifier when
            the handshake never reached a provider).
        identifier: Normalized display identifier.
    """

    response: OpenIDResponse
    identity: str | None = None
    identifier: str | None = None


def with_context(scope: Mapping[str, Any], context: OpenIDContext) -> dict[str, Any]:
    """Return a copy of an ASGI scope carrying the given context.

    The original scope is left untouched so the context is visible only
    to the application call that receives the copy.
    """
    return {**scope, SCOPE_KEY: context}


def get_openid_context(source: Any) -> OpenIDContext | None:
    """Read the OpenID context from an ASGI scope or a Starlette request.

    Args:
        source: An ASGI scope mapping, or any object with a ``scope``
            attribute (Request, WebSocket).

    Returns:
        The context, or None when the request did not go through a
        handshake.
    """
    scope = getattr(source, "scope", source)
    context = scope.get(SCOPE_KEY)
    return context if isinstance(context, OpenIDContext) else None
