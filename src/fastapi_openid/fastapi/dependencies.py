"""FastAPI helpers for endpoints behind OpenIDMiddleware."""

from collections.abc import Sequence

from fastapi import Request
from starlette.responses import Response

from fastapi_openid.core.context import OpenIDContext, get_openid_context
from fastapi_openid.core.header import AuthRequestParams, encode_header


def openid_context(request: Request) -> OpenIDContext | None:
    """FastAPI dependency returning the request's OpenID context.

    Example:
        @app.get("/login")
        async def login(context: OpenIDContext | None = Depends(openid_context)):
            if context is None:
                return openid_challenge(request.query_params["openid_identifier"])
            ...
    """
    return get_openid_context(request)


def openid_challenge(
    identity: str,
    *,
    return_to: str | None = None,
    required: Sequence[str] = (),
    optional: Sequence[str] = (),
    policy_url: str | None = None,
    method: str | None = None,
    status_code: int = 401,
    header_name: str = "WWW-Authenticate",
) -> Response:
    """Build the challenge response that asks the middleware to log the user in.

    Args:
        identity: The identifier the user entered.
        return_to: Where the provider should send the user back to.
            Defaults to the current URL.
        required: Simple Registration fields the application requires.
        optional: Simple Registration fields the application would like.
        policy_url: URL of the application's data usage policy.
        method: HTTP method to restore after the provider redirect.
        status_code: Must match the middleware's ``challenge_status``.
        header_name: Must match the middleware's ``challenge_header``.

    Returns:
        An empty response carrying the encoded challenge header.
    """
    params = AuthRequestParams(
        identity=identity,
        return_to=return_to,
        required=tuple(required),
        optional=tuple(optional),
        policy_url=policy_url,
        method=method,
    )
    return Response(status_code=status_code, headers={header_name: encode_header(params)})
