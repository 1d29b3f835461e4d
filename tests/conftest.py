"""Shared pytest fixtures for fastapi-openid tests."""

from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.responses import PlainTextResponse
from openid.message import Message
from openid.store.memstore import MemoryStore
from starlette.responses import Response

from fastapi_openid import OpenIDContext, OpenIDMiddleware, OpenIDSettings, openid_context

OPENID_PROVIDER = "http://www.myopenid.com/"


@pytest.fixture
def settings() -> OpenIDSettings:
    """Settings with a short provider timeout, independent of the environment."""
    return OpenIDSettings(timeout=1.0, store_path=None)


@pytest.fixture
def auth_request() -> MagicMock:
    """A consumer library auth request redirecting to OPENID_PROVIDER."""
    request = MagicMock(name="AuthRequest")
    request.return_to_args = {}
    request.redirectURL.return_value = OPENID_PROVIDER
    return request


@pytest.fixture
def consumer(auth_request: MagicMock) -> MagicMock:
    """A consumer whose begin() returns the auth_request fixture."""
    consumer = MagicMock(name="Consumer")
    consumer.begin.return_value = auth_request
    return consumer


@pytest.fixture
def consumer_factory(consumer: MagicMock) -> MagicMock:
    """Stands in for openid.consumer.consumer.Consumer(session, store)."""
    return MagicMock(name="ConsumerFactory", return_value=consumer)


@pytest.fixture
def success_response():
    """Build fake python3-openid SuccessResponse objects.

    Accepts:
    - identity_url: the verified identity
    - display_identifier: defaults to identity_url
    - sreg: signed Simple Registration arguments
    """

    class FakeSuccessResponse:
        status = "success"

        def __init__(
            self,
            identity_url: str,
            display_identifier: str | None = None,
            sreg: dict[str, str] | None = None,
        ) -> None:
            self.identity_url = identity_url
            self.display_identifier = display_identifier or identity_url
            self.message = Message()
            self.sreg = sreg or {}

        def getDisplayIdentifier(self) -> str:  # noqa: N802
            return self.display_identifier

        def getSignedNS(self, ns_uri: str) -> dict[str, str] | None:  # noqa: N802
            return dict(self.sreg) or None

    return FakeSuccessResponse


@pytest.fixture
def failure_response():
    """Build fake python3-openid FailureResponse/CancelResponse objects."""

    class FakeFailureResponse:
        def __init__(
            self,
            status: str = "failure",
            message: str | None = "Bad signature",
            identity_url: str | None = None,
        ) -> None:
            self.status = status
            self.message = message
            self.identity_url = identity_url

        def getDisplayIdentifier(self) -> str | None:  # noqa: N802
            return None

    return FakeFailureResponse


@pytest.fixture
def create_app(settings: OpenIDSettings, consumer_factory: MagicMock):
    """Create a FastAPI app behind OpenIDMiddleware.

    Returns a callable that accepts:
    - challenge: header value the app answers with when no handshake happened
      (None to answer 200 instead)
    - header_name: challenge header name (defaults to WWW-Authenticate)

    Every route reports the request as seen by the app: method, query,
    body, and the OpenID context. Requests carrying a context answer
    400 with the context summary, like a "login failed" page would.
    """

    def _create(
        challenge: str | None = None,
        *,
        header_name: str = "WWW-Authenticate",
        **middleware_options: Any,
    ) -> FastAPI:
        app = FastAPI()

        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
        async def catch_all(
            request: Request,
            context: OpenIDContext | None = Depends(openid_context),
        ) -> Response:
            body = (await request.body()).decode()
            if context is None:
                if challenge is None:
                    return PlainTextResponse(f"{request.method} {request.url.query} {body}")
                return Response(status_code=401, headers={header_name: challenge})

            return PlainTextResponse(
                "|".join(
                    [
                        context.response.status.value,
                        str(context.identity),
                        str(context.identifier),
                        request.method,
                        request.url.query,
                        body,
                    ]
                ),
                status_code=400,
            )

        options = {
            "store": MemoryStore(),
            "settings": settings,
            "consumer_factory": consumer_factory,
            **middleware_options,
        }
        app.add_middleware(OpenIDMiddleware, **options)
        return app

    return _create


@pytest.fixture
def receive_messages():
    """Build an ASGI receive callable that yields the given messages in order."""

    def _create(*messages: dict[str, Any]):
        pending = list(messages)

        async def receive() -> dict[str, Any]:
            if pending:
                return pending.pop(0)
            return {"type": "http.disconnect"}

        return receive

    return _create
