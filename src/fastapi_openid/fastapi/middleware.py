"""ASGI middleware driving the OpenID handshake.

Two phases per request:

- complete: a GET carrying ``openid.mode`` is the provider redirecting
  back. The response is verified and attached to the scope, the
  ``openid.*`` parameters are stripped and the request continues to the
  application.
- begin: the application answered with a challenge (401 plus an OpenID
  challenge header). The challenge is held back and the browser is sent
  to the provider with a 303 redirect.

Provider errors and timeouts never escape: they become an OpenIDResponse
the application receives in the scope.
"""

import functools
import logging
from collections.abc import Callable, MutableMapping
from typing import Any
from urllib.parse import parse_qsl, urlencode

import anyio
import anyio.to_thread
from openid.consumer.consumer import Consumer, ProtocolError
from openid.consumer.discover import DiscoveryFailure
from openid.extensions import sreg
from openid.fetchers import HTTPFetchingError
from openid.store.interface import OpenIDStore
from starlette.requests import Request
from starlette.responses import RedirectResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fastapi_openid.config import OpenIDSettings, get_settings
from fastapi_openid.core.context import OpenIDContext, with_context
from fastapi_openid.core.header import AuthRequestParams, decode_header
from fastapi_openid.core.normalizer import normalize_identifier
from fastapi_openid.core.responses import OpenIDResponse
from fastapi_openid.core.store import create_store
from fastapi_openid.exceptions import ConfigurationError, InvalidIdentifierError

logger = logging.getLogger(__name__)

DEFAULT_PORTS: dict[str, int] = {
    "http": 80,
    "https": 443,
}

HTTP_METHODS: tuple[str, ...] = ("GET", "HEAD", "PUT", "POST", "DELETE", "OPTIONS", "PATCH")

METHOD_PARAM = "_method"
OPENID_PARAM_PREFIX = "openid."

# Raised by Consumer.begin when no usable provider is found or reachable
_BEGIN_ERRORS = (DiscoveryFailure, HTTPFetchingError, ProtocolError, TimeoutError)

SessionGetter = Callable[[Scope], MutableMapping[str, Any]]
ConsumerFactory = Callable[[MutableMapping[str, Any], OpenIDStore], Any]


class OpenIDMiddleware:
    """OpenID consumer middleware for Starlette and FastAPI applications.

    Args:
        app: The wrapped ASGI application.
        store: Association and nonce store for the consumer library.
            Defaults to the store described by the settings.
        settings: Middleware settings. Defaults to ``get_settings()``.
        consumer_factory: Builds a consumer from ``(session, store)``.
        session_getter: Returns the session mapping for a scope. Defaults
            to ``scope["session"]`` as set by SessionMiddleware.

    Raises:
        ConfigurationError: If the settings name no challenge header or a
            challenge status outside 4xx.

    Example:
        from fastapi import FastAPI
        from starlette.middleware.sessions import SessionMiddleware
        from fastapi_openid import OpenIDMiddleware

        app = FastAPI()
        app.add_middleware(OpenIDMiddleware)
        app.add_middleware(SessionMiddleware, secret_key="...")
    """

    def __init__(
        self,
        app: ASGIApp,
        store: OpenIDStore | None = None,
        *,
        settings: OpenIDSettings | None = None,
        consumer_factory: ConsumerFactory = Consumer,
        session_getter: SessionGetter | None = None,
    ) -> None:
        self.app = app
        self.settings = settings or get_settings()
        _validate_settings(self.settings)
        self.store = store if store is not None else create_store(self.settings)
        self.consumer_factory = consumer_factory
        self.session_getter = session_getter or _scope_session
        self.challenge_header = self.settings.challenge_header.lower().encode("latin-1")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "GET" and OPENID_PARAM_PREFIX + "mode" in Request(scope).query_params:
            scope = await self._complete_authentication(scope)

        recorder = _RecordingReceive(receive)
        interceptor = _ChallengeInterceptor(send, self.settings.challenge_status, self.challenge_header)
        await self.app(scope, recorder, interceptor)

        if interceptor.params is not None:
            await self._begin_authentication(scope, recorder.replay(), send, interceptor.params)

    async def _begin_authentication(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        params: AuthRequestParams,
    ) -> None:
        request = Request(scope)

        try:
            identifier = normalize_identifier(params.identity)
        except InvalidIdentifierError as e:
            logger.info(
                "Rejected OpenID identifier",
                extra={"identifier": params.identity, "error": str(e)},
            )
            context = OpenIDContext(
                response=OpenIDResponse.invalid(str(e)),
                identity=params.identity,
                identifier=params.identity,
            )
            await self.app(with_context(scope, context), receive, send)
            return

        session = self.session_getter(scope)
        # The worker thread may outlive a timeout; it only ever sees a copy
        working = dict(session)
        consumer = self.consumer_factory(working, self.store)
        try:
            auth_request = await self._call_provider(consumer.begin, identifier)
            self._add_simple_registration_fields(auth_request, params)
            url = self._redirect_url(request, auth_request, params)
        except _BEGIN_ERRORS as e:
            logger.warning(
                "OpenID handshake could not be started",
                extra={"identifier": identifier, "error": str(e) or type(e).__name__},
            )
            context = OpenIDContext(
                response=OpenIDResponse.missing(str(e) or None),
                identity=identifier,
                identifier=identifier,
            )
            await self.app(with_context(scope, context), receive, send)
            return

        _write_back(session, working)
        logger.info(
            "Redirecting to OpenID provider",
            extra={"identifier": identifier, "path": request.url.path},
        )
        response = RedirectResponse(url, status_code=303, headers={"Content-Type": "text/html"})
        await response(scope, receive, send)

    async def _complete_authentication(self, scope: Scope) -> Scope:
        request = Request(scope)
        session = self.session_getter(scope)
        working = dict(session)
        consumer = self.consumer_factory(working, self.store)

        try:
            library_response = await self._call_provider(
                consumer.complete, dict(request.query_params), str(request.url)
            )
        except TimeoutError:
            logger.warning(
                "OpenID provider timed out during verification",
                extra={"path": request.url.path, "timeout": self.settings.timeout},
            )
            response = OpenIDResponse.timeout("Identity server took too long.")
        else:
            response = OpenIDResponse.from_consumer_response(library_response)
            _write_back(session, working)

        logger.info(
            "Completed OpenID handshake",
            extra={"status": response.status.value, "identity_url": response.identity_url},
        )

        context = OpenIDContext(
            response=response,
            identity=_normalize_reported(response.identity_url),
            identifier=_normalize_reported(response.display_identifier),
        )
        completed = with_context(scope, context)

        method = request.query_params.get(METHOD_PARAM)
        if method and method.upper() in HTTP_METHODS:
            completed["method"] = method.upper()

        query = parse_qsl(scope.get("query_string", b"").decode("latin-1"), keep_blank_values=True)
        remaining = [
            (key, value)
            for key, value in query
            if key != METHOD_PARAM and not key.startswith(OPENID_PARAM_PREFIX)
        ]
        completed["query_string"] = urlencode(remaining).encode("latin-1")
        return completed

    async def _call_provider(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking consumer call in a worker thread under the timeout."""
        with anyio.fail_after(self.settings.timeout):
            return await anyio.to_thread.run_sync(
                functools.partial(func, *args),
                abandon_on_cancel=True,
            )

    def _add_simple_registration_fields(self, auth_request: Any, params: AuthRequestParams) -> None:
        sreg_request = sreg.SRegRequest()

        if required := _known_sreg_fields(params.required):
            sreg_request.requestFields(required, required=True)

        if optional := _known_sreg_fields(params.optional):
            sreg_request.requestFields(optional, required=False)

        if params.policy_url:
            sreg_request.policy_url = params.policy_url

        auth_request.addExtension(sreg_request)

    def _redirect_url(self, request: Request, auth_request: Any, params: AuthRequestParams) -> str:
        method = (params.method or request.method).lower()
        if method != "get":
            auth_request.return_to_args[METHOD_PARAM] = method
        return auth_request.redirectURL(
            realm_url(request),
            params.return_to or request_url(request),
        )


def realm_url(request: Request) -> str:
    """Scheme, host and non-default port of the request.

    Example:
        https://example.org:8443/login?next=/ -> "https://example.org:8443"
    """
    url = request.url
    host = url.hostname or ""
    if ":" in host:
        host = f"[{host}]"

    realm = f"{url.scheme}://{host}"
    if url.port is not None and DEFAULT_PORTS.get(url.scheme) != url.port:
        realm = f"{realm}:{url.port}"
    return realm


def request_url(request: Request) -> str:
    """Realm plus path of the request, without the query string."""
    return realm_url(request) + request.url.path


def _known_sreg_fields(fields: tuple[str, ...]) -> list[str]:
    known = [name for name in fields if name in sreg.data_fields]
    if unknown := [name for name in fields if name not in sreg.data_fields]:
        logger.warning(
            "Dropping unknown Simple Registration fields",
            extra={"fields": unknown},
        )
    return known


def _normalize_reported(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return normalize_identifier(value)
    except InvalidIdentifierError:
        return value


def _write_back(session: MutableMapping[str, Any], working: dict[str, Any]) -> None:
    """Apply the consumer's changes to the real session."""
    for key in session.keys() - working.keys():
        del session[key]
    session.update(working)


def _scope_session(scope: Scope) -> MutableMapping[str, Any]:
    session = scope.get("session")
    if session is None:
        logger.warning(
            "No session in request scope, using a throwaway session. "
            "Install SessionMiddleware outside OpenIDMiddleware."
        )
        return {}
    return session


def _validate_settings(settings: OpenIDSettings) -> None:
    if not settings.challenge_header.strip():
        raise ConfigurationError("challenge_header must be a non-empty header name")
    if not 400 <= settings.challenge_status <= 499:
        raise ConfigurationError(
            f"challenge_status must be a 4xx status code, got {settings.challenge_status}"
        )


class _RecordingReceive:
    """Receive wrapper that keeps request body messages for a second app call."""

    def __init__(self, receive: Receive) -> None:
        self._receive = receive
        self._messages: list[Message] = []

    async def __call__(self) -> Message:
        message = await self._receive()
        if message["type"] == "http.request":
            self._messages.append(message)
        return message

    def replay(self) -> Receive:
        pending = list(self._messages)

        async def receive() -> Message:
            if pending:
                return pending.pop(0)
            return await self._receive()

        return receive


class _ChallengeInterceptor:
    """Send wrapper that holds back OpenID challenge responses.

    After it sees a response start with the challenge status and a header
    that decodes as an OpenID challenge, the start and all body messages
    are swallowed and ``params`` is set. Any other response is forwarded
    untouched.
    """

    def __init__(self, send: Send, status: int, header: bytes) -> None:
        self._send = send
        self._status = status
        self._header = header
        self.params: AuthRequestParams | None = None

    async def __call__(self, message: Message) -> None:
        if self.params is not None:
            return

        if message["type"] == "http.response.start" and message["status"] == self._status:
            for name, value in message.get("headers", []):
                if name.lower() != self._header:
                    continue
                if (params := decode_header(value)) is not None:
                    self.params = params
                    return
            logger.debug(
                "Passing through response without an OpenID challenge",
                extra={"status": self._status},
            )

        await self._send(message)
