"""Basic example demonstrating fastapi-openid.

A login form posts an OpenID identifier. The route answers with an
OpenID challenge, the middleware redirects the browser to the provider,
and the provider sends it back to /login where the route reads the
outcome from the OpenID context.

Run with:
    OPENID_STORE_PATH=.openid uvicorn main:app --reload

Available endpoints:
    GET  /        - Login form, or a greeting once logged in
    GET  /login   - Start the OpenID handshake, and the provider return URL
    POST /logout  - Forget the logged in identity
"""

import html
import secrets
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from fastapi_openid import OpenIDContext, OpenIDMiddleware, openid_challenge, openid_context

app = FastAPI(title="Basic Example")

# The consumer keeps discovery state (python objects) between the two
# phases. The signed cookie only carries a key into this in-process map.
_consumer_sessions: dict[str, dict[str, Any]] = {}


def consumer_session(scope: dict[str, Any]) -> dict[str, Any]:
    session = scope["session"]
    key = session.setdefault("openid_session", secrets.token_urlsafe(16))
    return _consumer_sessions.setdefault(key, {})


# SessionMiddleware must wrap OpenIDMiddleware
app.add_middleware(OpenIDMiddleware, session_getter=consumer_session)
app.add_middleware(SessionMiddleware, secret_key="change-me")

LOGIN_FORM = """
<form method="get" action="/login">
  <input name="openid_identifier" placeholder="you.example.com">
  <button>Log in</button>
</form>
<p>{message}</p>
"""


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> str:
    identity = request.session.get("identity")
    if identity is None:
        return LOGIN_FORM.format(message="")
    return (
        f"<p>Logged in as {html.escape(identity)}</p>"
        '<form method="post" action="/logout"><button>Log out</button></form>'
    )


@app.get("/login", response_model=None)
async def login(
    request: Request,
    openid_identifier: str | None = None,
    context: OpenIDContext | None = Depends(openid_context),
) -> Response:
    if context is None:
        return openid_challenge(
            openid_identifier or "",
            required=["nickname"],
            optional=["email", "fullname"],
        )

    if context.response.is_success:
        request.session["identity"] = context.identity
        request.session["profile"] = dict(context.response.sreg)
        return RedirectResponse("/", status_code=303)

    message = f"Login failed ({context.response.status.value})"
    return HTMLResponse(LOGIN_FORM.format(message=html.escape(message)), status_code=400)


@app.post("/logout")
async def logout(request: Request) -> RedirectResponse:
    _consumer_sessions.pop(request.session.get("openid_session", ""), None)
    request.session.clear()
    return RedirectResponse("/", status_code=303)
