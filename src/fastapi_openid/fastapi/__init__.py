"""FastAPI adapter for the OpenID middleware."""

from fastapi_openid.fastapi.dependencies import openid_challenge, openid_context
from fastapi_openid.fastapi.middleware import OpenIDMiddleware

__all__ = ["OpenIDMiddleware", "openid_challenge", "openid_context"]
