"""OpenID authentication middleware for FastAPI and Starlette."""

# Configuration
from fastapi_openid.config import OpenIDSettings, get_settings

# Core types: for advanced users and type checking
from fastapi_openid.core.context import OpenIDContext, get_openid_context
from fastapi_openid.core.header import (
    AuthRequestParams,
    build_header,
    decode_header,
    encode_header,
    parse_header,
)
from fastapi_openid.core.normalizer import normalize_identifier, normalize_url
from fastapi_openid.core.responses import OpenIDResponse, ResponseStatus
from fastapi_openid.core.store import create_store

# Exceptions: for error handling
from fastapi_openid.exceptions import (
    ConfigurationError,
    HeaderParseError,
    InvalidIdentifierError,
    OpenIDMiddlewareError,
)

# Primary API: the middleware and endpoint helpers
from fastapi_openid.fastapi.dependencies import openid_challenge, openid_context
from fastapi_openid.fastapi.middleware import OpenIDMiddleware

__all__ = [
    # Primary API
    "OpenIDMiddleware",
    "openid_challenge",
    "openid_context",
    # Configuration
    "OpenIDSettings",
    "get_settings",
    "create_store",
    # Core types
    "AuthRequestParams",
    "OpenIDContext",
    "OpenIDResponse",
    "ResponseStatus",
    "build_header",
    "decode_header",
    "encode_header",
    "get_openid_context",
    "normalize_identifier",
    "normalize_url",
    "parse_header",
    # Exceptions
    "ConfigurationError",
    "HeaderParseError",
    "InvalidIdentifierError",
    "OpenIDMiddlewareError",
]

__version__ = "0.1.0"
