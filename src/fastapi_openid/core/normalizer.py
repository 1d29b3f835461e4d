"""Identifier normalization for OpenID login forms.

Turns free-form user input ("example.com/me", " HTTP://Example.COM ")
into the canonical URI that is handed to the consumer library. The URI
normalization itself is the consumer library's ``urinorm``; this module
adds the login-form handling around it (trimming, the implied ``http://``
scheme) and a stricter host check.
"""

import re
import string
from urllib.parse import urlsplit

from openid import urinorm

from fastapi_openid.exceptions import InvalidIdentifierError

_HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*\.?$"
)
_IPV4_PATTERN = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}$")

# "scheme:rest"; a rest starting with a digit is a port ("example.com:8000")
_SCHEME_PREFIX = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:(?P<rest>.*)$", re.DOTALL)

# RFC 3986 unreserved + reserved + percent sign
_URI_CHARACTERS = frozenset(string.ascii_letters + string.digits + "-._~:/?#[]@!$&'()*+,;=%")


def normalize_identifier(value: str | None) -> str:
    """Normalize a user supplied OpenID identifier into a canonical URI.

    Args:
        value: The raw identifier, typically straight from a login form.

    Returns:
        The normalized URI string.

    Raises:
        InvalidIdentifierError: If the value is missing, blank, not an
            http or https URI, or names an invalid host or port.

    Examples:
        "loudthinking.com" -> "http://loudthinking.com/"
        "HTTP://OPENID.AOL.COM/NEXTANGLER" -> "http://openid.aol.com/NEXTANGLER"
        "https://example.com:443/me" -> "https://example.com/me"
        "mailto:alice@example.com" -> InvalidIdentifierError
    """
    if value is None:
        raise InvalidIdentifierError("None is not an OpenID identifier")

    text = str(value).strip()
    if not text:
        raise InvalidIdentifierError(f"{value!r} is not an OpenID identifier")

    # urinorm percent-escapes non-ASCII input instead of rejecting it
    if not set(text) <= _URI_CHARACTERS:
        raise InvalidIdentifierError(f"{value!r} is not an OpenID identifier")

    if not _has_scheme(text):
        text = f"http://{text}"

    try:
        url = urinorm.urinorm(text)
    except ValueError as e:
        raise InvalidIdentifierError(f"{value!r} is not an OpenID identifier: {e}") from e

    _check_authority(url, value)
    return url


# Kept for symmetry with callers that normalize arbitrary URLs, not
# just login identifiers.
normalize_url = normalize_identifier


def _has_scheme(text: str) -> bool:
    match = _SCHEME_PREFIX.match(text)
    if match is None:
        return False
    return not match.group("rest")[:1].isdigit()


def _check_authority(url: str, original: str) -> None:
    """Reject hosts and ports that urinorm lets through."""
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidIdentifierError(f"{original!r} has an invalid host") from e

    try:
        parts.port
    except ValueError as e:
        raise InvalidIdentifierError(f"{original!r} has an invalid port") from e

    hostname = parts.hostname
    if not hostname:
        raise InvalidIdentifierError(f"{original!r} has no host")

    if "[" in parts.netloc:
        # urlsplit already validated the IPv6 literal
        return

    if _IPV4_PATTERN.match(hostname):
        if any(int(octet) > 255 for octet in hostname.split(".")):
            raise InvalidIdentifierError(f"{original!r} has an invalid IPv4 address")
        return

    if not _HOSTNAME_PATTERN.match(hostname):
        raise InvalidIdentifierError(f"{original!r} has an invalid host {hostname!r}")
