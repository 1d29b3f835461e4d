"""Exception hierarchy for OpenID middleware errors."""


class OpenIDMiddlewareError(Exception):
    """Base exception for all OpenID middleware errors.

    This is the parent class for all exceptions raised by the
    fastapi-openid package. Catching this exception will catch
    all middleware-related errors.

    Example:
        try:
            identifier = normalize_identifier(form["openid_identifier"])
        except OpenIDMiddlewareError as e:
            logger.warning(f"Rejected login attempt: {e}")
    """


class InvalidIdentifierError(OpenIDMiddlewareError):
    """Raised when a user supplied identifier cannot be normalized.

    This exception is raised by the identifier normalizer when the
    input is missing, blank, or not a parsable URI. The middleware
    never lets it escape: it turns into an ``invalid`` response that
    the wrapped application receives.

    Examples of invalid identifiers:
        - Empty or whitespace-only strings
        - None
        - Strings with an illegal host, such as "=name"

    Example:
        InvalidIdentifierError("'=name' is not an OpenID identifier")
    """


class HeaderParseError(OpenIDMiddlewareError):
    """Raised when a challenge header value does not follow the grammar.

    Used internally by the header codec. ``decode_header`` converts it
    to ``None`` so callers see "no authentication requested" rather
    than a partially decoded header.

    Example:
        HeaderParseError("Unterminated quoted string at offset 17")
    """


class ConfigurationError(OpenIDMiddlewareError):
    """Raised when the middleware is constructed with invalid settings.

    This exception is raised when:
        - The challenge header name is empty
        - The challenge status is not a 4xx status code

    Example:
        ConfigurationError("challenge_header must be a non-empty header name")
    """
