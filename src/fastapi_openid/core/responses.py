"""Handshake outcomes handed to the wrapped application.

OpenIDResponse wraps whatever the consumer library returned (success,
failure, cancel, setup needed) and adds the outcomes the middleware
produces on its own: missing, invalid and timeout.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from openid.extensions import sreg

logger = logging.getLogger(__name__)


class ResponseStatus(Enum):
    """Classification of a completed or attempted handshake."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCEL = "cancel"
    SETUP_NEEDED = "setup_needed"
    MISSING = "missing"
    INVALID = "invalid"
    TIMEOUT = "timeout"


_LIBRARY_STATUSES: dict[str, ResponseStatus] = {
    "success": ResponseStatus.SUCCESS,
    "failure": ResponseStatus.FAILURE,
    "cancel": ResponseStatus.CANCEL,
    "setup_needed": ResponseStatus.SETUP_NEEDED,
}


@dataclass(frozen=True)
class OpenIDResponse:
    """Immutable result of an OpenID handshake.

    Attributes:
        status: Which outcome the handshake had.
        identity_url: Identity URL reported by the provider, if any.
        display_identifier: Identifier the provider wants shown to the user.
        sreg: Simple Registration data returned with a successful response.
        message: Diagnostic message for failed handshakes.
        raw: The consumer library's own response object, if there was one.
    """

    status: ResponseStatus
    identity_url: str | None = None
    display_identifier: str | None = None
    sreg: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), hash=False)
    message: str | None = None
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def is_success(self) -> bool:
        """Check if the provider confirmed the claimed identity."""
        return self.status is ResponseStatus.SUCCESS

    @classmethod
    def missing(cls, message: str | None = None) -> "OpenIDResponse":
        """No OpenID provider could be found or contacted for the identifier."""
        return cls(status=ResponseStatus.MISSING, message=message)

    @classmethod
    def invalid(cls, message: str | None = None) -> "OpenIDResponse":
        """The identifier could not be normalized into a URI."""
        return cls(status=ResponseStatus.INVALID, message=message)

    @classmethod
    def timeout(cls, message: str | None = None) -> "OpenIDResponse":
        """The provider did not answer in time while verifying the response."""
        return cls(status=ResponseStatus.TIMEOUT, message=message)

    @classmethod
    def from_consumer_response(cls, response: Any) -> "OpenIDResponse":
        """Wrap a response returned by ``Consumer.complete``.

        Args:
            response: A python3-openid response (SuccessResponse,
                FailureResponse, CancelResponse or SetupNeededResponse).

        Returns:
            The equivalent OpenIDResponse. Unknown statuses are treated
            as failures.
        """
        status = _LIBRARY_STATUSES.get(getattr(response, "status", None), ResponseStatus.FAILURE)

        display_identifier = None
        get_display_identifier = getattr(response, "getDisplayIdentifier", None)
        if callable(get_display_identifier):
            display_identifier = get_display_identifier()

        sreg_data: Mapping[str, str] = MappingProxyType({})
        message = None
        if status is ResponseStatus.SUCCESS:
            sreg_data = _extract_sreg(response)
        elif status is ResponseStatus.FAILURE:
            # SuccessResponse.message is the signed protocol message, not text
            message = getattr(response, "message", None)

        return cls(
            status=status,
            identity_url=getattr(response, "identity_url", None),
            display_identifier=display_identifier,
            sreg=sreg_data,
            message=message,
            raw=response,
        )


def _extract_sreg(response: Any) -> Mapping[str, str]:
    try:
        sreg_response = sreg.SRegResponse.fromSuccessResponse(response)
    except sreg.SRegNamespaceError as e:
        logger.warning(
            "Ignoring malformed Simple Registration response",
            extra={"error": str(e)},
        )
        return MappingProxyType({})

    if sreg_response is None:
        return MappingProxyType({})
    return MappingProxyType(dict(sreg_response.data))
