"""Challenge header codec.

An application asks for OpenID authentication by answering with a
challenge response whose header carries the login parameters:

    WWW-Authenticate: OpenID identity="http://example.com/", required="nickname,email"

encode_header builds such a value, decode_header parses it back. The
parser is a small tokenizer over the ``auth-param`` grammar so quoted
values may contain commas.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import parse_qs, quote, unquote

from fastapi_openid.exceptions import HeaderParseError

SCHEME = "OpenID"

RECOGNIZED_KEYS: tuple[str, ...] = (
    "identity",
    "return_to",
    "required",
    "optional",
    "policy_url",
    "method",
)
LIST_KEYS = frozenset({"required", "optional"})

# RFC 7230 tchar
_TOKEN_CHARS = frozenset("!#$%&'*+-.^_`|~0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")

# Percent-encoded bytes outside ASCII; ASCII escapes such as %2F stay as they are
_NON_ASCII_ESCAPES = re.compile(r"(?:%[89A-Fa-f][0-9A-Fa-f])+")


@dataclass(frozen=True)
class AuthRequestParams:
    """Parameters of an OpenID authentication request.

    Attributes:
        identity: The identifier the user claims, not yet normalized.
        return_to: Explicit URL the provider should send the user back to.
        required: Simple Registration fields the application requires.
        optional: Simple Registration fields the application would like.
        policy_url: URL of the application's data usage policy.
        method: HTTP method to restore once the provider redirects back.
        extra: Unrecognized header keys, kept as plain strings.
    """

    identity: str = ""
    return_to: str | None = None
    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()
    policy_url: str | None = None
    method: str | None = None
    extra: Mapping[str, str] = field(default_factory=dict, hash=False)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str | Iterable[str]]) -> "AuthRequestParams":
        """Build parameters from a plain mapping, splitting list keys on commas."""
        known: dict[str, object] = {}
        extra: dict[str, str] = {}
        for key, value in values.items():
            if key in LIST_KEYS:
                known[key] = _split_list(value)
            elif key in RECOGNIZED_KEYS:
                known[key] = value if isinstance(value, str) else ",".join(value)
            else:
                extra[key] = value if isinstance(value, str) else ",".join(value)
        return cls(**known, extra=extra)  # type: ignore[arg-type]

    def items(self) -> list[tuple[str, str]]:
        """Key/value pairs in header order, skipping omitted keys."""
        pairs: list[tuple[str, str]] = [("identity", self.identity)]
        if self.return_to is not None:
            pairs.append(("return_to", self.return_to))
        if self.required:
            pairs.append(("required", ",".join(self.required)))
        if self.optional:
            pairs.append(("optional", ",".join(self.optional)))
        if self.policy_url is not None:
            pairs.append(("policy_url", self.policy_url))
        if self.method is not None:
            pairs.append(("method", self.method))
        pairs.extend(self.extra.items())
        return pairs


def encode_header(params: AuthRequestParams) -> str:
    """Serialize parameters into a challenge header value.

    Args:
        params: The authentication request parameters.

    Returns:
        Header value such as ``OpenID identity="http://example.com/"``.

    Example:
        encode_header(AuthRequestParams("example.com", required=("email",)))
        -> 'OpenID identity="example.com", required="email"'
    """
    pairs = ", ".join(f'{key}="{_escape(value)}"' for key, value in params.items())
    return f"{SCHEME} {pairs}"


def decode_header(value: str | bytes | None) -> AuthRequestParams | None:
    """Parse a challenge header value.

    Accepts the ``OpenID key="value", ...`` form and the legacy plain
    query string form (``identifier=example.com&required=email``).

    Args:
        value: The raw header value.

    Returns:
        The decoded parameters, or None when the value is not an OpenID
        challenge or is malformed. A header is never partially decoded.
    """
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("latin-1")

    text = value.strip()
    scheme, _, rest = text.partition(" ")
    if scheme.lower() == SCHEME.lower():
        try:
            pairs = _HeaderTokenizer(rest).parse()
        except HeaderParseError:
            return None
        return AuthRequestParams.from_mapping(
            {key: _unescape_non_ascii(item) for key, item in pairs}
        )

    return _decode_legacy_query(text)


# Short names matching the header vocabulary used by applications.
build_header = encode_header
parse_header = decode_header


def _decode_legacy_query(text: str) -> AuthRequestParams | None:
    if "identifier=" not in text:
        return None
    try:
        parsed = parse_qs(text, keep_blank_values=True, strict_parsing=True)
    except ValueError:
        return None
    if "identifier" not in parsed:
        return None

    # "identifier" is the only name for the identity in this form
    parsed.pop("identity", None)
    values: dict[str, str | list[str]] = {"identity": parsed.pop("identifier")[-1]}
    for key, items in parsed.items():
        values[key] = items if key in LIST_KEYS else items[-1]
    return AuthRequestParams.from_mapping(values)


def _split_list(value: str | Iterable[str]) -> tuple[str, ...]:
    items = value.split(",") if isinstance(value, str) else value
    return tuple(item.strip() for item in items if item.strip())


def _escape(value: str) -> str:
    # Header values are Latin-1 on the wire; non-ASCII goes out as UTF-8 escapes
    value = "".join(char if char.isascii() else quote(char) for char in value)
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _unescape_non_ascii(value: str) -> str:
    return _NON_ASCII_ESCAPES.sub(lambda match: unquote(match.group()), value)


class _State(Enum):
    KEY = "key"
    EQUALS = "equals"
    VALUE = "value"
    SEPARATOR = "separator"


class _HeaderTokenizer:
    """Single pass parser for ``auth-param *( "," auth-param )``."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def parse(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        state = _State.KEY
        key = ""

        while True:
            self._skip_whitespace()
            at_end = self.pos >= len(self.text)

            match state:
                case _State.KEY:
                    if at_end:
                        if pairs:
                            raise HeaderParseError("Trailing comma at end of header")
                        return pairs
                    key = self._read_token()
                    state = _State.EQUALS
                case _State.EQUALS:
                    self._expect("=")
                    state = _State.VALUE
                case _State.VALUE:
                    if at_end:
                        raise HeaderParseError(f"Missing value for {key!r}")
                    if self.text[self.pos] == '"':
                        value = self._read_quoted()
                    else:
                        value = self._read_token()
                    pairs.append((key, value))
                    state = _State.SEPARATOR
                case _State.SEPARATOR:
                    if at_end:
                        return pairs
                    self._expect(",")
                    state = _State.KEY

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in " \t":
            self.pos += 1

    def _expect(self, char: str) -> None:
        if self.pos >= len(self.text) or self.text[self.pos] != char:
            raise HeaderParseError(f"Expected {char!r} at offset {self.pos}")
        self.pos += 1

    def _read_token(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in _TOKEN_CHARS:
            self.pos += 1
        if start == self.pos:
            raise HeaderParseError(f"Expected token at offset {start}")
        return self.text[start : self.pos]

    def _read_quoted(self) -> str:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == "\\":
                if self.pos + 1 >= len(self.text):
                    break
                chars.append(self.text[self.pos + 1])
                self.pos += 2
            elif char == '"':
                self.pos += 1
                return "".join(chars)
            else:
                chars.append(char)
                self.pos += 1
        raise HeaderParseError(f"Unterminated quoted string at offset {start}")
