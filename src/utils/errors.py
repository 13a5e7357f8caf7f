"""
Error types raised by Stip.

Every failure the core can report is a StipError carrying a `kind` from a
closed Enum, so a front end can tell "needs a password" from "wrong
password" without parsing messages.
"""
from enum import Enum


class CodecErrorKind(Enum):
    INVALID_CHARACTER = "invalid character"


class UrlErrorKind(Enum):
    INVALID_URL = "invalid url"
    INVALID_SCHEME = "invalid scheme"
    INVALID_DOMAIN = "invalid domain"
    INCOMPLETE_QUERY = "incomplete query"
    NO_ISSUER = "no issuer"


class VaultErrorKind(Enum):
    NOT_FOUND = "not found"
    PERMISSION_OR_IO_FAILURE = "permission or i/o failure"
    PASSWORD_REQUIRED = "password required"
    INVALID_PASSWORD = "invalid password"
    CORRUPT_CONTAINER = "corrupt container"


class StipError(Exception):
    """Base class for every recoverable Stip failure."""

    kind: Enum | None = None

    def __init__(self, kind: Enum | None = None, message: str = ""):
        self.kind = kind
        self.message = message
        text = kind.value if kind is not None else ""
        if message:
            text = f"{text}: {message}" if text else message
        super().__init__(text)


class CodecError(StipError, ValueError):
    """Base32 text could not be decoded."""

    def __init__(self, kind: CodecErrorKind = CodecErrorKind.INVALID_CHARACTER,
                 message: str = ""):
        super().__init__(kind, message)


class UrlParseError(StipError, ValueError):
    """An otpauth URL was rejected."""

    def __init__(self, kind: UrlErrorKind, message: str = ""):
        super().__init__(kind, message)


class VaultError(StipError):
    """A container could not be located, opened or decrypted."""

    def __init__(self, kind: VaultErrorKind, message: str = ""):
        super().__init__(kind, message)


class DetectionFailure(StipError):
    """No QR payload could be read from an image."""

    def __init__(self, message: str = "no QR code detected"):
        super().__init__(None, message)
