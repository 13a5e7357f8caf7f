"""
otpauth:// URL parsing and building.

Only the TOTP flavour is understood:

    otpauth://totp/<label>?secret=<base32>&issuer=<text>&digits=<n>&period=<n>

The label may carry the issuer as "issuer:account". An explicit `issuer`
query parameter takes precedence over it.
"""
import logging
import re
from urllib.parse import parse_qsl, quote, urlencode, unquote, urlsplit

from config.config_stip import DEFAULT_DIGITS, DEFAULT_PERIOD, MAX_DIGITS
from utils import base32
from utils.Credential import Credential
from utils.errors import CodecError, UrlErrorKind, UrlParseError

logger = logging.getLogger(__name__)

SCHEME = "otpauth"
TOTP_DOMAIN = "totp"

MAX_PERIOD = 2 ** 64


def _parse_uint(key: str, value: str, limit: int | None = None) -> int:
    """Parse a base-10 unsigned integer query value."""
    if not re.fullmatch(r"[0-9]+", value):
        logger.debug(f"Failed to parse {key}={value!r} as a base 10 integer")
        raise UrlParseError(UrlErrorKind.INVALID_URL, f"{key} is not a number")

    number = int(value)
    if limit is not None and number >= limit:
        raise UrlParseError(UrlErrorKind.INVALID_URL, f"{key} is too large")
    return number


def parse_url(text: str) -> Credential:
    """
    Parse an otpauth URL into a Credential.

    Args:
        text: URL recovered from a QR code or a database record.

    Returns:
        The parsed credential, with the secret already base32-decoded.

    Raises:
        UrlParseError: With kind
            INVALID_URL      - not a URL, bad label encoding, bad number;
            INVALID_SCHEME   - scheme is not "otpauth";
            INVALID_DOMAIN   - type is not "totp";
            NO_ISSUER        - neither the label nor the query names one;
            INCOMPLETE_QUERY - secret missing or not valid base32.
    """
    # 1. Generic URL syntax
    try:
        parts = urlsplit(text.strip())
    except (ValueError, AttributeError) as e:
        raise UrlParseError(UrlErrorKind.INVALID_URL, str(e)) from e
    if not parts.scheme:
        raise UrlParseError(UrlErrorKind.INVALID_URL, "missing scheme")

    # 2. Scheme and 3. type
    if parts.scheme.lower() != SCHEME:
        raise UrlParseError(UrlErrorKind.INVALID_SCHEME, parts.scheme)
    if parts.netloc != TOTP_DOMAIN:
        raise UrlParseError(UrlErrorKind.INVALID_DOMAIN, parts.netloc)

    # 4. Label, optionally "issuer:account"
    try:
        label = unquote(parts.path.lstrip("/"), errors="strict")
    except UnicodeDecodeError as e:
        raise UrlParseError(UrlErrorKind.INVALID_URL, "label is not UTF-8") from e

    issuer, sep, account_label = label.partition(":")
    if not sep:
        issuer, account_label = None, label

    # 5. Query parameters, last occurrence wins
    secret = None
    digits = DEFAULT_DIGITS
    period = DEFAULT_PERIOD
    try:
        pairs = parse_qsl(parts.query, keep_blank_values=True,
                          encoding="utf-8", errors="strict")
    except (ValueError, UnicodeDecodeError) as e:
        raise UrlParseError(UrlErrorKind.INVALID_URL, str(e)) from e

    for key, value in pairs:
        if key == "secret":
            try:
                secret = base32.decode(value)
            except CodecError as e:
                raise UrlParseError(UrlErrorKind.INCOMPLETE_QUERY,
                                    "secret is not base32") from e
        elif key == "issuer":
            if value:
                issuer = value
        elif key == "digits":
            digits = _parse_uint(key, value, MAX_DIGITS + 1)
        elif key == "period":
            period = _parse_uint(key, value, MAX_PERIOD)

    # 6. Issuer
    if not issuer:
        raise UrlParseError(UrlErrorKind.NO_ISSUER)

    # 7. Secret
    if not secret:
        raise UrlParseError(UrlErrorKind.INCOMPLETE_QUERY, "missing secret")

    if digits == 0 or period == 0:
        raise UrlParseError(UrlErrorKind.INVALID_URL, "digits and period must be positive")

    return Credential(
        issuer=issuer,
        account_label=account_label,
        secret=secret,
        digits=digits,
        period_seconds=period,
    )


def build_url(credential: Credential) -> str:
    """
    Build the otpauth URL for a credential.

    The inverse of `parse_url`, used when exporting a credential to
    another authenticator.

    Returns:
        The URL with an upper-case, padded base32 secret.
    """
    # Always "issuer:account" so an empty account survives a round trip
    label = quote(f"{credential.issuer}:{credential.account_label}", safe="")
    query = urlencode(
        {
            "secret": credential.secret_b32(),
            "issuer": credential.issuer,
            "digits": credential.digits,
            "period": credential.period_seconds,
        },
        quote_via=quote,
    )
    return f"{SCHEME}://{TOTP_DOMAIN}/{label}?{query}"
