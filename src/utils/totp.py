"""
HOTP (RFC 4226) and TOTP (RFC 6238) code derivation.

Nothing here reads the wall clock directly. Time-dependent helpers take a
clock: any zero-argument callable returning unix seconds as a float.
`system_clock` is the default one.
"""
import struct
from dataclasses import dataclass
from typing import Callable

import pendulum

from config.config_stip import DEFAULT_PERIOD, MAX_DIGITS
from utils.Credential import Credential
from utils.crypto_utils import hmac_sha1

Clock = Callable[[], float]

MAX_COUNTER = 2 ** 64


def system_clock() -> float:
    """Current unix time in seconds."""
    return pendulum.now("UTC").timestamp()


@dataclass(frozen=True)
class TotpToken:
    """
    One derived code and the half-open interval it is valid for.
    """
    number: int
    digits: int
    window_start: pendulum.DateTime
    window_end: pendulum.DateTime

    @property
    def code(self) -> str:
        """The number as exactly `digits` zero-padded characters."""
        return f"{self.number:0{self.digits}d}"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "number": self.number,
            "digits": self.digits,
            "valid_from": self.window_start.to_iso8601_string(),
            "valid_until": self.window_end.to_iso8601_string(),
        }


def derive(secret: bytes, counter: int, digits: int) -> int:
    """
    Derive an HOTP value from a secret and a moving factor.

    Args:
        secret: Raw shared secret.
        counter: Moving factor, an unsigned 64-bit integer.
        digits: Number of decimal digits wanted. From MAX_DIGITS on, the
            truncated 31-bit value is returned whole.

    Returns:
        The code as an integer below 10**digits.

    Raises:
        ValueError: If counter does not fit in 64 unsigned bits.
    """
    if not 0 <= counter < MAX_COUNTER:
        raise ValueError(f"Counter {counter} out of range")

    mac = hmac_sha1(secret, struct.pack(">Q", counter))

    # Dynamic truncation
    offset = mac[19] & 0x0F
    number = (
        ((mac[offset] & 0x7F) << 24)
        | (mac[offset + 1] << 16)
        | (mac[offset + 2] << 8)
        | mac[offset + 3]
    )

    if digits >= MAX_DIGITS:
        return number
    return number % (10 ** digits)


def from_time(secret: bytes, unix_seconds: int, digits: int,
              period: int = DEFAULT_PERIOD) -> int:
    """TOTP value for the period containing `unix_seconds`."""
    return derive(secret, int(unix_seconds) // period, digits)


def window(unix_seconds: float, period: int = DEFAULT_PERIOD) -> tuple[int, int]:
    """Start and end (exclusive) of the period containing `unix_seconds`."""
    start = (int(unix_seconds) // period) * period
    return start, start + period


def remaining_seconds(unix_seconds: float, period: int = DEFAULT_PERIOD) -> int:
    """Whole seconds left before the current code expires."""
    return period - (int(unix_seconds) % period)


def progress(clock: Clock = system_clock, period: int = DEFAULT_PERIOD) -> float:
    """
    Fraction of the current period already elapsed.

    Computed from whole milliseconds so a fixed clock always yields the
    same value.

    Returns:
        A float in [0, 1).
    """
    millis = int(clock() * 1000)
    span = period * 1000
    return (millis % span) / span


def current_token(credential: Credential, now: float | None = None,
                  clock: Clock = system_clock) -> TotpToken:
    """
    Build the token a credential shows at time `now`.

    Args:
        credential: Parsed credential.
        now: Unix seconds. When None the clock is read.
        clock: Time source used when `now` is None.

    Returns:
        A new TotpToken.
    """
    if now is None:
        now = clock()

    period = credential.period_seconds
    start, end = window(now, period)
    number = from_time(credential.secret, int(now), credential.digits, period)

    return TotpToken(
        number=number,
        digits=credential.digits,
        window_start=pendulum.from_timestamp(start),
        window_end=pendulum.from_timestamp(end),
    )
