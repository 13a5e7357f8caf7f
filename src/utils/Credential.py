from dataclasses import dataclass, field

from config.config_stip import DEFAULT_DIGITS, DEFAULT_PERIOD
from utils import base32


@dataclass
class Credential:
    """
    A TOTP credential recovered from an otpauth URL.

    Holds the issuer, the account label and the raw shared secret along
    with the digit count and period used to derive codes.
    """
    issuer: str
    account_label: str = ''
    secret: bytearray = field(default_factory=bytearray)
    digits: int = DEFAULT_DIGITS
    period_seconds: int = DEFAULT_PERIOD

    def __post_init__(self):
        """
        Validate and normalize fields.

        Ensures the issuer is a non-empty string, the secret is a
        non-empty byte buffer owned by this credential, and digits and
        period are positive integers.
        """
        if not isinstance(self.issuer, str):
            raise TypeError("Issuer must be a string")
        if not self.issuer:
            raise ValueError("Issuer cannot be empty")

        if not isinstance(self.secret, (bytes, bytearray)):
            raise TypeError("Secret must be bytes")
        # Copy so the caller's buffer is never shared
        self.secret = bytearray(self.secret)
        if not self.secret:
            raise ValueError("Secret cannot be empty")

        for name in ("digits", "period_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an integer")
            if value <= 0:
                raise ValueError(f"{name} must be positive")

    def __repr__(self):
        return (
            f"Credential(issuer={self.issuer}, "
            f"account_label={self.account_label}, "
            f"secret=<hidden>, "
            f"digits={self.digits}, "
            f"period_seconds={self.period_seconds})"
        )

    @property
    def name(self) -> str:
        """Display name, "issuer:account" or just the issuer."""
        if self.account_label:
            return f"{self.issuer}:{self.account_label}"
        return self.issuer

    def secret_b32(self) -> str:
        """The shared secret as base32 text."""
        return base32.encode(self.secret)

    def wipe(self):
        """
        Wipe the secret buffer in memory.

        Side Effects:
            Overwrites the secret with zeros.
        """
        for i in range(len(self.secret)):
            self.secret[i] = 0

    def to_dict(self) -> dict:
        """
        Serialize the credential to a dictionary.

        Returns:
            Dictionary with the secret encoded as base32.

        Security Notes:
            - The secret is returned in a reversible encoding.
            - Intended for trusted export only.
        """
        return {
            "issuer": self.issuer,
            "account": self.account_label,
            "secret": self.secret_b32(),
            "digits": self.digits,
            "period": self.period_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        """
        Create a credential from a dictionary made by `to_dict`.

        Raises:
            TypeError: If data is not a dict.
            KeyError: If issuer or secret is missing.
            CodecError: If the secret is not valid base32.
        """
        if not isinstance(data, dict):
            raise TypeError("Credential data must be a dict")

        return cls(
            issuer=data["issuer"],
            account_label=data.get("account", ""),
            secret=base32.decode(data["secret"]),
            digits=int(data.get("digits", DEFAULT_DIGITS)),
            period_seconds=int(data.get("period", DEFAULT_PERIOD)),
        )
