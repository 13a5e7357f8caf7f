import logging
import zlib
from pathlib import Path
from typing import Iterator

from construct import ConstructError
from lxml.etree import XMLSyntaxError
from pykeepass import PyKeePass
from pykeepass.exceptions import CredentialsError, HeaderChecksumError, PayloadChecksumError

from config.config_stip import KEEPASS_SUFFIXES
from utils.Credential import Credential
from utils.errors import UrlParseError, VaultError, VaultErrorKind
from utils.otpauth import parse_url
from utils.vault_utils import Outcome, keep_items

logger = logging.getLogger(__name__)


def is_database(path: str | Path) -> bool:
    """True if `path` names a KeePass database file."""
    return Path(path).suffix.lower() in KEEPASS_SUFFIXES


def open_database(container: str | Path, password: str | None) -> PyKeePass:
    """
    Decrypt a KeePass database.

    Args:
        container: Path of the .kdbx file.
        password: Master password. An empty string is a real attempt.

    Returns:
        The opened database.

    Raises:
        VaultError: PASSWORD_REQUIRED if password is None,
            INVALID_PASSWORD if the database rejects it, NOT_FOUND,
            PERMISSION_OR_IO_FAILURE or CORRUPT_CONTAINER otherwise.
    """
    if password is None:
        raise VaultError(VaultErrorKind.PASSWORD_REQUIRED, f"'{container}' is encrypted")

    try:
        return PyKeePass(str(container), password=password)
    except CredentialsError as e:
        raise VaultError(VaultErrorKind.INVALID_PASSWORD, f"for '{container}'") from e
    except FileNotFoundError as e:
        raise VaultError(VaultErrorKind.NOT_FOUND, f"'{container}'") from e
    except OSError as e:
        raise VaultError(VaultErrorKind.PERMISSION_OR_IO_FAILURE,
                         f"'{container}': {e.strerror or e}") from e
    except (HeaderChecksumError, PayloadChecksumError) as e:
        raise VaultError(VaultErrorKind.CORRUPT_CONTAINER, f"'{container}': {e}") from e
    except (ConstructError, XMLSyntaxError, zlib.error) as e:
        # pykeepass surfaces malformed files as raw parser errors
        raise VaultError(VaultErrorKind.CORRUPT_CONTAINER,
                         f"'{container}' is not a KeePass database") from e


def iter_credentials(database: PyKeePass) -> Iterator[Outcome]:
    """
    Parse the otpauth URL of every record in an open database.

    The URL field is used, falling back to the `otp` field.
    """
    for entry in database.entries:
        title = entry.title or "<untitled>"
        url = entry.url or entry.otp

        if not url:
            yield Outcome(diagnostic=f"Entry '{title}' has no URL")
            continue

        try:
            yield Outcome(parse_url(url))
        except UrlParseError as e:
            yield Outcome(diagnostic=f"Failed to parse URL of entry '{title}': {e}")


def list_credentials(container: str | Path, password: str | None) -> list[Credential]:
    """
    Read every TOTP credential stored in a KeePass database.

    Records without a URL, or whose URL is not a valid otpauth URL, are
    skipped and logged.

    Args:
        container: Path of the .kdbx file.
        password: Master password.

    Returns:
        Credentials in database order.

    Raises:
        VaultError: If the database cannot be opened. See `open_database`.
    """
    database = open_database(container, password)
    return list(keep_items(iter_credentials(database), str(container)))
