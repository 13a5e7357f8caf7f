import logging
import zipfile
import zlib
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

import pendulum

from config.config_stip import UTF8
from utils.Credential import Credential
from utils.errors import DetectionFailure, UrlErrorKind, UrlParseError, VaultError, VaultErrorKind
from utils.otpauth import SCHEME, parse_url
from utils.qr_utils import read_qr_payload

logger = logging.getLogger(__name__)

# General purpose flag bits (APPNOTE 4.4.4)
FLAG_ENCRYPTED = 0x0001
FLAG_STRONG_ENCRYPTION = 0x0040

SUPPORTED_METHODS = {
    zipfile.ZIP_STORED,
    zipfile.ZIP_DEFLATED,
    zipfile.ZIP_BZIP2,
    zipfile.ZIP_LZMA,
}

LOCKED = (VaultErrorKind.PASSWORD_REQUIRED, VaultErrorKind.INVALID_PASSWORD)


# ==============================================================
# Data model
# ==============================================================
@dataclass(frozen=True)
class VaultLocation:
    """
    A path split at the container boundary.

    `container_path` is an existing file. `inner_suffix` is the
    '/'-delimited name inside it, or None when the path is a plain file.
    """
    container_path: Path
    inner_suffix: str | None = None

    @property
    def is_plain(self) -> bool:
        return self.inner_suffix is None


@dataclass(frozen=True)
class ArchiveEntry:
    """One stored entry. `index` is only meaningful for the archive it came from."""
    name: str
    index: int
    is_encrypted: bool


@dataclass(frozen=True)
class VaultSecret:
    """
    One row of an archive listing.

    `credential` is None when the entry is encrypted and could not be
    opened with the password given.
    """
    name: str
    is_encrypted: bool
    credential: Credential | None = None


@dataclass(frozen=True)
class Outcome:
    """
    Result of one step of a listing: an item, a diagnostic, or both
    (an item kept despite a problem worth reporting).
    """
    item: Any = None
    diagnostic: str | None = None


def keep_items(outcomes: Iterable[Outcome], source: str) -> Iterator[Any]:
    """
    Log the diagnostics of a listing and pass its items through.

    A bad item never stops the listing.
    """
    for outcome in outcomes:
        if outcome.diagnostic:
            now = pendulum.now().to_iso8601_string()
            logger.warning(f"[{now}] {source}: {outcome.diagnostic}")
        if outcome.item is not None:
            yield outcome.item


# ==============================================================
# Path resolution
# ==============================================================
def _opens_as_file(candidate: Path) -> bool:
    """
    Try to open `candidate` for reading.

    Returns:
        True if it opened, False if nothing exists at that path.

    Raises:
        VaultError: NOT_FOUND if the candidate is a directory (no file can
            sit above one), PERMISSION_OR_IO_FAILURE for any other error.
    """
    try:
        with open(candidate, "rb"):
            return True
    except (FileNotFoundError, NotADirectoryError):
        # ENOTDIR: an earlier component is a file, keep walking up
        return False
    except OSError as e:
        if candidate.is_dir():
            raise VaultError(VaultErrorKind.NOT_FOUND, f"'{candidate}' is a directory") from e
        raise VaultError(VaultErrorKind.PERMISSION_OR_IO_FAILURE,
                         f"cannot open '{candidate}': {e.strerror or e}") from e


def resolve_location(path: str | Path) -> VaultLocation:
    """
    Split a path into the file it lives in and the name inside that file.

    `vault.zip/folder/secret.png` resolves to container `vault.zip` and
    suffix `folder/secret.png`. A path that is itself a file resolves to
    that file with no suffix. The closest existing file wins.

    Args:
        path: Filesystem path, possibly crossing into an archive.

    Returns:
        The resolved VaultLocation.

    Raises:
        VaultError: NOT_FOUND if no ancestor is a file,
            PERMISSION_OR_IO_FAILURE if an ancestor exists but cannot be
            opened.
    """
    path = Path(path)

    if _opens_as_file(path):
        return VaultLocation(path)

    # Nearest ancestor first
    for ancestor in path.parents:
        if _opens_as_file(ancestor):
            suffix = path.relative_to(ancestor).as_posix().replace("\\", "/")
            return VaultLocation(ancestor, suffix)

    raise VaultError(VaultErrorKind.NOT_FOUND, f"'{path}'")


# ==============================================================
# Zip archives
# ==============================================================
@contextmanager
def open_archive(container: str | Path) -> Iterator[zipfile.ZipFile]:
    """
    Open a zip archive for the duration of a `with` block.

    Raises:
        VaultError: NOT_FOUND, CORRUPT_CONTAINER or
            PERMISSION_OR_IO_FAILURE.
    """
    try:
        archive = zipfile.ZipFile(container)
    except FileNotFoundError as e:
        raise VaultError(VaultErrorKind.NOT_FOUND, f"'{container}'") from e
    except zipfile.BadZipFile as e:
        raise VaultError(VaultErrorKind.CORRUPT_CONTAINER, f"'{container}': {e}") from e
    except OSError as e:
        raise VaultError(VaultErrorKind.PERMISSION_OR_IO_FAILURE,
                         f"'{container}': {e.strerror or e}") from e

    with archive:
        yield archive


def _is_encrypted(info: zipfile.ZipInfo) -> bool:
    return bool(info.flag_bits & FLAG_ENCRYPTED)


def iter_entries(archive: zipfile.ZipFile) -> Iterator[Outcome]:
    """Describe every stored entry, one Outcome per entry."""
    for index, info in enumerate(archive.infolist()):
        if info.flag_bits & FLAG_STRONG_ENCRYPTION:
            yield Outcome(diagnostic=f"Failed to read file #{index} '{info.filename}': strong encryption is not supported")
        elif info.compress_type not in SUPPORTED_METHODS:
            yield Outcome(diagnostic=f"Failed to read file #{index} '{info.filename}': compression method {info.compress_type} is not supported")
        else:
            yield Outcome(ArchiveEntry(info.filename, index, _is_encrypted(info)))


def _password_bytes(password: str | bytes) -> bytes:
    if isinstance(password, str):
        return password.encode(UTF8)
    return bytes(password)


def _read_info(archive: zipfile.ZipFile, info: zipfile.ZipInfo,
               password: str | bytes | None) -> bytes:
    """
    Read and decrypt one entry of an open archive.

    Raises:
        VaultError: PASSWORD_REQUIRED, INVALID_PASSWORD or
            CORRUPT_CONTAINER.
    """
    name = info.filename
    encrypted = _is_encrypted(info)
    if encrypted and password is None:
        raise VaultError(VaultErrorKind.PASSWORD_REQUIRED, f"'{name}' is encrypted")

    pwd = _password_bytes(password) if encrypted else None

    try:
        handle = archive.open(info, pwd=pwd)
    except RuntimeError as e:
        # zipfile reports a failed password check byte as RuntimeError
        if encrypted:
            raise VaultError(VaultErrorKind.INVALID_PASSWORD, f"when reading '{name}'") from e
        raise VaultError(VaultErrorKind.CORRUPT_CONTAINER, f"'{name}': {e}") from e
    except (zipfile.BadZipFile, NotImplementedError) as e:
        raise VaultError(VaultErrorKind.CORRUPT_CONTAINER, f"'{name}': {e}") from e
    except OSError as e:
        raise VaultError(VaultErrorKind.PERMISSION_OR_IO_FAILURE, f"'{name}': {e}") from e

    with handle:
        try:
            return handle.read()
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            # The check byte lets 1 in 256 wrong passwords through; the
            # CRC of the garbage they decrypt to then fails.
            if encrypted:
                raise VaultError(VaultErrorKind.INVALID_PASSWORD, f"when reading '{name}'") from e
            raise VaultError(VaultErrorKind.CORRUPT_CONTAINER, f"'{name}': {e}") from e
        except OSError as e:
            raise VaultError(VaultErrorKind.PERMISSION_OR_IO_FAILURE, f"'{name}': {e}") from e


def _lookup(archive: zipfile.ZipFile, entry: ArchiveEntry | str) -> zipfile.ZipInfo:
    if isinstance(entry, ArchiveEntry):
        infos = archive.infolist()
        if 0 <= entry.index < len(infos) and infos[entry.index].filename == entry.name:
            return infos[entry.index]
        name = entry.name
    else:
        name = entry

    try:
        return archive.getinfo(name)
    except KeyError as e:
        raise VaultError(VaultErrorKind.NOT_FOUND, f"no entry named '{name}'") from e


def list_entries(container: str | Path) -> list[ArchiveEntry]:
    """
    List the entries stored in a zip archive.

    Entries that cannot be read are skipped and logged.

    Args:
        container: Path of the zip file.

    Returns:
        Entries in archive order.

    Raises:
        VaultError: If the archive itself cannot be opened.
    """
    with open_archive(container) as archive:
        return list(keep_items(iter_entries(archive), str(container)))


def read_entry(container: str | Path, entry: ArchiveEntry | str,
               password: str | bytes | None = None) -> bytes:
    """
    Read one entry of a zip archive, decrypting it when needed.

    Args:
        container: Path of the zip file.
        entry: An ArchiveEntry from `list_entries`, or an entry name.
        password: Password for encrypted entries.

    Returns:
        The complete decrypted contents.

    Raises:
        VaultError: PASSWORD_REQUIRED if the entry is encrypted and no
            password was given, INVALID_PASSWORD if the password is wrong,
            NOT_FOUND if there is no such entry, CORRUPT_CONTAINER if the
            archive is damaged.
    """
    with open_archive(container) as archive:
        return _read_info(archive, _lookup(archive, entry), password)


def read_by_suffix(container: str | Path, suffix: str,
                   password: str | bytes | None = None) -> bytes:
    """Read the entry whose full name is the '/'-delimited `suffix`."""
    return read_entry(container, suffix, password)


def resolve_and_open(path: str | Path, password: str | bytes | None = None) -> bytes:
    """
    Read the bytes a path refers to, looking inside an archive if needed.

    Args:
        path: A plain file, or a path crossing into a zip archive such as
            `vault.zip/folder/secret.png`.
        password: Password for an encrypted archive entry.

    Returns:
        The file or entry contents.

    Raises:
        VaultError: See `resolve_location` and `read_entry`.
    """
    location = resolve_location(path)

    if location.is_plain:
        try:
            return location.container_path.read_bytes()
        except FileNotFoundError as e:
            raise VaultError(VaultErrorKind.NOT_FOUND, f"'{path}'") from e
        except OSError as e:
            raise VaultError(VaultErrorKind.PERMISSION_OR_IO_FAILURE,
                             f"'{path}': {e.strerror or e}") from e

    return read_by_suffix(location.container_path, location.inner_suffix, password)


# ==============================================================
# Secrets
# ==============================================================
def secret_from_bytes(data: bytes, name: str = "") -> Credential:
    """
    Turn file contents into a credential.

    Text starting with "otpauth:" is parsed as a URL. Anything else is
    treated as an image holding a QR code.

    Raises:
        DetectionFailure: If the image holds no readable QR code.
        UrlParseError: If the URL is malformed.
    """
    logger.debug(f"Reading secret from {name or '<bytes>'}")
    stripped = data.strip()
    if stripped[:len(SCHEME) + 1].lower() == f"{SCHEME}:".encode():
        try:
            return parse_url(stripped.decode(UTF8))
        except UnicodeDecodeError as e:
            raise UrlParseError(UrlErrorKind.INVALID_URL, "URL is not UTF-8") from e

    return parse_url(read_qr_payload(data))


def secret_from_path(path: str | Path, password: str | bytes | None = None) -> Credential:
    """Credential stored at `path`, which may cross into an archive."""
    return secret_from_bytes(resolve_and_open(path, password), str(path))


def iter_secrets(archive: zipfile.ZipFile, password: str | bytes | None) -> Iterator[Outcome]:
    """Decode every file entry of an open archive into a VaultSecret."""
    infos = archive.infolist()
    for outcome in iter_entries(archive):
        entry = outcome.item
        if entry is None or entry.name.endswith("/"):
            yield Outcome(diagnostic=outcome.diagnostic)
            continue

        try:
            data = _read_info(archive, infos[entry.index], password)
        except VaultError as e:
            if e.kind in LOCKED:
                yield Outcome(VaultSecret(entry.name, entry.is_encrypted), f"'{entry.name}': {e}")
            else:
                yield Outcome(diagnostic=f"Error reading file '{entry.name}': {e}")
            continue

        try:
            credential = secret_from_bytes(data, entry.name)
        except (DetectionFailure, UrlParseError) as e:
            yield Outcome(diagnostic=f"No secret in '{entry.name}': {e}")
            continue

        yield Outcome(VaultSecret(entry.name, entry.is_encrypted, credential))


def list_secrets(container: str | Path, password: str | bytes | None = None) -> list[VaultSecret]:
    """
    Read every QR code stored in a zip archive.

    Encrypted entries that the password does not open are still listed,
    without a credential. Entries that are not readable images, or whose
    QR code is not an otpauth URL, are skipped and logged.

    Args:
        container: Path of the zip file.
        password: Password tried on every encrypted entry.

    Returns:
        One VaultSecret per usable entry, in archive order.

    Raises:
        VaultError: If the archive itself cannot be opened.
    """
    with open_archive(container) as archive:
        return list(keep_items(iter_secrets(archive, password), str(container)))
