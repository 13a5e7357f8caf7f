"""
Shared fixtures for the Stip test suite.

The standard library can read ZipCrypto archives but not write them, so
encrypted fixtures come from the small writer below (stored entries only).
"""
import struct
import zlib
from pathlib import Path

import pytest

from utils.Credential import Credential
from utils.otpauth import build_url

# RFC 4226 / RFC 6238 reference secret
RFC_SECRET = b"12345678901234567890"

ZIP_PASSWORD = "correct horse"

# ─── ZipCrypto writer ──────────────────────────────────────────────────

CRC_TABLE = []
for _i in range(256):
    _c = _i
    for _ in range(8):
        _c = (_c >> 1) ^ 0xEDB88320 if _c & 1 else _c >> 1
    CRC_TABLE.append(_c)


class ZipCryptoCipher:
    """Traditional PKWARE encryption (APPNOTE 6.1)."""

    def __init__(self, password: bytes):
        self.keys = [0x12345678, 0x23456789, 0x34567890]
        for byte in password:
            self._update(byte)

    @staticmethod
    def _crc(crc: int, byte: int) -> int:
        return (crc >> 8) ^ CRC_TABLE[(crc ^ byte) & 0xFF]

    def _update(self, byte: int) -> None:
        k0, k1, k2 = self.keys
        k0 = self._crc(k0, byte)
        k1 = (k1 + (k0 & 0xFF)) & 0xFFFFFFFF
        k1 = (k1 * 134775813 + 1) & 0xFFFFFFFF
        k2 = self._crc(k2, (k1 >> 24) & 0xFF)
        self.keys = [k0, k1, k2]

    def encrypt(self, data: bytes) -> bytes:
        out = bytearray()
        for byte in data:
            temp = (self.keys[2] | 2) & 0xFFFF
            out.append(byte ^ (((temp * (temp ^ 1)) >> 8) & 0xFF))
            self._update(byte)
        return bytes(out)


def write_zip(path: Path, entries) -> Path:
    """
    Write a zip archive of stored entries.

    Args:
        path: Destination file.
        entries: Iterable of (name, data, password) or
            (name, data, password, method) tuples. A password of None
            leaves the entry unencrypted. `method` only changes the
            recorded compression method.
    """
    local = bytearray()
    central = bytearray()
    count = 0

    for entry in entries:
        name, data, password = entry[:3]
        method = entry[3] if len(entry) > 3 else 0
        raw_name = name.encode("utf-8")
        crc = zlib.crc32(data) & 0xFFFFFFFF
        flags = 0
        payload = data

        if password is not None:
            flags |= 0x1
            cipher = ZipCryptoCipher(password.encode("utf-8"))
            header = bytes(11) + bytes([(crc >> 24) & 0xFF])
            payload = cipher.encrypt(header + data)

        offset = len(local)
        local += struct.pack("<IHHHHHIIIHH", 0x04034B50, 20, flags, method, 0, 0x21,
                             crc, len(payload), len(data), len(raw_name), 0)
        local += raw_name + payload

        central += struct.pack("<IHHHHHHIIIHHHHHII", 0x02014B50, 20, 20, flags, method, 0, 0x21,
                               crc, len(payload), len(data), len(raw_name), 0, 0, 0, 0, 0, offset)
        central += raw_name
        count += 1

    end = struct.pack("<IHHHHIIH", 0x06054B50, 0, 0, count, count,
                      len(central), len(local), 0)

    path.write_bytes(bytes(local) + bytes(central) + end)
    return path


# ─── Credentials ───────────────────────────────────────────────────────


@pytest.fixture
def rfc_credential():
    """8-digit credential over the RFC test secret."""
    return Credential(issuer="ACME", account_label="alice@example.com",
                      secret=RFC_SECRET, digits=8)


@pytest.fixture
def rfc_url(rfc_credential):
    return build_url(rfc_credential)


@pytest.fixture
def other_url():
    return build_url(Credential(issuer="BigTech", account_label="bob",
                                secret=b"\x21\x22"))


# ─── Archives ──────────────────────────────────────────────────────────


@pytest.fixture
def vault_zip(tmp_path, rfc_url, other_url):
    """
    Archive with a plain and an encrypted otpauth text entry, plus a
    directory entry and a non-secret file.
    """
    folder = tmp_path / "a"
    folder.mkdir()
    return write_zip(folder / "b.zip", [
        ("plain.txt", rfc_url.encode(), None),
        ("inner/", b"", None),
        ("inner/secret.txt", other_url.encode(), ZIP_PASSWORD),
        ("notes.bin", b"\x00\x01 not a secret", None),
    ])


@pytest.fixture
def url_file(tmp_path, rfc_url):
    path = tmp_path / "secret.txt"
    path.write_text(rfc_url + "\n", encoding="utf-8")
    return path


# ─── KeePass ───────────────────────────────────────────────────────────

KDBX_PASSWORD = "hunter2"


@pytest.fixture
def kdbx_file(tmp_path, rfc_url, other_url):
    """
    Database with a URL entry, an otp-field entry, an entry without any
    URL and one with a broken URL.
    """
    from pykeepass import create_database

    path = tmp_path / "vault.kdbx"
    kp = create_database(str(path), password=KDBX_PASSWORD)
    kp.add_entry(kp.root_group, "ACME", "alice", "pw1", url=rfc_url)
    kp.add_entry(kp.root_group, "BigTech", "bob", "pw2", otp=other_url)
    kp.add_entry(kp.root_group, "Forum", "carol", "pw3")
    kp.add_entry(kp.root_group, "Broken", "dave", "pw4", url="https://example.com/login")
    kp.save()
    return path
