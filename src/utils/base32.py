"""
RFC 4648 base32 codec.

Shared secrets travel as base32 text inside otpauth URLs. Decoding is case
insensitive and strict about padding: '=' may only appear as one trailing
run. Bits left over after the last full byte are dropped without being
checked.
"""
from utils.errors import CodecError, CodecErrorKind

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
PAD = "="

# Characters needed for a final group of 1, 2, 3 or 4 bytes
_PARTIAL_CHARS = {1: 2, 2: 4, 3: 5, 4: 7}


def _value(char: str) -> int:
    """Map one base32 character to its 5-bit value."""
    if "A" <= char <= "Z":
        return ord(char) - ord("A")
    if "a" <= char <= "z":
        return ord(char) - ord("a")
    if "2" <= char <= "7":
        return ord(char) - ord("2") + 26
    raise CodecError(CodecErrorKind.INVALID_CHARACTER, repr(char))


def decode(text: str | bytes | bytearray) -> bytes:
    """
    Decode base32 text into raw bytes.

    Args:
        text: Base32 text. Bytes are read as ASCII.

    Returns:
        The decoded bytes. Empty input gives empty output.

    Raises:
        CodecError: If a character is outside [A-Za-z2-7=] or a
            non-padding character follows a '='.
    """
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("latin-1")

    result = bytearray()
    buffer = 0
    left = 0

    chars = iter(text)
    for char in chars:
        if char == PAD:
            # Everything after the first '=' must also be padding
            for rest in chars:
                if rest != PAD:
                    raise CodecError(CodecErrorKind.INVALID_CHARACTER,
                                     f"{rest!r} after padding")
            break

        buffer = (buffer << 5) | _value(char)
        left += 5

        if left >= 8:
            result.append((buffer >> (left - 8)) & 0xFF)
            left -= 8
            buffer &= (1 << left) - 1

    return bytes(result)


def encode(data: bytes | bytearray) -> str:
    """
    Encode raw bytes as uppercase, '='-padded base32 text.

    Every 5 input bytes become 8 characters; a final partial group of
    1, 2, 3 or 4 bytes becomes 2, 4, 5 or 7 characters plus padding.
    """
    out = []
    for start in range(0, len(data), 5):
        group = bytes(data[start:start + 5])
        size = len(group)
        # Right-pad to 40 bits, then read eight 5-bit values MSB first
        bits = int.from_bytes(group.ljust(5, b"\x00"), "big")
        chars = [ALPHABET[(bits >> shift) & 0x1F] for shift in range(35, -1, -5)]

        used = 8 if size == 5 else _PARTIAL_CHARS[size]
        out.extend(chars[:used])
        out.append(PAD * (8 - used))

    return "".join(out)
