from cryptography.hazmat.primitives import hashes

from config.config_stip import SHA1_BLOCK_SIZE

SHA1_DIGEST_SIZE = 20

INNER_PAD = 0x36
OUTER_PAD = 0x5C


def sha1(*chunks: bytes) -> bytes:
    """
    Hash the concatenation of `chunks` with SHA1.

    Args:
        chunks: Byte strings fed to the hash in order.

    Returns:
        The 20-byte digest.
    """
    digest = hashes.Hash(hashes.SHA1())
    for chunk in chunks:
        digest.update(bytes(chunk))
    return digest.finalize()


def hmac_sha1(secret: bytes, message: bytes) -> bytes:
    """
    Compute HMAC-SHA1 (RFC 2104) of `message` keyed with `secret`.

    Keys longer than the SHA1 block are replaced by their digest. The key
    is zero-padded to 64 bytes and XORed with 0x36 and 0x5C to build the
    inner and outer pads.

    Args:
        secret: Shared secret of any length.
        message: Data to authenticate, usually an 8-byte counter.

    Returns:
        The 20-byte authentication code.

    Security:
        - The padded key lives only in local buffers and is overwritten
          before returning.
    """
    key = bytearray(SHA1_BLOCK_SIZE)
    if len(secret) > SHA1_BLOCK_SIZE:
        key[:SHA1_DIGEST_SIZE] = sha1(secret)
    else:
        key[:len(secret)] = secret

    ipad = bytearray(b ^ INNER_PAD for b in key)
    opad = bytearray(b ^ OUTER_PAD for b in key)

    try:
        inner = sha1(ipad, message)
        return sha1(opad, inner)
    finally:
        for buf in (key, ipad, opad):
            for i in range(len(buf)):
                buf[i] = 0
