import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import pendulum
import qrcode
from PIL import Image, UnidentifiedImageError

from config.config_stip import UTF8
from utils.Credential import Credential
from utils.errors import DetectionFailure
from utils.otpauth import build_url

logger = logging.getLogger(__name__)

GREYSCALE = "L"


@dataclass
class GreyImage:
    """
    An 8-bit greyscale pixel buffer, one byte per pixel, row major.
    """
    width: int
    height: int
    pixels: bytes

    def pixel(self, x: int, y: int) -> int:
        return self.pixels[y * self.width + x]


@contextmanager
def load_greyscale(image_bytes: bytes) -> Iterator[GreyImage]:
    """
    Decode a compressed image (PNG, JPEG, WebP, ...) into greyscale.

    The pixel buffer only lives inside the `with` block and is released on
    every exit path, including errors raised by the caller.

    Args:
        image_bytes: Encoded image file contents.

    Yields:
        The decoded GreyImage.

    Raises:
        DetectionFailure: If the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            grey = img.convert(GREYSCALE)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DetectionFailure(f"could not decode image: {e}") from e

    try:
        image = GreyImage(width=grey.width, height=grey.height, pixels=grey.tobytes())
    finally:
        grey.close()

    try:
        yield image
    finally:
        image.pixels = b""


def detect_payloads(image: GreyImage) -> list[str]:
    """
    Find and decode every QR code in a greyscale image.

    Returns:
        Decoded text payloads, in the order the detector reports them.
        Payloads that are not UTF-8 are skipped.
    """
    # zbar is loaded on first use so the rest of Stip works without it
    from pyzbar.pyzbar import ZBarSymbol, decode

    found = decode((image.pixels, image.width, image.height), symbols=[ZBarSymbol.QRCODE])

    payloads = []
    for symbol in found:
        try:
            payloads.append(symbol.data.decode(UTF8))
        except UnicodeDecodeError:
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] skipped a QR code that is not UTF-8 text")
    return payloads


def read_qr_payload(image_bytes: bytes) -> str:
    """
    Return the text of the first QR code found in an encoded image.

    Raises:
        DetectionFailure: If the image cannot be decoded or holds no
            readable QR code.
    """
    with load_greyscale(image_bytes) as image:
        payloads = detect_payloads(image)

    if not payloads:
        raise DetectionFailure()
    return payloads[0]


def make_qr_png(data: str) -> bytes:
    """Render `data` as a black on white QR code PNG."""
    qr = qrcode.QRCode(box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def export_qr(credential: Credential, path: str | Path) -> Path:
    """
    Write the credential's otpauth URL as a QR code PNG.

    Args:
        credential: Credential to export.
        path: Destination file.

    Returns:
        The path written.

    Security Notes:
        - The PNG contains the shared secret. Treat it like the secret.
    """
    path = Path(path)
    path.write_bytes(make_qr_png(build_url(credential)))
    return path
