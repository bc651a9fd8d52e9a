"""QR code rendering for deposit addresses."""

from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_H


def qr_png(data: str, *, box_size: int = 10, border: int = 1) -> bytes:
    """Render ``data`` as a PNG with high error correction."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
