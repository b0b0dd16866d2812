"""QR codes for payment links (PNG, ~300px, 2-module quiet zone)."""
import base64
import logging
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

QR_SIZE_PX = 300
QR_MARGIN = 2


def render_qr_png(data: str, size: int = QR_SIZE_PX, margin: int = QR_MARGIN) -> bytes:
    qr = qrcode.QRCode(version=None, error_correction=ERROR_CORRECT_M, box_size=10, border=margin)
    qr.add_data(data)
    qr.make(fit=True)

    # Pick the module size that gets closest to `size` without exceeding it
    total_modules = qr.modules_count + 2 * margin
    qr.box_size = max(1, size // total_modules)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def try_render_qr_png(data: str):
    """QR rendering is cosmetic: a failure is logged and the link is still returned."""
    try:
        return render_qr_png(data)
    except Exception as e:
        logger.error(f"Failed to generate QR code for {data}: {e}", exc_info=True)
        return None
