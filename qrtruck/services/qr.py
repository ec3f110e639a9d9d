"""
Truck QR codes.

Each truck's code encodes ``{APP_BASE_URL}/t/{truck_id}``, the public menu
page customers land on.
"""

import base64
import io
import logging

import qrcode

from qrtruck.core.config import get_settings

logger = logging.getLogger(__name__)


def truck_menu_url(truck_id: str, base_url: str = None) -> str:
    base_url = (base_url or get_settings().app_base_url).rstrip("/")
    return f"{base_url}/t/{truck_id}"


def generate_truck_qr_png(truck_id: str, base_url: str = None) -> bytes:
    """Render the truck's QR code as PNG bytes."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=16,
        border=2,
    )
    qr.add_data(truck_menu_url(truck_id, base_url))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_truck_qr_data_url(truck_id: str, base_url: str = None) -> str:
    """Render the truck's QR code as a ``data:image/png;base64,...`` URL."""
    encoded = base64.b64encode(generate_truck_qr_png(truck_id, base_url)).decode()
    logger.debug(f"QR code generated for truck {truck_id}")
    return f"data:image/png;base64,{encoded}"


def decode_data_url(data_url: str) -> bytes:
    """PNG bytes from a stored data URL."""
    _, _, payload = data_url.partition(",")
    return base64.b64decode(payload)
