import base64
from io import BytesIO

import qrcode

DATA_URL_PREFIX = "data:image/png;base64,"

# 512px-class output: box_size * (modules + 2 * border)
BOX_SIZE = 6
BORDER = 2


def render_qr_png(payload: str) -> bytes:
    """Render the payload as a black-on-white PNG, error correction level M."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=BOX_SIZE,
        border=BORDER,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_url(png: bytes) -> str:
    return DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")
