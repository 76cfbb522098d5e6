import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_H


def generate_qr_base64(data: str, fill_color: str = "black", back_color: str = "white",
                       box_size: int = 10) -> str:
    """PNG QR code for ``data``, base64 encoded.

    High error correction leaves room for a logo overlay on the client.
    """
    qr = qrcode.QRCode(box_size=box_size, border=4, error_correction=ERROR_CORRECT_H)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color=fill_color, back_color=back_color)

    with BytesIO() as buf:
        img.save(buf)
        return base64.b64encode(buf.getvalue()).decode()
