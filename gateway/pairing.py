"""Pairing code rendering."""

from __future__ import annotations

import base64
import io

import qrcode


def render_pairing_png(code: str) -> bytes:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=4,
        border=4,
    )
    qr.add_data(code)
    qr.make(fit=True)
    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF").convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_pairing_data_url(code: str) -> str:
    """Encode ``code`` as a scannable PNG ``data:`` URL."""

    encoded = base64.b64encode(render_pairing_png(code)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
