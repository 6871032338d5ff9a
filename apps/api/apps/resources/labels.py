"""
Sterilization label rendering (PNG via qrcode + Pillow).
"""
import base64
import logging
from io import BytesIO

import qrcode
from PIL import Image

from .qr_code import DEFAULT_QR_OPTIONS

logger = logging.getLogger(__name__)

ERROR_CORRECTION_LEVELS = {
    'L': qrcode.constants.ERROR_CORRECT_L,
    'M': qrcode.constants.ERROR_CORRECT_M,
    'Q': qrcode.constants.ERROR_CORRECT_Q,
    'H': qrcode.constants.ERROR_CORRECT_H,
}


def render_qr_png(content, **options):
    """
    Render `content` as a square PNG and return the bytes.

    Options (defaults in DEFAULT_QR_OPTIONS): width, margin,
    error_correction ('L'|'M'|'Q'|'H'), dark, light.
    """
    opts = {**DEFAULT_QR_OPTIONS, **options}

    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECTION_LEVELS[opts['error_correction']],
        box_size=10,
        border=opts['margin'],
    )
    qr.add_data(content)
    qr.make(fit=True)

    img = qr.make_image(fill_color=opts['dark'], back_color=opts['light']).get_image()
    img = img.convert('RGB').resize((opts['width'], opts['width']), Image.Resampling.NEAREST)

    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def render_qr_data_url(content, **options):
    """PNG as a data: URL, ready for an <img> tag or a label printer bridge."""
    png = render_qr_png(content, **options)
    return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')
