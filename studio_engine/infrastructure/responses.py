from __future__ import annotations

import io

from flask import send_file

from ..processing.buffer import PixelBuffer
from ..processing.render import encode


def send_png(buffer: PixelBuffer):
    return send_file(io.BytesIO(encode(buffer)), mimetype="image/png")
