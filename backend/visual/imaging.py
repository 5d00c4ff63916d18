"""
Screenshot downsizing helpers.
"""

from __future__ import annotations
import io
from typing import Tuple

from PIL import Image

JPEG_QUALITY = 80


def downscale_screenshot(data: bytes, max_width: int = 1280) -> Tuple[bytes, int, int]:
    """
    Re-encode a screenshot as JPEG no wider than max_width.

    Aspect ratio is preserved. Images already within the bound are only
    re-encoded.

    Returns:
        (jpeg_bytes, width, height)
    """
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGB")
        width, height = img.size

        if width > max_width:
            ratio = max_width / float(width)
            new_height = max(1, round(height * ratio))
            img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)
            width, height = max_width, new_height

        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=JPEG_QUALITY, optimize=True)
        return buf.getvalue(), width, height
