"""Still-image conversions between camera frames, uploads and PNG bytes."""
from __future__ import annotations

import io

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError


def encode_png(frame: np.ndarray) -> bytes:
    """Lossless PNG encoding of a BGR frame."""
    ok, buf = cv2.imencode(".png", frame)
    if not ok:
        raise ValueError("Could not encode frame as PNG")
    return buf.tobytes()


def decode_image(data: bytes) -> np.ndarray:
    """Decode an uploaded image file into a BGR frame, honoring EXIF orientation."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            im = ImageOps.exif_transpose(im)
            rgb = np.asarray(im.convert("RGB"))
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unsupported or corrupt image: {exc}") from exc
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
