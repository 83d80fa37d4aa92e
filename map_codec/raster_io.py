from __future__ import annotations

"""
Byte-level raster boundary (OpenCV).

read_raster():   file -> ndarray (H,W) or (H,W,C), native dtype
encode_raster(): (H,W) intensities in [0,1] -> encoded PNG/PGM bytes
"""

import os
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from common.errors import SourceUnreadable, WriteFailed


PathLike = Union[str, "os.PathLike[str]"]

# extension -> cv2.imencode extension
FORMATS = {"png": ".png", "pgm": ".pgm"}


def raster_format(path: PathLike) -> str:
    """Format key for a file name ('png' or 'pgm'); ValueError otherwise."""
    ext = Path(path).suffix.lower().lstrip(".")
    if ext not in FORMATS:
        raise ValueError(f"Unsupported raster format '{ext}' (expected one of {sorted(FORMATS)})")
    return ext


def read_raster(path: PathLike) -> np.ndarray:
    """
    Decode a raster file without any color conversion.
    Channel order (BGR vs RGB) is irrelevant to callers that average channels.
    Raises SourceUnreadable if the file is missing or cannot be decoded.
    """
    p = Path(path)
    if not p.is_file():
        raise SourceUnreadable(f"Raster not found: {p}")
    # imread() does not understand non-ASCII paths on every platform; go through bytes
    try:
        buf = np.frombuffer(p.read_bytes(), dtype=np.uint8)
    except OSError as e:
        raise SourceUnreadable(f"Cannot read raster {p}: {e}") from e
    img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED) if buf.size else None
    if img is None:
        raise SourceUnreadable(f"Failed to decode raster {p}")
    return img


def to_uint8(intensity: np.ndarray) -> np.ndarray:
    """[0,1] float intensities -> uint8 gray (0.0->0, 0.5->128, 1.0->255)."""
    x = np.clip(np.asarray(intensity, dtype=np.float64), 0.0, 1.0)
    return np.rint(x * 255.0).astype(np.uint8)


def encode_raster(intensity: np.ndarray, fmt: str) -> bytes:
    """Encode a single-channel (H,W) intensity raster as PNG or PGM bytes."""
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported raster format '{fmt}'")
    img = to_uint8(intensity)
    if img.ndim != 2:
        raise ValueError("encode_raster expects a single-channel (H,W) raster")
    ok, buf = cv2.imencode(FORMATS[fmt], img)
    if not ok:
        raise WriteFailed(f"cv2.imencode failed for format {fmt}")
    return buf.tobytes()
