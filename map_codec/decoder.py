"""
Raster -> OccupancyGrid.

Raster row 0 is the top of the image while the grid origin is its
bottom-left cell, so raster row r lands in grid row (height - 1 - r).
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from common.errors import DimensionMismatch
from common.types import MapConfig, OccupancyGrid, now_iso
from map_codec.raster_io import read_raster
from map_codec.thresholds import pixels_to_states


log = logging.getLogger(__name__)


def _as_pixels(raster, width: int, height: int) -> np.ndarray:
    """Validate dimensions; returns (H,W) or (H,W,C)."""
    try:
        arr = np.asarray(raster)
    except ValueError as e:
        # ragged nested rows
        raise DimensionMismatch(f"raster rows are not all {width} samples wide: {e}") from e
    if arr.ndim == 1:
        if arr.size != width * height:
            raise DimensionMismatch(
                f"raster holds {arr.size} samples, declared {width}x{height}={width * height}"
            )
        return arr.reshape(height, width)
    if arr.ndim not in (2, 3):
        raise DimensionMismatch(f"raster must be 1-, 2- or 3-D, got shape {arr.shape}")
    if arr.shape[0] != height or arr.shape[1] != width:
        raise DimensionMismatch(
            f"raster is {arr.shape[1]}x{arr.shape[0]}, declared {width}x{height}"
        )
    if arr.ndim == 3 and arr.shape[2] == 0:
        raise DimensionMismatch("raster has no channels")
    return arr


def raster_intensity(raster: np.ndarray) -> np.ndarray:
    """
    Reduce a (H,W) / (H,W,C) raster to float64 intensities in [0,1].

    Unsigned samples are scaled by their dtype's maximum, signed integers
    by 255; floats are taken as-is. Color channels are averaged without
    weights; the alpha channel of 2- and 4-channel rasters is dropped first.
    """
    arr = np.asarray(raster)
    if arr.ndim == 3:
        channels = arr.shape[2]
        if channels in (2, 4):
            arr = arr[:, :, : channels - 1]
        avg = arr.astype(np.float64).sum(axis=2) / float(arr.shape[2])
    else:
        avg = arr.astype(np.float64)
    if np.issubdtype(arr.dtype, np.unsignedinteger):
        return avg / float(np.iinfo(arr.dtype).max)
    if np.issubdtype(arr.dtype, np.integer):
        # plain Python ints end up int64; treat them as 8-bit samples
        return avg / 255.0
    return avg


def decode(raster, width: int, height: int, config: MapConfig) -> OccupancyGrid:
    """Threshold every pixel of `raster` into an OccupancyGrid."""
    config.validate()
    pixels = _as_pixels(raster, int(width), int(height))
    states = pixels_to_states(
        raster_intensity(pixels),
        negate=config.negate,
        occupied_thresh=config.occupied_thresh,
        free_thresh=config.free_thresh,
    )
    cells = states[::-1, :].reshape(-1)
    return OccupancyGrid(
        width=int(width),
        height=int(height),
        resolution=float(config.resolution),
        origin=config.origin,
        cells=cells,
        frame_id=config.frame_id,
        map_load_time=now_iso(),
    )


def load_map(config: MapConfig, raster: Optional[np.ndarray] = None) -> OccupancyGrid:
    """
    Read `config.image` and decode it. SourceUnreadable propagates; a broken
    file never turns into an empty map.
    """
    config.validate()
    img = read_raster(config.image) if raster is None else raster
    height, width = img.shape[:2]
    grid = decode(img, width, height, config)
    log.info(
        "Decoded map",
        extra={"extra": {
            "image": str(config.image), "width": width, "height": height,
            "resolution": config.resolution, "negate": config.negate,
        }},
    )
    return grid
