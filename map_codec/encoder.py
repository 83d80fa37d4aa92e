from __future__ import annotations

from typing import Tuple

import numpy as np

from common.types import (
    DEFAULT_FREE_THRESH,
    DEFAULT_OCCUPIED_THRESH,
    MapSidecar,
    OccupancyGrid,
    validate_thresholds,
)
from map_codec.thresholds import states_to_intensities


def encode(
    grid: OccupancyGrid,
    negate: bool = False,
    occupied_thresh: float = DEFAULT_OCCUPIED_THRESH,
    free_thresh: float = DEFAULT_FREE_THRESH,
) -> Tuple[np.ndarray, MapSidecar]:
    """
    OccupancyGrid -> ((H,W) float64 intensities in [0,1], sidecar record).

    Grid row (height - 1 - r) becomes raster row r. The thresholds are only
    recorded in the sidecar so the raster can be decoded back consistently.
    `MapSidecar.image` is left empty for the caller to fill in.
    """
    validate_thresholds(occupied_thresh, free_thresh)
    raster = states_to_intensities(grid.rows()[::-1, :], negate=negate)
    sidecar = MapSidecar(
        image="",
        resolution=grid.resolution,
        origin=grid.origin,
        negate=bool(negate),
        occupied_thresh=float(occupied_thresh),
        free_thresh=float(free_thresh),
    )
    return raster, sidecar
