from __future__ import annotations

"""
Pixel intensity <-> occupancy state.

Intensities are in [0, 1] (0 = black, 1 = white). With negate=False dark
pixels are occupied:

    occ = intensity if negate else 1 - intensity
    occ >  occupied_thresh  -> OCCUPIED
    occ <  free_thresh      -> FREE
    otherwise               -> UNKNOWN   (equality on either side included)

The array forms below do exactly the same float64 arithmetic element-wise,
so a decoded raster agrees with the scalar function pixel for pixel.
"""

import numpy as np

from common.types import CellState


_INTENSITY = {
    CellState.OCCUPIED: 0.0,
    CellState.FREE: 1.0,
    CellState.UNKNOWN: 0.5,
}


def pixel_to_state(intensity: float, negate: bool, occupied_thresh: float, free_thresh: float) -> CellState:
    occ = intensity if negate else 1.0 - intensity
    if occ > occupied_thresh:
        return CellState.OCCUPIED
    if occ < free_thresh:
        return CellState.FREE
    return CellState.UNKNOWN


def state_to_intensity(state: int, negate: bool = False) -> float:
    state = CellState(int(state))
    v = _INTENSITY[state]
    if negate and state is not CellState.UNKNOWN:
        return 1.0 - v
    return v


def pixels_to_states(
    intensity: np.ndarray, negate: bool, occupied_thresh: float, free_thresh: float
) -> np.ndarray:
    """Vectorised pixel_to_state; returns int8 array of the input's shape."""
    x = np.asarray(intensity, dtype=np.float64)
    occ = x if negate else 1.0 - x
    out = np.full(x.shape, int(CellState.UNKNOWN), dtype=np.int8)
    out[occ < free_thresh] = int(CellState.FREE)
    out[occ > occupied_thresh] = int(CellState.OCCUPIED)
    return out


def states_to_intensities(states: np.ndarray, negate: bool = False) -> np.ndarray:
    """Vectorised state_to_intensity; returns float64 array of the input's shape."""
    s = np.asarray(states)
    occupied, free = (1.0, 0.0) if negate else (0.0, 1.0)
    out = np.full(s.shape, _INTENSITY[CellState.UNKNOWN], dtype=np.float64)
    out[s == int(CellState.OCCUPIED)] = occupied
    out[s == int(CellState.FREE)] = free
    return out
