from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Sequence

import numpy as np

from common.errors import ConfigError, InvalidThreshold


IsoTime = str

DEFAULT_FRAME_ID = "map"
DEFAULT_OCCUPIED_THRESH = 0.65
DEFAULT_FREE_THRESH = 0.1


def now_iso() -> IsoTime:
    """UTC timestamp in RFC3339/ISO-8601 with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CellState(IntEnum):
    """Occupancy values carried in OccupancyGrid.cells."""
    FREE = 0
    OCCUPIED = 100
    UNKNOWN = -1


_VALID_STATES = np.array([int(s) for s in CellState], dtype=np.int8)


@dataclass(frozen=True, slots=True)
class Pose2D:
    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0

    @classmethod
    def from_seq(cls, seq: Sequence[float]) -> "Pose2D":
        if len(seq) != 3:
            raise ConfigError(f"origin must be [x, y, yaw], got {list(seq)!r}")
        return cls(float(seq[0]), float(seq[1]), float(seq[2]))

    def to_list(self) -> list:
        return [self.x, self.y, self.yaw]

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "yaw": self.yaw}


@dataclass(frozen=True, slots=True)
class MapMetaData:
    """Lightweight projection of an OccupancyGrid (no cells)."""
    width: int
    height: int
    resolution: float
    origin: Pose2D
    map_load_time: IsoTime = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "map_load_time": self.map_load_time,
            "resolution": self.resolution,
            "width": self.width,
            "height": self.height,
            "origin": self.origin.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MapMetaData":
        o = d.get("origin", {})
        return cls(
            width=int(d["width"]),
            height=int(d["height"]),
            resolution=float(d["resolution"]),
            origin=Pose2D(float(o.get("x", 0.0)), float(o.get("y", 0.0)), float(o.get("yaw", 0.0))),
            map_load_time=str(d.get("map_load_time", "")),
        )


@dataclass(frozen=True, slots=True, eq=False)
class OccupancyGrid:
    """
    A single occupancy map.

    Attributes:
        width, height: cell counts along each raster axis.
        resolution: meters per cell edge.
        origin: pose of the lower-left cell in world coordinates.
        cells: read-only int8 array of width*height states, row-major,
            starting at the bottom-left cell. Values are CellState members.
        frame_id: label attached to served data.
        map_load_time: ISO-8601 UTC creation time (not part of equality).
    """
    width: int
    height: int
    resolution: float
    origin: Pose2D
    cells: np.ndarray = field(repr=False)
    frame_id: str = DEFAULT_FRAME_ID
    map_load_time: IsoTime = field(default_factory=now_iso)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("width/height must be positive")
        if self.resolution <= 0:
            raise ValueError("resolution must be > 0")
        raw = np.asarray(self.cells).reshape(-1)
        if raw.size != self.width * self.height:
            raise ValueError(
                f"cells has {raw.size} entries, expected {self.width}x{self.height}={self.width * self.height}"
            )
        if not np.issubdtype(raw.dtype, np.integer):
            raise ValueError(f"cells must be integers, got dtype {raw.dtype}")
        # check before narrowing to int8 so out-of-range values cannot wrap
        if not np.isin(raw, _VALID_STATES).all():
            raise ValueError("cells may only contain 100 (occupied), 0 (free) or -1 (unknown)")
        cells = raw.astype(np.int8)
        cells.flags.writeable = False
        object.__setattr__(self, "cells", cells)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OccupancyGrid):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and self.resolution == other.resolution
            and self.origin == other.origin
            and self.frame_id == other.frame_id
            and np.array_equal(self.cells, other.cells)
        )

    def metadata(self) -> MapMetaData:
        return MapMetaData(
            width=self.width,
            height=self.height,
            resolution=self.resolution,
            origin=self.origin,
            map_load_time=self.map_load_time,
        )

    def rows(self) -> np.ndarray:
        """Cells as a (height, width) view; row 0 is the bottom of the map."""
        return self.cells.reshape(self.height, self.width)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": {"frame_id": self.frame_id, "stamp": self.map_load_time},
            "info": self.metadata().to_dict(),
            "data": self.cells.tolist(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OccupancyGrid":
        info = MapMetaData.from_dict(d["info"])
        header = d.get("header", {})
        return cls(
            width=info.width,
            height=info.height,
            resolution=info.resolution,
            origin=info.origin,
            cells=d["data"],
            frame_id=str(header.get("frame_id", DEFAULT_FRAME_ID)),
            map_load_time=info.map_load_time or str(header.get("stamp", "")) or now_iso(),
        )


@dataclass(frozen=True, slots=True)
class MapConfig:
    """
    Decode configuration for one raster map.

    Attributes:
        image: path to the raster file (PNG, PGM, ...).
        resolution: meters per pixel.
        negate: invert the intensity -> occupancy polarity.
        occupied_thresh, free_thresh: thresholds in (0,1), free < occupied.
        origin: pose of the lower-left pixel.
        frame_id: label attached to the decoded grid.
    """
    image: str
    resolution: float
    negate: bool = False
    occupied_thresh: float = DEFAULT_OCCUPIED_THRESH
    free_thresh: float = DEFAULT_FREE_THRESH
    origin: Pose2D = Pose2D()
    frame_id: str = DEFAULT_FRAME_ID

    def validate(self) -> "MapConfig":
        validate_thresholds(self.occupied_thresh, self.free_thresh)
        if not self.resolution > 0:
            raise ConfigError(f"resolution must be > 0, got {self.resolution}")
        return self


@dataclass(frozen=True, slots=True)
class MapSidecar:
    """Human-readable record written next to a saved raster."""
    image: str
    resolution: float
    origin: Pose2D
    negate: bool = False
    occupied_thresh: float = DEFAULT_OCCUPIED_THRESH
    free_thresh: float = DEFAULT_FREE_THRESH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image": self.image,
            "resolution": float(self.resolution),
            "origin": self.origin.to_list(),
            "negate": int(self.negate),
            "occupied_thresh": float(self.occupied_thresh),
            "free_thresh": float(self.free_thresh),
        }


def validate_thresholds(occupied_thresh: float, free_thresh: float) -> None:
    for name, v in (("occupied_thresh", occupied_thresh), ("free_thresh", free_thresh)):
        if not (0.0 < v < 1.0):
            raise InvalidThreshold(f"{name} must lie in (0, 1), got {v}")
    if free_thresh >= occupied_thresh:
        raise InvalidThreshold(
            f"free_thresh ({free_thresh}) must be below occupied_thresh ({occupied_thresh})"
        )
