from __future__ import annotations

"""
Map description files.

    image: office.pgm          # relative to this file unless absolute
    resolution: 0.05
    origin: [-10.0, -10.0, 0.0]
    negate: 0
    occupied_thresh: 0.65
    free_thresh: 0.1
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from common.errors import ConfigError
from common.types import (
    DEFAULT_FRAME_ID,
    DEFAULT_FREE_THRESH,
    DEFAULT_OCCUPIED_THRESH,
    MapConfig,
    MapSidecar,
    Pose2D,
)


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


def config_from_dict(D: Dict[str, Any], base_dir: Optional[Path] = None, frame_id: str = DEFAULT_FRAME_ID) -> MapConfig:
    for key in ("image", "resolution"):
        if key not in D:
            raise ConfigError(f"map description is missing '{key}'")
    image = Path(str(D["image"]))
    if base_dir is not None and not image.is_absolute():
        image = base_dir / image
    try:
        cfg = MapConfig(
            image=str(image),
            resolution=float(D["resolution"]),
            negate=_as_bool(D.get("negate", False)),
            occupied_thresh=float(D.get("occupied_thresh", DEFAULT_OCCUPIED_THRESH)),
            free_thresh=float(D.get("free_thresh", DEFAULT_FREE_THRESH)),
            origin=Pose2D.from_seq(D.get("origin", [0.0, 0.0, 0.0])),
            frame_id=frame_id,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"malformed map description: {e}") from e
    return cfg.validate()


def load_map_yaml(path: Union[str, Path], frame_id: str = DEFAULT_FRAME_ID) -> MapConfig:
    p = Path(path)
    try:
        with p.open("r") as f:
            D = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read map description {p}: {e}") from e
    if not isinstance(D, dict):
        raise ConfigError(f"map description {p} is not a mapping")
    return config_from_dict(D, base_dir=p.parent, frame_id=frame_id)


def dump_sidecar(sidecar: MapSidecar) -> str:
    return yaml.safe_dump(sidecar.to_dict(), sort_keys=False, default_flow_style=None)
