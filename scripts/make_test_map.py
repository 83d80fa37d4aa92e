#!/usr/bin/env python3
"""
Generate a synthetic floor-plan map (raster + map YAML) for demos and manual tests.

Draws outer walls, a few interior walls with door gaps, random boxes and an
unexplored (mid-gray) region, then writes <out>.<png|pgm> and <out>.yaml that
`python -m map_server.server <out>.yaml` can serve directly.

Examples:
  python scripts/make_test_map.py --out maps/synthetic --size 400x300 --resolution 0.05
  python scripts/make_test_map.py --out maps/synthetic --fmt png --seed 7
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Tuple

import cv2
import numpy as np
import yaml

FREE = 254
OCCUPIED = 0
UNKNOWN = 205


def synthesize_floorplan(size: Tuple[int, int], seed: int = 1234, wall_px: int = 3) -> np.ndarray:
    w, h = size
    rng = np.random.default_rng(seed)
    img = np.full((h, w), FREE, dtype=np.uint8)

    # Outer walls
    cv2.rectangle(img, (0, 0), (w - 1, h - 1), OCCUPIED, wall_px)

    # Interior walls with a door gap each
    for x in (w // 3, 2 * w // 3):
        gap = int(rng.integers(h // 6, h - h // 6))
        cv2.line(img, (x, 0), (x, max(0, gap - 12)), OCCUPIED, wall_px)
        cv2.line(img, (x, min(h - 1, gap + 12)), (x, h - 1), OCCUPIED, wall_px)

    # Furniture
    for _ in range(8):
        x1, y1 = int(rng.integers(wall_px, w - 20)), int(rng.integers(wall_px, h - 20))
        bw, bh = int(rng.integers(6, 20)), int(rng.integers(6, 20))
        cv2.rectangle(img, (x1, y1), (x1 + bw, y1 + bh), OCCUPIED, -1)

    # Unexplored corner
    cv2.rectangle(img, (w - w // 5, h - h // 4), (w - wall_px - 1, h - wall_px - 1), UNKNOWN, -1)
    return img


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--out", default="maps/synthetic", help="Output basename (no extension)")
    ap.add_argument("--size", default="400x300", help="Raster WxH in pixels")
    ap.add_argument("--resolution", type=float, default=0.05, help="Meters per pixel")
    ap.add_argument("--fmt", choices=["png", "pgm"], default="pgm")
    ap.add_argument("--seed", type=int, default=1234)
    args = ap.parse_args()

    w, h = [int(v) for v in args.size.lower().split("x")]
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    raster_path = out.with_name(f"{out.name}.{args.fmt}")
    yaml_path = out.with_name(f"{out.name}.yaml")

    img = synthesize_floorplan((w, h), seed=args.seed)
    if not cv2.imwrite(str(raster_path), img):
        raise SystemExit(f"Failed to write {raster_path}")

    meta = {
        "image": raster_path.name,
        "resolution": args.resolution,
        # center the map on the world origin
        "origin": [-0.5 * w * args.resolution, -0.5 * h * args.resolution, 0.0],
        "negate": 0,
        "occupied_thresh": 0.65,
        "free_thresh": 0.1,
    }
    yaml_path.write_text(yaml.safe_dump(meta, sort_keys=False, default_flow_style=None))
    print(f"[ok] wrote {raster_path} and {yaml_path}")
    print("Serve it with:")
    print(f"  python -m map_server.server {yaml_path}")


if __name__ == "__main__":
    main()
