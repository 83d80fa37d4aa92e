"""
Map codec — raster <-> occupancy grid

This package provides:
- Threshold codec: pixel intensity <-> occupancy state (scalar + NumPy)
- decode(): raster -> OccupancyGrid (row inversion, channel averaging)
- encode(): OccupancyGrid -> intensity raster + sidecar record
- OpenCV raster I/O (PNG/PGM) and map YAML descriptions
"""
from .decoder import decode, load_map
from .encoder import encode
from .map_yaml import load_map_yaml
from .thresholds import pixel_to_state, state_to_intensity

__all__ = ["decode", "encode", "load_map", "load_map_yaml", "pixel_to_state", "state_to_intensity"]
