"""
Map Saver — persist a served occupancy grid

Provides:
- MapCapture: subscribes to the full-grid channel and atomically writes
  <basename>.<png|pgm> plus <basename>.yaml
- RemoteMapSource: pulls /static_map from a running server over HTTP
- service.py: the `-f BASENAME` command-line saver
"""
from .capture import CaptureResult, MapCapture

__all__ = ["CaptureResult", "MapCapture"]
