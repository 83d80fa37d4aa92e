from __future__ import annotations

"""
Error taxonomy shared by the codec, the map store and the saver.

    MapError
      ├─ DecodeError      (DimensionMismatch, SourceUnreadable)
      ├─ ServerError      (NotReady)
      ├─ CaptureError     (WriteFailed)
      └─ ConfigError      (InvalidThreshold)
"""


class MapError(Exception):
    """Base class for every failure raised by this project."""


class DecodeError(MapError):
    pass


class DimensionMismatch(DecodeError):
    """Declared width/height do not match the samples present in the raster."""


class SourceUnreadable(DecodeError):
    """The byte-level raster decode failed (missing file, corrupt bytes, ...)."""


class ServerError(MapError):
    pass


class NotReady(ServerError):
    """No grid has been loaded yet."""


class CaptureError(MapError):
    pass


class WriteFailed(CaptureError):
    """Raster and/or sidecar could not be fully written."""


class ConfigError(MapError):
    pass


class InvalidThreshold(ConfigError):
    """Thresholds outside (0,1) or free_thresh >= occupied_thresh."""
