from __future__ import annotations

import contextlib
import logging
import os
import queue
import tempfile
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Tuple, Union

from common.errors import WriteFailed
from common.types import (
    DEFAULT_FREE_THRESH,
    DEFAULT_OCCUPIED_THRESH,
    OccupancyGrid,
    validate_thresholds,
)
from map_codec.encoder import encode
from map_codec.map_yaml import dump_sidecar
from map_codec.raster_io import FORMATS, encode_raster
from map_server.channels import LatchedChannel


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    raster_path: Path
    yaml_path: Path


def _write_all(items: List[Tuple[Path, bytes]]) -> None:
    """
    Write every (path, payload) to a temp file next to its target, then move
    them all into place. Nothing is replaced unless every payload hit disk.
    """
    pending: List[Tuple[str, Path]] = []
    try:
        for target, payload in items:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
            pending.append((tmp, target))
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        for tmp, target in pending:
            os.replace(tmp, target)
    except BaseException as e:
        for tmp, _ in pending:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp)
        if isinstance(e, OSError):
            raise WriteFailed(f"could not write {', '.join(str(t) for t, _ in items)}: {e}") from e
        raise


class MapCapture:
    """
    Saves grids received on a full-grid channel as <basename>.<fmt> + <basename>.yaml.

    Grids delivered by the channel are only queued; encoding and file I/O
    happen in run(), on the caller's thread. By default the first grid is
    saved, the capture detaches from the channel and run() returns; with
    continuous=True every grid is saved until the stop event fires or the
    timeout elapses.
    """

    def __init__(
        self,
        channel: LatchedChannel[OccupancyGrid],
        basename: Union[str, Path],
        fmt: str = "pgm",
        negate: bool = False,
        occupied_thresh: float = DEFAULT_OCCUPIED_THRESH,
        free_thresh: float = DEFAULT_FREE_THRESH,
        continuous: bool = False,
    ):
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported raster format '{fmt}' (expected one of {sorted(FORMATS)})")
        validate_thresholds(occupied_thresh, free_thresh)
        base = str(basename)
        self.raster_path = Path(f"{base}.{fmt}")
        self.yaml_path = Path(f"{base}.yaml")
        self.fmt = fmt
        self.negate = bool(negate)
        self.occupied_thresh = float(occupied_thresh)
        self.free_thresh = float(free_thresh)
        self.continuous = bool(continuous)
        self.saves = 0
        self._saved = threading.Event()
        self._queue: "queue.Queue[OccupancyGrid]" = queue.Queue()
        self._unsubscribe = channel.subscribe(self._queue.put)

    @property
    def saved(self) -> bool:
        """True once a capture has been fully written; never reset."""
        return self._saved.is_set()

    def close(self) -> None:
        self._unsubscribe()

    def save(self, grid: OccupancyGrid) -> CaptureResult:
        log.info(
            "Received a %d X %d map @ %.3f m/pix", grid.width, grid.height, grid.resolution,
        )
        raster, sidecar = encode(
            grid,
            negate=self.negate,
            occupied_thresh=self.occupied_thresh,
            free_thresh=self.free_thresh,
        )
        sidecar = replace(sidecar, image=self.raster_path.name)
        _write_all([
            (self.raster_path, encode_raster(raster, self.fmt)),
            (self.yaml_path, dump_sidecar(sidecar).encode("utf-8")),
        ])
        self.saves += 1
        self._saved.set()
        log.info(
            "Map saved",
            extra={"extra": {"raster": str(self.raster_path), "yaml": str(self.yaml_path), "saves": self.saves}},
        )
        return CaptureResult(self.raster_path, self.yaml_path)

    def run(
        self,
        stop_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
        poll_s: float = 0.2,
    ) -> Optional[CaptureResult]:
        """
        Wait for grids and save them. Returns the last CaptureResult, or None
        if stopped/timed out before anything arrived. WriteFailed propagates.
        """
        deadline = None if timeout is None else time.monotonic() + float(timeout)
        result: Optional[CaptureResult] = None
        while not (stop_event is not None and stop_event.is_set()):
            wait = poll_s
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                wait = min(wait, remaining)
            try:
                grid = self._queue.get(timeout=wait)
            except queue.Empty:
                continue
            result = self.save(grid)
            if not self.continuous:
                self.close()
                break
        return result
