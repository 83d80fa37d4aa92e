from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from common.errors import NotReady
from common.types import MapConfig, MapMetaData, OccupancyGrid
from map_codec.decoder import load_map
from map_server.channels import LatchedChannel


log = logging.getLogger(__name__)

MAP_TOPIC = "map"
METADATA_TOPIC = "map_metadata"


class MapStore:
    """
    Holds the one current OccupancyGrid.

    Empty until the first load(); Ready afterwards. load() swaps the held
    grid and publishes it (full grid + metadata) under a single lock, so a
    reader never sees a grid from one load next to metadata from another.
    Grids are immutable, so query() hands out the held instance itself.
    """

    def __init__(
        self,
        map_channel: Optional[LatchedChannel[OccupancyGrid]] = None,
        metadata_channel: Optional[LatchedChannel[MapMetaData]] = None,
        loader: Callable[[MapConfig], OccupancyGrid] = load_map,
    ):
        self.map_channel = map_channel if map_channel is not None else LatchedChannel(MAP_TOPIC)
        self.metadata_channel = metadata_channel if metadata_channel is not None else LatchedChannel(METADATA_TOPIC)
        self._loader = loader
        self._lock = threading.RLock()
        self._grid: Optional[OccupancyGrid] = None

    @property
    def ready(self) -> bool:
        with self._lock:
            return self._grid is not None

    def load(self, grid: OccupancyGrid) -> None:
        if not isinstance(grid, OccupancyGrid):
            raise TypeError("load() expects an OccupancyGrid")
        with self._lock:
            self._grid = grid
            self.map_channel.publish(grid)
            self.metadata_channel.publish(grid.metadata())
        log.info(
            "Map loaded",
            extra={"extra": {
                "width": grid.width, "height": grid.height,
                "resolution": grid.resolution, "frame_id": grid.frame_id,
            }},
        )

    def load_from_config(self, config: MapConfig) -> OccupancyGrid:
        """Decode `config` and load it; on any failure the held grid stays."""
        grid = self._loader(config)
        self.load(grid)
        return grid

    def query(self) -> OccupancyGrid:
        with self._lock:
            grid = self._grid
        if grid is None:
            raise NotReady("no map loaded yet")
        return grid

    def metadata(self) -> MapMetaData:
        return self.query().metadata()
