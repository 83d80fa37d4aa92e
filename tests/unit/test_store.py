"""
Unit tests for the latched channels and the map store
"""

import os
import sys
import threading

import numpy as np
import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import NotReady, SourceUnreadable
from common.types import MapConfig, OccupancyGrid, Pose2D
from map_server.channels import LatchedChannel
from map_server.store import MapStore


def _grid(w=4, h=3, value=0, resolution=0.1):
    return OccupancyGrid(width=w, height=h, resolution=resolution, origin=Pose2D(), cells=np.full(w * h, value))


class TestLatchedChannel:
    """Replay-last-value pub/sub"""

    def test_no_replay_before_publish(self):
        """Subscribers get nothing until something is published"""
        ch = LatchedChannel("t")
        got = []
        ch.subscribe(got.append)
        assert got == []
        assert ch.latest is None

    def test_in_order_delivery(self):
        """Attached subscribers see values in emission order"""
        ch = LatchedChannel("t")
        got = []
        ch.subscribe(got.append)
        for v in (1, 2, 3):
            ch.publish(v)
        assert got == [1, 2, 3]

    def test_late_subscriber_gets_latest(self):
        """A late subscriber receives only the most recent value"""
        ch = LatchedChannel("t")
        ch.publish("a")
        ch.publish("b")
        got = []
        ch.subscribe(got.append)
        assert got == ["b"]
        ch.publish("c")
        assert got == ["b", "c"]

    def test_unsubscribe(self):
        """Detached callbacks stop receiving"""
        ch = LatchedChannel("t")
        got = []
        off = ch.subscribe(got.append)
        ch.publish(1)
        off()
        ch.publish(2)
        assert got == [1]
        assert ch.subscriber_count == 0

    def test_failing_subscriber_is_isolated(self):
        """One raising callback does not stop the others"""
        ch = LatchedChannel("t")
        got = []

        def boom(_):
            raise RuntimeError("subscriber bug")

        ch.subscribe(boom)
        ch.subscribe(got.append)
        ch.publish(42)
        assert got == [42]
        assert ch.latest == 42
        assert ch.publish_count == 1


class TestMapStore:
    """Empty/Ready store"""

    def test_query_before_load(self):
        """query() fails with NotReady while empty"""
        store = MapStore()
        assert store.ready is False
        with pytest.raises(NotReady):
            store.query()
        with pytest.raises(NotReady):
            store.metadata()

    def test_load_then_query(self):
        """query() returns the loaded grid"""
        store = MapStore()
        g = _grid()
        store.load(g)
        assert store.ready is True
        assert store.query() is g
        assert store.metadata() == g.metadata()

    def test_load_publishes_once_on_each_channel(self):
        """Each load emits one grid and one metadata notification"""
        store = MapStore()
        grids, metas = [], []
        store.map_channel.subscribe(grids.append)
        store.metadata_channel.subscribe(metas.append)
        g = _grid()
        store.load(g)
        assert grids == [g]
        assert metas == [g.metadata()]
        assert metas[0].map_load_time == g.map_load_time

    def test_late_subscribers_converge(self):
        """Subscribing after load still yields the current grid"""
        store = MapStore()
        store.load(_grid(value=0))
        g2 = _grid(value=100)
        store.load(g2)
        grids, metas = [], []
        store.map_channel.subscribe(grids.append)
        store.metadata_channel.subscribe(metas.append)
        assert grids == [g2]
        assert metas == [g2.metadata()]

    def test_replace(self):
        """A second load replaces the held grid"""
        store = MapStore()
        store.load(_grid(w=2, h=2))
        g = _grid(w=5, h=1)
        store.load(g)
        assert store.query() is g

    def test_rejects_non_grid(self):
        """load() only accepts OccupancyGrid values"""
        store = MapStore()
        with pytest.raises(TypeError):
            store.load({"width": 1})
        assert store.ready is False

    def test_failed_load_keeps_previous(self):
        """A failing decode leaves the held grid in place"""

        def loader(cfg):
            raise SourceUnreadable(cfg.image)

        store = MapStore(loader=loader)
        g = _grid()
        store.load(g)
        with pytest.raises(SourceUnreadable):
            store.load_from_config(MapConfig(image="gone.png", resolution=0.1))
        assert store.query() is g
        assert store.map_channel.publish_count == 1

    def test_load_from_config(self):
        """load_from_config decodes through the injected loader"""
        g = _grid(resolution=0.25)
        store = MapStore(loader=lambda cfg: g)
        assert store.load_from_config(MapConfig(image="x.pgm", resolution=0.25)) is g
        assert store.query() is g

    def test_subscriber_may_query(self):
        """A subscriber querying the store from its callback sees the new grid"""
        store = MapStore()
        seen = []
        store.map_channel.subscribe(lambda grid: seen.append(store.query() is grid))
        store.load(_grid())
        store.load(_grid(value=100))
        assert seen == [True, True]

    def test_concurrent_readers_never_see_torn_grids(self):
        """Readers racing a writer always get self-consistent grids"""
        store = MapStore()
        store.load(_grid(w=1, h=1))
        stop = threading.Event()
        errors = []

        def reader():
            while not stop.is_set():
                g = store.query()
                m = store.metadata()
                if g.cells.size != g.width * g.height or m.width * m.height <= 0:
                    errors.append((g.width, g.height, g.cells.size))

        def meta_check(meta):
            # metadata published for a load always matches the grid of that load
            grid = store.map_channel.latest
            if (grid.width, grid.height) != (meta.width, meta.height):
                errors.append(("straddle", meta.width, grid.width))

        store.metadata_channel.subscribe(meta_check)
        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        for i in range(200):
            store.load(_grid(w=1 + i % 7, h=1 + i % 5, value=100 if i % 2 else 0))
        stop.set()
        for t in readers:
            t.join(timeout=5.0)
        assert errors == []
