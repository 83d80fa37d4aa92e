from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import requests

from common.types import OccupancyGrid
from map_server.channels import LatchedChannel


log = logging.getLogger(__name__)


class RemoteMapSource:
    """
    Pulls the current grid from a running map server (GET /static_map).

    Params:
        base_url: server root, e.g. http://127.0.0.1:8000
        session: optional requests.Session for connection reuse
        timeout: per-request timeout (seconds)
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8000", session: Optional[requests.Session] = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = float(timeout)

    def fetch(self) -> Optional[OccupancyGrid]:
        """
        The served grid, or None while the server has no map (503).
        Non-200 answers and payloads that are not a valid grid raise RuntimeError.
        """
        r = self.session.get(f"{self.base_url}/static_map", timeout=self.timeout)
        if r.status_code == 503:
            return None
        if r.status_code != 200:
            raise RuntimeError(f"Map API error {r.status_code}: {r.text[:200]}")
        payload = r.json()
        try:
            return OccupancyGrid.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise RuntimeError(f"Malformed map payload: {e!r}") from e

    def poll(
        self,
        channel: LatchedChannel[OccupancyGrid],
        stop_event: Optional[threading.Event] = None,
        period: float = 0.5,
        timeout: Optional[float] = None,
    ) -> Optional[OccupancyGrid]:
        """
        Retry fetch() until a grid arrives, then publish it on `channel`.
        Connection errors and 503s are retried; other HTTP errors raise.
        """
        stop_event = stop_event or threading.Event()
        deadline = None if timeout is None else time.monotonic() + float(timeout)
        attempt = 0
        while not stop_event.is_set():
            attempt += 1
            try:
                grid = self.fetch()
            except requests.RequestException as e:
                log.warning("Map server unreachable", extra={"extra": {"url": self.base_url, "attempt": attempt, "error": str(e)}})
                grid = None
            if grid is not None:
                channel.publish(grid)
                return grid
            if deadline is not None and time.monotonic() >= deadline:
                break
            stop_event.wait(period)
        return None
