from __future__ import annotations

"""
Map saver: fetch the map served by a running map server and write it to disk.

Examples:
  # Save as map.pgm + map.yaml
  python -m map_saver.service -f map

  # PNG, explicit server, record non-default thresholds in the YAML
  python -m map_saver.service -f maps/office --fmt png --url http://robot:8000 \
      --occ 0.7 --free 0.2
"""

import argparse
import threading
from pathlib import Path
from typing import Dict, Optional

import yaml

from common.errors import CaptureError, ConfigError
from common.logging_setup import get_logger, setup_logging
from map_saver.capture import MapCapture
from map_saver.remote import RemoteMapSource
from map_server.channels import LatchedChannel
from map_server.store import MAP_TOPIC


log = get_logger("map_saver")


def _load_config(path: str) -> Dict:
    if not Path(path).exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _poll(source: RemoteMapSource, channel: LatchedChannel, stop: threading.Event) -> None:
    try:
        source.poll(channel, stop)
    except RuntimeError as e:
        log.error("Map fetch failed", extra={"extra": {"error": str(e)}})
        stop.set()


def main(argv: Optional[list] = None) -> int:
    ap = argparse.ArgumentParser(description="Save the served occupancy map as raster + YAML")
    ap.add_argument("-f", "--file", default="map", help="Output basename (no extension)")
    ap.add_argument("--config", default="config/params.yaml")
    ap.add_argument("--url", default=None, help="Map server root URL")
    ap.add_argument("--fmt", choices=["png", "pgm"], default=None, help="Raster format")
    ap.add_argument("--occ", type=float, default=None, help="occupied_thresh recorded in the YAML")
    ap.add_argument("--free", type=float, default=None, help="free_thresh recorded in the YAML")
    ap.add_argument("--negate", action="store_true", help="Write occupied cells white, free cells black")
    ap.add_argument("--timeout", type=float, default=None, help="Give up after N seconds without a map")
    args = ap.parse_args(argv)

    P = _load_config(args.config)
    setup_logging(P.get("logging", {}).get("level", "INFO"), force=True)
    S = P.get("saver", {})

    url = args.url or S.get("url", "http://127.0.0.1:8000")
    fmt = args.fmt or S.get("format", "pgm")
    occ = args.occ if args.occ is not None else float(S.get("occupied_thresh", 0.65))
    free = args.free if args.free is not None else float(S.get("free_thresh", 0.1))
    timeout = args.timeout if args.timeout is not None else S.get("timeout_s")

    channel: LatchedChannel = LatchedChannel(MAP_TOPIC)
    try:
        capture = MapCapture(channel, args.file, fmt=fmt, negate=args.negate, occupied_thresh=occ, free_thresh=free)
    except (ConfigError, ValueError) as e:
        raise SystemExit(f"Invalid saver settings: {e}")

    source = RemoteMapSource(url)
    stop = threading.Event()
    t_poll = threading.Thread(target=_poll, args=(source, channel, stop), daemon=True)
    log.info("Waiting for the map", extra={"extra": {"url": url, "out": args.file, "fmt": fmt}})
    t_poll.start()

    try:
        result = capture.run(stop_event=stop, timeout=timeout)
    except KeyboardInterrupt:
        result = None
    except CaptureError as e:
        log.error("Map save failed", extra={"extra": {"error": str(e)}})
        return 1
    finally:
        stop.set()
        capture.close()
        t_poll.join(timeout=1.0)

    if result is None:
        log.error("No map received", extra={"extra": {"url": url}})
        return 1
    log.info("Done", extra={"extra": {"raster": str(result.raster_path), "yaml": str(result.yaml_path)}})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
