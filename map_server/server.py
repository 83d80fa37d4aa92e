"""
Map server: serves one occupancy grid decoded from a raster map.

- GET  /static_map        current OccupancyGrid (JSON) or 503 not_ready
- GET  /map_metadata      MapMetaData of the current grid
- POST /load_map?path=    decode another map YAML and replace the grid
- WS   /ws/map            latched full-grid channel
- WS   /ws/map_metadata   latched metadata channel
- GET  /health

    python -m map_server.server maps/example.yaml --port 8000
    python -m map_server.server maps/example.pgm 0.05      # legacy form
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI, Query, WebSocket
from fastapi.responses import JSONResponse
import yaml

from common.errors import ConfigError, DecodeError, NotReady
from common.logging_setup import get_logger, setup_logging
from common.types import DEFAULT_FRAME_ID, MapConfig
from map_codec.map_yaml import load_map_yaml
from map_server.channels import LatchedChannel
from map_server.store import MapStore


log = get_logger("map_server")


def _load_config(path: str = "config/params.yaml") -> Dict:
    if not Path(path).exists():
        return {
            "server": {"host": "0.0.0.0", "port": 8000, "frame_id": DEFAULT_FRAME_ID},
            "logging": {"level": "INFO"},
        }
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "not_ready", "detail": "no map loaded yet"}, status_code=503)


async def _stream_channel(ws: WebSocket, channel: LatchedChannel) -> None:
    """
    Forward channel values to one WebSocket client until it disconnects.
    Channel callbacks may fire on any thread; they hop onto the event loop.
    """
    await ws.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def _on_value(value) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, value)

    unsubscribe = channel.subscribe(_on_value)
    receiver = asyncio.ensure_future(ws.receive())
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                getter.cancel()
                if receiver.result().get("type") == "websocket.disconnect":
                    break
                # clients have nothing to say; ignore and keep listening
                receiver = asyncio.ensure_future(ws.receive())
                continue
            await ws.send_json(getter.result().to_dict())
    finally:
        unsubscribe()
        if not receiver.done():
            receiver.cancel()


def create_app(
    store: MapStore,
    frame_id: str = DEFAULT_FRAME_ID,
    config_loader: Callable[[str, str], MapConfig] = load_map_yaml,
) -> FastAPI:
    app = FastAPI(title="Occupancy Map Server", version="1.0.0")

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "ready": store.ready,
            "subscribers": {
                "map": store.map_channel.subscriber_count,
                "map_metadata": store.metadata_channel.subscriber_count,
            },
        }

    @app.get("/static_map")
    def static_map():
        try:
            grid = store.query()
        except NotReady:
            return _not_ready()
        return grid.to_dict()

    @app.get("/map_metadata")
    def map_metadata():
        try:
            meta = store.metadata()
        except NotReady:
            return _not_ready()
        return meta.to_dict()

    @app.post("/load_map")
    def load_map(path: str = Query(...)):
        """Replace the served map; on failure the current one keeps being served."""
        try:
            cfg = config_loader(path, frame_id)
            grid = store.load_from_config(cfg)
        except (ConfigError, DecodeError) as e:
            log.warning("Map reload failed", extra={"extra": {"path": path, "error": type(e).__name__, "detail": str(e)}})
            return JSONResponse({"error": type(e).__name__, "detail": str(e)}, status_code=400)
        return {"status": "loaded", "info": grid.metadata().to_dict()}

    @app.websocket("/ws/map")
    async def ws_map(ws: WebSocket):
        await _stream_channel(ws, store.map_channel)

    @app.websocket("/ws/map_metadata")
    async def ws_map_metadata(ws: WebSocket):
        await _stream_channel(ws, store.metadata_channel)

    return app


def _parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Occupancy map server")
    ap.add_argument("map", help="Map YAML (or raster image with the legacy form: IMAGE RESOLUTION)")
    ap.add_argument("resolution", nargs="?", type=float, default=None, help="Legacy form only: meters per pixel")
    ap.add_argument("--config", default="config/params.yaml")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    return ap.parse_args(argv)


def build_map_config(map_arg: str, resolution: Optional[float], frame_id: str) -> MapConfig:
    if resolution is None:
        return load_map_yaml(map_arg, frame_id=frame_id)
    log.warning("Using deprecated IMAGE RESOLUTION form; default thresholds apply")
    return MapConfig(image=map_arg, resolution=resolution, frame_id=frame_id).validate()


def main(argv: Optional[list] = None) -> None:
    args = _parse_args(argv)
    P = _load_config(args.config)
    setup_logging(P.get("logging", {}).get("level", "INFO"), force=True)

    srv = P.get("server", {})
    host = args.host or srv.get("host", "0.0.0.0")
    port = int(args.port or srv.get("port", 8000))
    frame_id = str(srv.get("frame_id", DEFAULT_FRAME_ID))

    store = MapStore()
    try:
        store.load_from_config(build_map_config(args.map, args.resolution, frame_id))
    except (ConfigError, DecodeError) as e:
        raise SystemExit(f"Could not load map {args.map}: {e}")

    uvicorn.run(create_app(store, frame_id=frame_id), host=host, port=port)


if __name__ == "__main__":
    main()
