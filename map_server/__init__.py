"""
Map Server — holds one occupancy grid and serves it

- MapStore: Empty/Ready store; load() swaps the grid and publishes it
- LatchedChannel: in-process pub/sub that replays the latest value
- server.create_app(): FastAPI query + WebSocket transport
"""
from .channels import LatchedChannel
from .store import MapStore

__all__ = ["LatchedChannel", "MapStore"]
