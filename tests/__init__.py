"""
Occupancy map test suite

Structure:
- unit/: codec, store, channel and saver components in isolation
- integration/: HTTP/WebSocket transport and file round trips
"""
