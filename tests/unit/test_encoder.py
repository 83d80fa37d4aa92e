"""
Unit tests for the grid-to-image encoder and raster I/O
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import InvalidThreshold, WriteFailed
from common.types import MapConfig, OccupancyGrid, Pose2D
from map_codec.decoder import decode
from map_codec.encoder import encode
from map_codec.raster_io import encode_raster, raster_format, to_uint8


def _grid(rows_bottom_up, resolution=0.1, origin=Pose2D(1.0, -2.0, 0.25)):
    rows = np.asarray(rows_bottom_up, dtype=np.int8)
    h, w = rows.shape
    return OccupancyGrid(width=w, height=h, resolution=resolution, origin=origin, cells=rows.reshape(-1))


class TestEncode:
    """encode(grid, negate, thresholds)"""

    def test_rows_are_inverted(self):
        """Grid row 0 (bottom) becomes the last raster row"""
        grid = _grid([[100, 100], [0, 0], [0, -1]])
        raster, _ = encode(grid)
        assert raster.shape == (3, 2)
        assert raster.tolist() == [[1.0, 0.5], [1.0, 1.0], [0.0, 0.0]]

    def test_negate(self):
        """negate swaps black/white, unknown stays mid-gray"""
        grid = _grid([[100, 0, -1]])
        raster, sidecar = encode(grid, negate=True)
        assert raster.tolist() == [[1.0, 0.0, 0.5]]
        assert sidecar.negate is True

    def test_sidecar_defaults(self):
        """Without explicit thresholds the defaults are recorded"""
        grid = _grid([[0]], resolution=0.05)
        _, sidecar = encode(grid)
        assert sidecar.resolution == 0.05
        assert sidecar.origin == Pose2D(1.0, -2.0, 0.25)
        assert sidecar.negate is False
        assert sidecar.occupied_thresh == 0.65
        assert sidecar.free_thresh == 0.1
        assert sidecar.image == ""

    def test_sidecar_records_thresholds(self):
        """Configured thresholds are recorded as given"""
        _, sidecar = encode(_grid([[0]]), occupied_thresh=0.7, free_thresh=0.2)
        d = sidecar.to_dict()
        assert d["occupied_thresh"] == 0.7
        assert d["free_thresh"] == 0.2
        assert d["negate"] == 0
        assert d["origin"] == [1.0, -2.0, 0.25]

    def test_invalid_thresholds(self):
        """Inconsistent thresholds are refused"""
        with pytest.raises(InvalidThreshold):
            encode(_grid([[0]]), occupied_thresh=0.2, free_thresh=0.3)


class TestRoundTrip:
    """decode -> encode -> decode"""

    def test_black_white_is_stable(self):
        """Unambiguous pixels do not drift"""
        rng = np.random.default_rng(5)
        raster = np.where(rng.random((16, 24)) > 0.5, 255, 0).astype(np.uint8)
        cfg = MapConfig(image="x.pgm", resolution=0.1)
        first = decode(raster, 24, 16, cfg)
        out, _ = encode(first)
        second = decode(to_uint8(out), 24, 16, cfg)
        assert np.array_equal(first.cells, second.cells)
        assert np.array_equal(to_uint8(out), raster)

    @pytest.mark.parametrize("negate", [False, True])
    def test_unknown_survives_8bit(self, negate):
        """Mid-gray written as 128 decodes back to unknown"""
        grid = _grid([[100, 0, -1], [-1, -1, 0]])
        out, sidecar = encode(grid, negate=negate)
        cfg = MapConfig(image="x.pgm", resolution=grid.resolution, negate=negate, origin=grid.origin)
        back = decode(to_uint8(out), 3, 2, cfg)
        assert back == grid


class TestRasterIO:
    """Byte-level encoding boundary"""

    def test_to_uint8(self):
        """0.0 / 0.5 / 1.0 map to 0 / 128 / 255"""
        assert to_uint8(np.array([0.0, 0.5, 1.0])).tolist() == [0, 128, 255]

    @pytest.mark.parametrize("fmt", ["png", "pgm"])
    def test_encode_raster_decodes(self, fmt):
        """Encoded bytes decode back to the same gray levels"""
        data = encode_raster(np.array([[0.0, 0.5], [1.0, 1.0]]), fmt)
        img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        assert img.tolist() == [[0, 128], [255, 255]]

    def test_pgm_header(self):
        """PGM output is binary P5"""
        assert encode_raster(np.ones((2, 3)), "pgm").startswith(b"P5")

    def test_format_selection(self):
        """File extension picks the format"""
        assert raster_format("maps/a.PNG") == "png"
        assert raster_format("a.pgm") == "pgm"
        with pytest.raises(ValueError):
            raster_format("a.jpg")

    def test_unsupported_format(self):
        """encode_raster refuses unknown formats"""
        with pytest.raises(ValueError):
            encode_raster(np.ones((1, 1)), "bmp")

    def test_encoder_failure_is_write_failed(self, monkeypatch):
        """An OpenCV encode failure surfaces as WriteFailed"""
        monkeypatch.setattr("map_codec.raster_io.cv2.imencode", lambda ext, img: (False, None))
        with pytest.raises(WriteFailed):
            encode_raster(np.ones((1, 1)), "png")
