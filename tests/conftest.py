"""
conftest.py — Shared pytest fixtures for the cubetiles test suite
"""

import numpy as np
import pytest

from cubetiles.raster import Raster


def solid(width, height, rgba):
    """Raster filled with one colour."""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[...] = rgba
    return Raster(pixels)


@pytest.fixture
def lonlat_pano():
    """
    256 × 128 equirectangular raster encoding position as colour.

    R = column (longitude), G = 2 · row (latitude), B = 128, A = 255.
    """
    W, H = 256, 128
    xs, ys = np.meshgrid(np.arange(W), np.arange(H))
    pixels = np.empty((H, W, 4), dtype=np.uint8)
    pixels[..., 0] = xs
    pixels[..., 1] = ys * 2
    pixels[..., 2] = 128
    pixels[..., 3] = 255
    return Raster(pixels)


@pytest.fixture
def periodic_pano():
    """128 × 64 raster whose red channel varies smoothly and periodically with longitude."""
    W, H = 128, 64
    lon = np.arange(W) / W * 2.0 * np.pi
    row = np.rint(127.5 + 127.5 * np.cos(lon)).astype(np.uint8)
    pixels = np.zeros((H, W, 4), dtype=np.uint8)
    pixels[..., 0] = row[np.newaxis, :]
    pixels[..., 3] = 255
    return Raster(pixels)


@pytest.fixture
def small_pano():
    """64 × 32 noisy panorama, seeded, for end-to-end runs."""
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(32, 64, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    return Raster(pixels)
