"""
rotate.py — 180° rotation of the pole faces before tiling.

Viewers expect the up and down faces turned half a turn relative to the
projection output, so both are rotated before the pyramid is cut.
"""

import numpy as np

from .raster import CubeFaceResult, Raster
from .settings import ROTATED_FACES


def rotate180(raster: Raster) -> Raster:
    """Point reflection: output (x, y) = input (W−1−x, H−1−y)."""
    return Raster(np.ascontiguousarray(raster.pixels[::-1, ::-1]))


def normalize_orientation(result: CubeFaceResult) -> CubeFaceResult:
    """Rotate up/down faces; every other face is returned unchanged."""
    if result.face not in ROTATED_FACES:
        return result
    return result.with_raster(rotate180(result.raster))
