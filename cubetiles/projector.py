"""
projector.py — Equirectangular → cube-face reprojection.

Coordinate system (right-handed):
    +Z = front   +X = right   +Y = up

Every destination pixel of an N × N face is turned into a 3-D direction,
rotated about the vertical axis by the user rotation, converted to
longitude / latitude and finally to a floating-point position in the
source panorama:

    srcX = (lon / 2π + 0.5) · W
    srcY = (0.5 − lat / π) · H

The source is then sampled with nearest-neighbour or bilinear
interpolation.  Horizontally the panorama is periodic (wrap), vertically
it is clamped at the poles.
"""

import logging
import math
from typing import Callable, Optional

import numpy as np

from .errors import InvalidInput
from .raster import CubeFaceResult, FaceName, Raster
from .settings import Interpolation, Settings

logger = logging.getLogger(__name__)


# ── Direction vectors ────────────────────────────────────────────────────────

def face_directions(face: FaceName, size: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Unit direction vectors for every pixel of one cube face.

    Args:
        face: the cube face
        size: face side length in pixels

    Returns:
        (dx, dy, dz), each a (size, size) float32 array
    """
    face = FaceName(face)

    # UV grids: u ∈ [-1, +1] left→right, v ∈ [+1, -1] top→bottom
    u = np.linspace(-1.0, 1.0, size, dtype=np.float32)
    v = np.linspace(1.0, -1.0, size, dtype=np.float32)
    uu, vv = np.meshgrid(u, v)
    del u, v

    one = np.ones((size, size), dtype=np.float32)

    if face is FaceName.FRONT:    # +Z: screen-right → +X, screen-up → +Y
        dx, dy, dz = uu, vv, one
    elif face is FaceName.BACK:   # -Z: screen-right → -X
        dx, dy, dz = -uu, vv, -one
    elif face is FaceName.RIGHT:  # +X: screen-right → -Z
        dx, dy, dz = one, vv, -uu
    elif face is FaceName.LEFT:   # -X: screen-right → +Z
        dx, dy, dz = -one, vv, uu
    elif face is FaceName.UP:     # +Y: screen-top → -Z (back)
        dx, dy, dz = uu, one, -vv
    else:                         # -Y: screen-top → +Z (front)
        dx, dy, dz = uu, -one, vv
    del uu, vv, one

    norm = np.sqrt(dx * dx + dy * dy + dz * dz)
    return dx / norm, dy / norm, dz / norm


def rotate_directions(dx: np.ndarray, dy: np.ndarray, dz: np.ndarray,
                      rotation: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Rotate directions about +Y; a positive angle increases longitude."""
    if rotation == 0.0:
        return dx, dy, dz
    c = np.float32(math.cos(rotation))
    s = np.float32(math.sin(rotation))
    return dx * c + dz * s, dy, dz * c - dx * s


def source_coordinates(dx: np.ndarray, dy: np.ndarray, dz: np.ndarray,
                       width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Map unit directions to floating-point equirectangular pixel coordinates."""
    lon = np.arctan2(dx, dz).astype(np.float32)                  # [-π, π]
    lat = np.arcsin(np.clip(dy, -1.0, 1.0)).astype(np.float32)   # [-π/2, π/2]

    pi32 = np.float32(math.pi)
    px = (lon / (np.float32(2.0) * pi32) + np.float32(0.5)) * np.float32(width)
    py = (np.float32(0.5) - lat / pi32) * np.float32(height)
    return px, py


# ── Sampling ─────────────────────────────────────────────────────────────────

def sample_nearest(pixels: np.ndarray, px: np.ndarray, py: np.ndarray) -> np.ndarray:
    """Round to the nearest source pixel, clamped to the image bounds."""
    H, W = pixels.shape[:2]
    x = np.clip(np.floor(px + np.float32(0.5)).astype(np.int64), 0, W - 1)
    y = np.clip(np.floor(py + np.float32(0.5)).astype(np.int64), 0, H - 1)
    return pixels[y, x]


def sample_bilinear(pixels: np.ndarray, px: np.ndarray, py: np.ndarray) -> np.ndarray:
    """Four-neighbour weighted average; x wraps modulo W, y clamps."""
    H, W = pixels.shape[:2]

    x0 = np.floor(px).astype(np.int64)
    y0 = np.floor(py).astype(np.int64)
    wx = (px - x0.astype(np.float32))
    wy = (py - y0.astype(np.float32))

    # Wrap x (equirectangular is horizontally periodic); clamp y
    x1 = (x0 + 1) % W
    y1 = np.clip(y0 + 1, 0, H - 1)
    x0 = x0 % W
    y0 = np.clip(y0, 0, H - 1)

    c00 = pixels[y0, x0].astype(np.float32)
    c10 = pixels[y0, x1].astype(np.float32)
    c01 = pixels[y1, x0].astype(np.float32)
    c11 = pixels[y1, x1].astype(np.float32)
    del x0, x1, y0, y1

    # Expand weights to broadcast over RGBA channels
    wx = wx[..., np.newaxis]
    wy = wy[..., np.newaxis]
    iwx = np.float32(1.0) - wx
    iwy = np.float32(1.0) - wy

    result = c00 * iwx * iwy + c10 * wx * iwy + c01 * iwx * wy + c11 * wx * wy
    del c00, c10, c01, c11

    return np.clip(np.rint(result), 0, 255).astype(np.uint8)


_SAMPLERS = {
    Interpolation.NEAREST: sample_nearest,
    Interpolation.LINEAR: sample_bilinear,
}


# ── Projection ───────────────────────────────────────────────────────────────

def project(source: Raster, face: FaceName, rotation: float = 0.0,
            interpolation: Interpolation = Interpolation.LINEAR,
            size: int = 512) -> Raster:
    """
    Project an equirectangular raster onto one cube face.

    Pure: the source raster is only read.

    Raises:
        InvalidInput: the source has zero width or height, or size < 1
    """
    if source.width == 0 or source.height == 0:
        raise InvalidInput(f"degenerate source raster {source.width}×{source.height}")
    if size < 1:
        raise InvalidInput(f"face size must be positive, got {size}")

    dx, dy, dz = face_directions(face, size)
    dx, dy, dz = rotate_directions(dx, dy, dz, rotation)
    px, py = source_coordinates(dx, dy, dz, source.width, source.height)
    del dx, dy, dz

    sampler = _SAMPLERS[Interpolation(interpolation)]
    return Raster(np.ascontiguousarray(sampler(source.pixels, px, py)))


def project_face(source: Raster, face: FaceName, settings: Settings,
                 on_preview: Optional[Callable[[Raster], None]] = None
                 ) -> tuple[Raster, CubeFaceResult]:
    """
    Per-face worker body: small preview first, then the full-resolution face.

    on_preview is called with the preview before the full face is
    requested, so a caller can publish it or abort the task in between.
    """
    face = FaceName(face)
    preview = project(source, face, settings.rotation,
                      settings.interpolation, settings.preview_size)
    if on_preview is not None:
        on_preview(preview)

    size = settings.resolve_face_size(source.width)
    logger.debug("projecting %s at %d px", face.value, size)
    full = project(source, face, settings.rotation,
                   settings.full_interpolation, size)
    return preview, CubeFaceResult(face, full, source.width, source.height)
