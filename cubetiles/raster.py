"""
raster.py — RGBA8 pixel buffers, cube-face identifiers and image codecs.

A Raster is the unit of data handed between pipeline stages: an (H, W, 4)
uint8 numpy array, row-major, unmultiplied alpha.  Encoding and decoding
go through Pillow.
"""

import io
from dataclasses import dataclass, replace
from enum import Enum

import numpy as np
from PIL import Image

from .errors import DecodeFailure, InvalidInput

# Allow very large panoramas
Image.MAX_IMAGE_PIXELS = None


# ── Cube faces ────────────────────────────────────────────────────────────────

class FaceName(str, Enum):
    UP = 'up'
    DOWN = 'down'
    LEFT = 'left'
    RIGHT = 'right'
    FRONT = 'front'
    BACK = 'back'

    def __str__(self) -> str:
        return self.value

    @classmethod
    def lexicographic(cls) -> list['FaceName']:
        """Faces in lexicographic order: back, down, front, left, right, up."""
        return sorted(cls, key=lambda f: f.value)


# (col, row) cell of each face on the 4 × 3 preview sprite sheet
FACE_GRID: dict[FaceName, tuple[int, int]] = {
    FaceName.RIGHT: (0, 1),
    FaceName.UP:    (1, 0),
    FaceName.LEFT:  (2, 1),
    FaceName.FRONT: (3, 1),
    FaceName.DOWN:  (1, 2),
    FaceName.BACK:  (1, 1),
}


# ── Raster ────────────────────────────────────────────────────────────────────

class Raster:
    """RGBA8 image held as an (H, W, 4) uint8 array."""

    __slots__ = ('pixels',)

    def __init__(self, pixels: np.ndarray):
        if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
            raise InvalidInput(
                f"expected an (H, W, 4) uint8 array, got {pixels.dtype} {pixels.shape}")
        self.pixels = pixels

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def __repr__(self) -> str:
        return f"Raster({self.width}×{self.height})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Raster):
            return NotImplemented
        return np.array_equal(self.pixels, other.pixels)

    __hash__ = None

    @classmethod
    def from_buffer(cls, width: int, height: int, buffer) -> 'Raster':
        """Wrap a raw row-major RGBA8 buffer (bytes, bytearray or memoryview)."""
        if width < 0 or height < 0:
            raise InvalidInput(f"negative raster size {width}×{height}")
        if width * height * 4 != len(buffer):
            raise InvalidInput(
                f"buffer holds {len(buffer)} bytes, {width}×{height} RGBA needs "
                f"{width * height * 4}")
        pixels = np.frombuffer(bytes(buffer), dtype=np.uint8).reshape(height, width, 4)
        return cls(pixels.copy())

    @classmethod
    def from_image(cls, img: Image.Image) -> 'Raster':
        if img.mode != 'RGBA':
            img = img.convert('RGBA')
        return cls(np.array(img))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()


def load_raster(path: str) -> Raster:
    """Decode an image file into an RGBA Raster."""
    try:
        with Image.open(path) as img:
            return Raster.from_image(img)
    except (OSError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"cannot decode {path}: {exc}") from exc


def encode_image(image, fmt: str = 'jpg', quality: int = 90) -> bytes:
    """
    Encode a Raster or PIL image as JPEG or PNG bytes.

    JPEG has no alpha channel, so the image is flattened to RGB first.
    """
    if isinstance(image, Raster):
        image = image.to_image()
    fmt = str(fmt).lower()
    if fmt not in ('jpg', 'jpeg', 'png'):
        raise InvalidInput(f"unsupported output format: {fmt!r}")
    buf = io.BytesIO()
    try:
        if fmt == 'png':
            image.save(buf, 'PNG')
        else:
            image.convert('RGB').save(buf, 'JPEG', quality=quality)
    except (OSError, ValueError) as exc:
        raise DecodeFailure(f"cannot encode {fmt}: {exc}") from exc
    return buf.getvalue()


def decode_image(data: bytes) -> Raster:
    """Decode encoded image bytes back into a Raster."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Raster.from_image(img)
    except OSError as exc:
        raise DecodeFailure(f"cannot decode image bytes: {exc}") from exc


# ── Projection results ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class CubeFaceResult:
    """One projected cube face plus the dimensions of the panorama it came from."""
    face: FaceName
    raster: Raster
    source_width: int
    source_height: int

    def with_raster(self, raster: Raster) -> 'CubeFaceResult':
        return replace(self, raster=raster)
