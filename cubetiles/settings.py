"""
settings.py — Conversion settings snapshot and pipeline constants.

A Settings instance is taken once per conversion run and never mutated;
changing any value means starting a new run.

Example:
    from cubetiles.settings import Settings

    settings = Settings.from_degrees(90, interpolation='nearest', format='png')
"""

import math
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidInput
from .raster import FaceName

# ── Constants ────────────────────────────────────────────────────────────────
TILE_SIZE = 512                    # px; every pyramid tile is TILE_SIZE × TILE_SIZE
LEVEL_GRIDS = (1, 2, 4)            # tiles per row / column for levels 0, 1, 2
PREVIEW_FACE_SIZE = 256            # each face cell in preview.jpg
PREVIEW_NAME = 'preview.jpg'
ROTATED_FACES = frozenset({FaceName.UP, FaceName.DOWN})


class Interpolation(str, Enum):
    NEAREST = 'nearest'
    LINEAR = 'linear'


class OutputFormat(str, Enum):
    JPG = 'jpg'
    PNG = 'png'

    @property
    def mime_type(self) -> str:
        return {'jpg': 'image/jpeg', 'png': 'image/png'}[self.value]


class Settings(BaseModel):
    """Immutable per-run conversion settings."""

    model_config = ConfigDict(frozen=True)

    rotation: float = Field(
        default=0.0,
        description="Rotation about the vertical axis in radians, applied to every face",
    )
    interpolation: Interpolation = Field(
        default=Interpolation.LINEAR,
        description="Sampling used for the live face previews",
    )
    format: OutputFormat = Field(
        default=OutputFormat.JPG,
        description="Encoding of the per-face downloads",
    )
    preview_size: int = Field(
        default=200,
        ge=1,
        description="Side length of the live preview faces",
    )
    face_size: Optional[int] = Field(
        default=None,
        ge=1,
        description="Side length of full-resolution faces (None = source width / π)",
    )
    full_interpolation: Interpolation = Field(
        default=Interpolation.LINEAR,
        description="Sampling used for the full-resolution faces",
    )
    jpeg_quality: int = Field(default=90, ge=1, le=100)

    @classmethod
    def create(cls, **values) -> 'Settings':
        """Build settings, reporting validation problems as InvalidInput."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise InvalidInput(str(exc)) from exc

    @classmethod
    def from_degrees(cls, degrees: float, **values) -> 'Settings':
        return cls.create(rotation=math.radians(degrees), **values)

    def resolve_face_size(self, source_width: int) -> int:
        """Full-resolution face size; defaults to round(W / π) like the krpano tools."""
        if self.face_size is not None:
            return self.face_size
        return max(1, round(source_width / math.pi))
