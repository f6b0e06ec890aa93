"""
pyramid.py — Multi-resolution tile pyramid for one cube face.

Levels:
    0   whole face            → 1 tile
    1   2 × 2 regions         → 4 tiles
    2   4 × 4 regions         → 16 tiles

Every region is stretched to a TILE_SIZE × TILE_SIZE cell with bilinear
scaling.  Region sizes use truncating division (floor(dim / grid)) and
region i starts at i · tile, so when a face is not divisible by the grid
the trailing dim % grid pixels belong to no region.  Tile boundaries stay
reproducible across runs.

Archive naming: {level}/{face}_{row}_{col}.jpg
"""

from dataclasses import dataclass
from typing import Iterator

from PIL import Image

from .errors import InvalidInput
from .raster import FaceName, Raster
from .settings import LEVEL_GRIDS, TILE_SIZE


# ── Types ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True, order=True)
class TileCoordinate:
    level: int
    row: int
    col: int

    def __post_init__(self):
        if not 0 <= self.level < len(LEVEL_GRIDS):
            raise InvalidInput(f"tile level out of range: {self.level}")
        grid = LEVEL_GRIDS[self.level]
        if not (0 <= self.row < grid and 0 <= self.col < grid):
            raise InvalidInput(
                f"tile ({self.row}, {self.col}) outside the {grid}×{grid} grid of level {self.level}")

    @property
    def grid(self) -> int:
        return LEVEL_GRIDS[self.level]


@dataclass(frozen=True)
class Tile:
    face: FaceName
    coord: TileCoordinate
    raster: Raster

    @property
    def path(self) -> str:
        return tile_path(self.face, self.coord)


def tile_path(face: FaceName, coord: TileCoordinate) -> str:
    return f"{coord.level}/{FaceName(face).value}_{coord.row}_{coord.col}.jpg"


# ── Regions ──────────────────────────────────────────────────────────────────

def tile_regions(width: int, height: int, grid: int) -> list[tuple[int, int, int, int]]:
    """
    (left, top, right, bottom) boxes of a grid × grid split, row-major.

    Raises:
        InvalidInput: the face is smaller than the grid in either direction
    """
    tile_w = width // grid
    tile_h = height // grid
    if tile_w < 1 or tile_h < 1:
        raise InvalidInput(
            f"{width}×{height} face is too small for a {grid}×{grid} tile grid")

    return [(col * tile_w, row * tile_h, (col + 1) * tile_w, (row + 1) * tile_h)
            for row in range(grid)
            for col in range(grid)]


# ── Decomposition ────────────────────────────────────────────────────────────

def iter_tiles(face_raster: Raster, face: FaceName) -> Iterator[Tile]:
    """Yield every tile of the face's pyramid, level by level, row-major."""
    face = FaceName(face)
    img = face_raster.to_image()

    # Validate all levels up front so a failing face yields nothing
    regions = [tile_regions(img.width, img.height, grid) for grid in LEVEL_GRIDS]

    for level, boxes in enumerate(regions):
        grid = LEVEL_GRIDS[level]
        for i, box in enumerate(boxes):
            cell = img.resize((TILE_SIZE, TILE_SIZE), Image.BILINEAR, box=box)
            yield Tile(face, TileCoordinate(level, i // grid, i % grid), Raster.from_image(cell))


def decompose(face_raster: Raster, face: FaceName) -> list[Tile]:
    """Cut one face into its 1 + 4 + 16 tiles."""
    return list(iter_tiles(face_raster, face))
