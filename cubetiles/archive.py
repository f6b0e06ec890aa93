"""
archive.py — In-memory ZIP assembly of tiles and the composite preview.

Entries are append-only: inserting the same path twice means the pyramid
or face naming is broken, so it raises DuplicatePath instead of
overwriting.  finalize() closes the archive and returns its bytes; it can
only be called once.
"""

import io
import logging
import zipfile
from typing import Iterable

from PIL import Image

from .errors import ArchiveFinalized, DuplicatePath, InvalidInput
from .pyramid import Tile
from .raster import FACE_GRID, CubeFaceResult, FaceName, Raster, encode_image
from .settings import PREVIEW_FACE_SIZE, PREVIEW_NAME

logger = logging.getLogger(__name__)

# Fixed entry timestamp so identical runs give identical archives
_EPOCH = (1980, 1, 1, 0, 0, 0)


class ArchiveAssembler:
    """Append-only ZIP accumulator owned by a single conversion run."""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self._buf = io.BytesIO()
        self._compression = compression
        self._zip = zipfile.ZipFile(self._buf, 'w', compression=compression)
        self._paths: list[str] = []
        self._seen: set[str] = set()
        self._data: bytes | None = None

    @property
    def paths(self) -> list[str]:
        """Inserted entry paths, in insertion order."""
        return list(self._paths)

    @property
    def finalized(self) -> bool:
        return self._data is not None

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: str) -> bool:
        return path in self._seen

    def insert(self, path: str, data: bytes) -> None:
        if self.finalized:
            raise ArchiveFinalized(f"cannot insert {path!r}: archive already finalized")
        if path in self._seen:
            raise DuplicatePath(path)
        info = zipfile.ZipInfo(path, date_time=_EPOCH)
        info.compress_type = self._compression
        self._zip.writestr(info, data)
        self._seen.add(path)
        self._paths.append(path)

    def insert_tile(self, tile: Tile, quality: int = 90) -> None:
        self.insert(tile.path, encode_image(tile.raster, 'jpg', quality))

    def finalize(self) -> bytes:
        if self.finalized:
            raise ArchiveFinalized("finalize() called twice")
        self._zip.close()
        self._data = self._buf.getvalue()
        self._buf.close()
        logger.debug("archive finalized: %d entries, %d bytes",
                     len(self._paths), len(self._data))
        return self._data


# ── Preview ──────────────────────────────────────────────────────────────────

def composite_preview(faces: Iterable[CubeFaceResult],
                      cell: int = PREVIEW_FACE_SIZE) -> Raster:
    """
    Stack all six faces vertically, sorted by name, each in a cell × cell square.

    Order: back, down, front, left, right, up → cell × (cell · 6) image.
    """
    by_name = {f.face: f for f in faces}
    order = FaceName.lexicographic()
    missing = [f.value for f in order if f not in by_name]
    if missing:
        raise InvalidInput(f"composite preview needs all six faces, missing {missing}")

    preview = Image.new('RGBA', (cell, cell * len(order)), (0, 0, 0, 255))
    for i, face in enumerate(order):
        thumb = by_name[face].raster.to_image().resize((cell, cell), Image.BILINEAR)
        preview.paste(thumb, (0, i * cell))
    return Raster.from_image(preview)


def add_preview(archive: ArchiveAssembler, faces: Iterable[CubeFaceResult],
                quality: int = 90) -> None:
    archive.insert(PREVIEW_NAME, encode_image(composite_preview(faces), 'jpg', quality))


def preview_position(face: FaceName, width: int, height: int) -> tuple[int, int]:
    """Top-left pixel of a face's live preview on the cross-shaped sprite sheet."""
    col, row = FACE_GRID[FaceName(face)]
    return width * col, height * row
