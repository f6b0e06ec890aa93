"""
cubetiles — Equirectangular panoramas to cube faces and multi-resolution tiles.
"""

from .archive import ArchiveAssembler, composite_preview, preview_position
from .errors import (
    ArchiveFinalized,
    ConversionError,
    CubetilesError,
    DecodeFailure,
    DuplicatePath,
    InvalidInput,
    RunCancelled,
)
from .orchestrator import ConversionResult, FaceOutput, Orchestrator, Run, RunState
from .projector import project, project_face
from .pyramid import Tile, TileCoordinate, decompose
from .raster import FACE_GRID, CubeFaceResult, FaceName, Raster, encode_image, load_raster
from .rotate import rotate180
from .settings import Interpolation, OutputFormat, Settings

__version__ = '0.1.0'
