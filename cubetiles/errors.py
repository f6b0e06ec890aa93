"""
errors.py — Exception types raised by the cubetiles pipeline.
"""


class CubetilesError(Exception):
    """Base class for every error raised by cubetiles."""


class InvalidInput(CubetilesError, ValueError):
    """Degenerate raster dimensions, bad settings or a zero-sized tile region."""


class DuplicatePath(CubetilesError, KeyError):
    """An archive entry was inserted twice under the same path."""

    def __init__(self, path: str):
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"duplicate archive entry: {self.path!r}"


class DecodeFailure(CubetilesError):
    """An image could not be decoded or encoded."""


class ArchiveFinalized(CubetilesError):
    """The archive was used after finalize() had already been called."""


class RunCancelled(CubetilesError):
    """The run was superseded by a newer one or cancelled explicitly."""


class ConversionError(CubetilesError):
    """A per-face task failed; the whole run was aborted."""

    def __init__(self, message: str, face=None):
        super().__init__(message)
        self.face = face
