"""
orchestrator.py — Drives one conversion run from source raster to archive.

States:

    IDLE → PROJECTING → ROTATING → TILING → COMPOSITING → ARCHIVING → DONE
                   └──────────────┴─────────┴────────────┴──→ CANCELLED

Each run carries a generation id.  Starting a new run cancels the previous
one: its queued face tasks are cancelled, running ones are told to stop,
and any result that still arrives from an old generation is dropped.

The six face projections run in parallel on a thread pool and share the
read-only source raster.  Inside one face task the small preview is
produced and published before the full-resolution face is requested.
Every stage ends in a barrier over all six faces; the first failing face
aborts the whole run without waiting for the others.  The archive is only
written by the orchestrator, after the tiling barrier.

Example:
    with Orchestrator() as orch:
        result = orch.convert(load_raster('pano.jpg'), Settings.from_degrees(90))
        open('pano.tiles.zip', 'wb').write(result.archive)
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .archive import ArchiveAssembler, add_preview, preview_position
from .errors import ConversionError, InvalidInput, RunCancelled
from .projector import project_face
from .pyramid import iter_tiles
from .raster import CubeFaceResult, FaceName, Raster, encode_image
from .rotate import normalize_orientation
from .settings import Settings

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = 'idle'
    PROJECTING = 'projecting'
    ROTATING = 'rotating'
    TILING = 'tiling'
    COMPOSITING = 'compositing'
    ARCHIVING = 'archiving'
    DONE = 'done'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class FaceOutput:
    """Everything the UI needs for one face: live preview and download."""
    face: FaceName
    preview: bytes
    position: tuple[int, int]
    data: bytes
    filename: str
    result: CubeFaceResult


@dataclass(frozen=True)
class ConversionResult:
    generation: int
    faces: dict[FaceName, FaceOutput]
    archive: bytes


class Run:
    """Run-scoped state: settings snapshot, per-face tasks and collected faces."""

    def __init__(self, generation: int, source: Raster, settings: Settings):
        self.generation = generation
        self.source = source
        self.settings = settings
        self.state = RunState.PROJECTING
        self.futures: dict[FaceName, Future] = {}
        self.faces: dict[FaceName, FaceOutput] = {}
        self._cancelled = threading.Event()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Run(generation={self.generation}, state={self.state.value})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()
        for future in self.futures.values():
            future.cancel()
        if self.state is not RunState.DONE:
            self.state = RunState.CANCELLED

    def check(self) -> None:
        if self.cancelled:
            raise RunCancelled(f"run {self.generation} was cancelled")

    def collect(self, output: FaceOutput) -> bool:
        """Store a finished face; returns False if the run no longer accepts results."""
        with self._lock:
            if self.cancelled or output.face in self.faces:
                return False
            self.faces[output.face] = output
            return True


class Orchestrator:
    """
    Owns the current run and the worker pool.

    Args:
        max_workers: parallel face tasks (default: one per face)
        project:     per-face projection function, project_face signature
        on_preview:  called as on_preview(face, jpeg_bytes, (x, y)) from a
                     worker thread when a live preview is ready
        on_face:     called with each FaceOutput once its full face is encoded
    """

    def __init__(self, max_workers: Optional[int] = None,
                 project: Callable = project_face,
                 on_preview: Optional[Callable] = None,
                 on_face: Optional[Callable[[FaceOutput], None]] = None):
        self._executor = ThreadPoolExecutor(max_workers=max_workers or len(FaceName),
                                            thread_name_prefix='cubetiles')
        self._project = project
        self._on_preview = on_preview
        self._on_face = on_face
        self._lock = threading.Lock()
        self._generation = 0
        self._current: Optional[Run] = None

    def __enter__(self) -> 'Orchestrator':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._current.state if self._current is not None else RunState.IDLE

    def _ensure_current(self, run: Run) -> None:
        with self._lock:
            stale = run is not self._current
        if stale or run.cancelled:
            raise RunCancelled(f"run {run.generation} was superseded")

    def _advance(self, run: Run, state: RunState) -> None:
        with self._lock:
            if run is not self._current or run.cancelled:
                raise RunCancelled(f"run {run.generation} was superseded")
            logger.debug("run %d: %s → %s", run.generation, run.state.value, state.value)
            run.state = state

    def _fail(self, run: Run, face: Optional[FaceName], exc: BaseException) -> ConversionError:
        where = f" [{face.value}]" if face is not None else ""
        stage = run.state.value
        logger.error("run %d failed in %s%s: %s", run.generation, stage, where, exc)
        with self._lock:
            run.cancel()
            if self._current is run:
                self._current = None
        return ConversionError(f"{stage}{where}: {exc}", face)

    def cancel(self) -> None:
        """Cancel the in-flight run, if any, and return to IDLE."""
        with self._lock:
            run, self._current = self._current, None
            if run is not None and run.state is not RunState.DONE:
                logger.info("run %d cancelled", run.generation)
                run.cancel()

    def close(self) -> None:
        self.cancel()
        self._executor.shutdown(wait=True)

    # ── Projection ───────────────────────────────────────────────────────────

    def start(self, source: Raster, settings: Optional[Settings] = None) -> Run:
        """Cancel any in-flight run and fan out six face projections."""
        if source.width == 0 or source.height == 0:
            raise InvalidInput(f"degenerate source raster {source.width}×{source.height}")
        settings = settings if settings is not None else Settings()

        with self._lock:
            previous = self._current
            self._generation += 1
            run = Run(self._generation, source, settings)
            self._current = run
            if previous is not None and previous.state is not RunState.DONE:
                logger.info("run %d superseded by run %d", previous.generation, run.generation)
                previous.cancel()

            logger.info("run %d: projecting %s source", run.generation, source)
            for face in FaceName:
                run.futures[face] = self._executor.submit(self._face_task, run, face)
        return run

    def _face_task(self, run: Run, face: FaceName) -> Optional[FaceOutput]:
        run.check()
        settings = run.settings
        preview: dict[str, object] = {}

        def publish_preview(raster: Raster) -> None:
            self._ensure_current(run)
            data = encode_image(raster, 'jpg', settings.jpeg_quality)
            position = preview_position(face, raster.width, raster.height)
            preview['data'], preview['position'] = data, position
            if self._on_preview is not None:
                self._on_preview(face, data, position)

        _, result = self._project(run.source, face, settings, publish_preview)
        self._ensure_current(run)

        fmt = settings.format.value
        output = FaceOutput(
            face=face,
            preview=preview['data'],
            position=preview['position'],
            data=encode_image(result.raster, fmt, settings.jpeg_quality),
            filename=f"{face.value}.{fmt}",
            result=result,
        )
        if not run.collect(output):
            logger.debug("run %d: dropping stale %s face", run.generation, face.value)
            return None
        if self._on_face is not None:
            self._on_face(output)
        return output

    def _join(self, run: Run, futures: dict[FaceName, Future]) -> dict[FaceName, object]:
        """
        Barrier over one future per face.

        Returns as soon as any face fails: the run is cancelled so the
        remaining tasks stop at their next check, and the first failed face
        in face order is reported.
        """
        done, _ = wait(futures.values(), return_when=FIRST_EXCEPTION)
        self._ensure_current(run)

        for face, future in futures.items():
            if future in done and not future.cancelled() and future.exception() is not None:
                exc = future.exception()
                raise self._fail(run, face, exc) from exc

        if any(future.cancelled() for future in futures.values()):
            raise RunCancelled(f"run {run.generation} was cancelled")
        return {face: future.result() for face, future in futures.items()}

    def wait_faces(self, run: Run) -> dict[FaceName, FaceOutput]:
        """
        Block until all six faces of run are projected.

        Raises:
            RunCancelled:     run was superseded or cancelled
            ConversionError:  a face failed; the run is aborted
        """
        if run.state is RunState.PROJECTING:
            self._join(run, run.futures)
            self._advance(run, RunState.ROTATING)
        else:
            self._ensure_current(run)
        return {face: run.faces[face] for face in FaceName}

    # ── Tiling ───────────────────────────────────────────────────────────────

    def _tile_task(self, run: Run, result: CubeFaceResult) -> list[tuple[str, bytes]]:
        quality = run.settings.jpeg_quality
        encoded = []
        for tile in iter_tiles(result.raster, result.face):
            run.check()
            encoded.append((tile.path, encode_image(tile.raster, 'jpg', quality)))
        return encoded

    def build_tiles(self, run: Run) -> bytes:
        """
        Rotate, tile, composite and archive the faces of run.

        Returns:
            ZIP bytes: {level}/{face}_{row}_{col}.jpg for levels 0-2, plus preview.jpg
        """
        faces = self.wait_faces(run)
        if run.state is RunState.DONE:
            self._advance(run, RunState.ROTATING)

        try:
            oriented = [normalize_orientation(faces[face].result) for face in FaceName]
        except Exception as exc:
            raise self._fail(run, None, exc) from exc

        self._advance(run, RunState.TILING)
        futures = {r.face: self._executor.submit(self._tile_task, run, r) for r in oriented}
        tiles = self._join(run, futures)

        self._advance(run, RunState.COMPOSITING)
        archive = ArchiveAssembler()
        try:
            for face in FaceName:
                for path, data in tiles[face]:
                    archive.insert(path, data)
            add_preview(archive, oriented, run.settings.jpeg_quality)

            self._advance(run, RunState.ARCHIVING)
            data = archive.finalize()
        except RunCancelled:
            raise
        except Exception as exc:
            raise self._fail(run, None, exc) from exc

        self._advance(run, RunState.DONE)
        logger.info("run %d: archive ready (%d entries, %d bytes)",
                    run.generation, len(archive), len(data))
        return data

    def convert(self, source: Raster, settings: Optional[Settings] = None) -> ConversionResult:
        """Run the whole pipeline and return face downloads plus the archive."""
        run = self.start(source, settings)
        faces = self.wait_faces(run)
        archive = self.build_tiles(run)
        return ConversionResult(run.generation, faces, archive)
