"""
test_orchestrator.py — Run lifecycle, archive completeness, cancellation, failures
"""

import io
import threading
import time
import zipfile

import numpy as np
import pytest

from cubetiles.errors import ConversionError, InvalidInput, RunCancelled
from cubetiles.orchestrator import Orchestrator, RunState
from cubetiles.projector import project_face
from cubetiles.raster import FaceName, Raster, decode_image
from cubetiles.settings import OutputFormat, Settings

from conftest import solid

SETTINGS = Settings(preview_size=8, face_size=16)


def expected_paths():
    paths = set()
    for face in FaceName:
        for level, grid in enumerate((1, 2, 4)):
            for row in range(grid):
                for col in range(grid):
                    paths.add(f"{level}/{face.value}_{row}_{col}.jpg")
    return paths


def entries(archive):
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        return zf.namelist()


@pytest.fixture
def orch():
    with Orchestrator() as o:
        yield o


class TestConvert:

    def test_archive_completeness(self, orch, small_pano):
        result = orch.convert(small_pano, SETTINGS)
        names = entries(result.archive)

        assert len(names) == 127
        assert len(set(names)) == 127
        assert set(names) == expected_paths() | {'preview.jpg'}
        assert orch.state is RunState.DONE

    def test_face_outputs(self, orch, small_pano):
        settings = Settings(preview_size=8, face_size=16, format=OutputFormat.PNG)
        faces = orch.convert(small_pano, settings).faces

        assert list(faces) == list(FaceName)
        for face, out in faces.items():
            assert out.filename == f"{face.value}.png"
            assert decode_image(out.data).size == (16, 16)
            assert decode_image(out.preview).size == (8, 8)
        assert faces[FaceName.FRONT].position == (24, 8)
        assert faces[FaceName.UP].position == (8, 0)

    def test_pole_faces_rotated_before_tiling(self, orch, small_pano):
        run = orch.start(small_pano, SETTINGS)
        faces = orch.wait_faces(run)
        assert orch.state is RunState.ROTATING
        orch.build_tiles(run)
        # the projected faces handed to the UI stay unrotated
        up = faces[FaceName.UP].result.raster
        assert up == project_face(small_pano, FaceName.UP, SETTINGS)[1].raster

    def test_build_tiles_twice(self, orch, small_pano):
        run = orch.start(small_pano, SETTINGS)
        first = orch.build_tiles(run)
        second = orch.build_tiles(run)
        assert first == second

    def test_callbacks(self, small_pano):
        previews, finished = [], []
        with Orchestrator(on_preview=lambda f, data, pos: previews.append(f),
                          on_face=lambda out: finished.append(out.face)) as orch:
            orch.wait_faces(orch.start(small_pano, SETTINGS))
        assert sorted(previews) == sorted(FaceName)
        assert sorted(finished) == sorted(FaceName)

    def test_degenerate_source(self, orch):
        with pytest.raises(InvalidInput):
            orch.start(Raster(np.zeros((0, 0, 4), dtype=np.uint8)), SETTINGS)
        assert orch.state is RunState.IDLE


class TestCancellation:

    def test_superseded_run_contributes_nothing(self):
        red = solid(64, 32, (255, 0, 0, 255))
        blue = solid(64, 32, (0, 0, 255, 255))
        gate = threading.Event()
        late = []

        def gated_project(source, face, settings, on_preview=None):
            if source is red:
                gate.wait(10)
            return project_face(source, face, settings, on_preview)

        with Orchestrator(max_workers=12, project=gated_project,
                          on_face=lambda out: late.append(out)) as orch:
            run_a = orch.start(red, SETTINGS)
            run_b = orch.start(blue, SETTINGS)
            assert run_a.state is RunState.CANCELLED
            assert run_b.generation == run_a.generation + 1

            gate.set()      # A's face tasks complete after B has started
            faces = orch.wait_faces(run_b)
            archive = orch.build_tiles(run_b)

            with pytest.raises(RunCancelled):
                orch.wait_faces(run_a)
            with pytest.raises(RunCancelled):
                orch.build_tiles(run_a)
            assert run_a.state is RunState.CANCELLED
            assert set(run_a.futures) == set(FaceName)

        assert run_a.faces == {}
        assert all(out.result.raster.pixels[..., 2].min() == 255 for out in faces.values())
        assert all(out.face in faces and faces[out.face] is out for out in late)
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            for name in zf.namelist():
                tile = decode_image(zf.read(name))
                assert tile.pixels[..., 0].max() < 32, name

    def test_cancel_returns_to_idle(self, small_pano):
        gate = threading.Event()

        def gated_project(source, face, settings, on_preview=None):
            gate.wait(10)
            return project_face(source, face, settings, on_preview)

        with Orchestrator(project=gated_project) as orch:
            run = orch.start(small_pano, SETTINGS)
            orch.cancel()
            assert orch.state is RunState.IDLE
            gate.set()
            with pytest.raises(RunCancelled):
                orch.build_tiles(run)


class TestFailures:

    def test_single_error_for_failing_face(self, small_pano):
        calls = []

        def failing_project(source, face, settings, on_preview=None):
            calls.append(face)
            if face is FaceName.LEFT:
                raise ValueError('boom')
            return project_face(source, face, settings, on_preview)

        with Orchestrator(project=failing_project) as orch:
            run = orch.start(small_pano, SETTINGS)
            with pytest.raises(ConversionError) as excinfo:
                orch.wait_faces(run)
            assert excinfo.value.face is FaceName.LEFT
            assert isinstance(excinfo.value.__cause__, ValueError)
            assert orch.state is RunState.IDLE
            assert run.state is RunState.CANCELLED

    def test_failure_does_not_wait_for_slow_faces(self, small_pano):
        gate = threading.Event()

        def failing_project(source, face, settings, on_preview=None):
            if face is FaceName.UP:
                raise ValueError('boom')
            gate.wait(10)
            return project_face(source, face, settings, on_preview)

        with Orchestrator(project=failing_project) as orch:
            run = orch.start(small_pano, SETTINGS)
            started = time.monotonic()
            try:
                with pytest.raises(ConversionError) as excinfo:
                    orch.wait_faces(run)
                elapsed = time.monotonic() - started
            finally:
                gate.set()
            assert excinfo.value.face is FaceName.UP
            assert elapsed < 5
            assert orch.state is RunState.IDLE
            assert run.faces == {}

    def test_face_too_small_to_tile(self, orch, small_pano):
        run = orch.start(small_pano, Settings(preview_size=4, face_size=3))
        orch.wait_faces(run)
        with pytest.raises(ConversionError) as excinfo:
            orch.build_tiles(run)
        assert isinstance(excinfo.value.__cause__, InvalidInput)
        assert orch.state is RunState.IDLE

    def test_new_run_after_failure(self, orch, small_pano):
        bad = orch.start(small_pano, Settings(preview_size=4, face_size=3))
        with pytest.raises(ConversionError):
            orch.build_tiles(bad)
        result = orch.convert(small_pano, SETTINGS)
        assert len(entries(result.archive)) == 127
