"""
cli.py — Convert equirectangular panoramas into cube faces and a tile archive.

Usage:
    cubetiles <equirectangular.jpg> [<image2.jpg> ...] [--rotation DEG]
              [--interpolation nearest|linear] [--full-interpolation nearest|linear]
              [--format jpg|png]
              [--face-size N] [--faces] [--no-tiles] [-v]

Output, next to each input image:
    {stem}.tiles.zip   0/, 1/, 2/ tile folders ({face}_{row}_{col}.jpg)
                       and preview.jpg (256 × 1536 strip)
    {stem}.faces/      {face}.{jpg|png} full-resolution faces (with --faces)

Memory note: the whole panorama is held in memory as RGBA, plus one
full-resolution face per worker thread.
"""

import argparse
import logging
import os
import sys
import traceback

from .errors import CubetilesError
from .orchestrator import FaceOutput, Orchestrator
from .raster import FaceName, load_raster
from .settings import LEVEL_GRIDS, Interpolation, OutputFormat, Settings


def _print_face(output: FaceOutput) -> None:
    print(f"  [{output.face.value}] {output.result.raster.width} px → {output.filename}",
          flush=True)


def process_image(img_path: str, orch: Orchestrator, settings: Settings,
                  write_faces: bool = False, write_tiles: bool = True) -> bool:
    img_path = os.path.abspath(img_path)
    stem = os.path.splitext(os.path.basename(img_path))[0]
    out_dir = os.path.dirname(img_path)

    print(f"\nProcessing: {img_path}")

    source = load_raster(img_path)
    face_size = settings.resolve_face_size(source.width)
    print(f"Source:     {source.width} × {source.height} px")
    print(f"Face size:  {face_size} × {face_size} px")
    if write_tiles and face_size < LEVEL_GRIDS[-1]:
        print(f"ERROR: a {face_size} px face is too small to cut into "
              f"{LEVEL_GRIDS[-1]}×{LEVEL_GRIDS[-1]} tiles.", file=sys.stderr)
        return False

    run = orch.start(source, settings)
    faces = orch.wait_faces(run)
    del source

    if write_faces:
        faces_dir = os.path.join(out_dir, f"{stem}.faces")
        os.makedirs(faces_dir, exist_ok=True)
        for face in FaceName:
            with open(os.path.join(faces_dir, faces[face].filename), 'wb') as fh:
                fh.write(faces[face].data)
        print(f"Faces:      {faces_dir}")

    if write_tiles:
        print("  Building tiles … ", end='', flush=True)
        archive = orch.build_tiles(run)
        print("done")
        zip_path = os.path.join(out_dir, f"{stem}.tiles.zip")
        with open(zip_path, 'wb') as fh:
            fh.write(archive)
        print(f"Done → {zip_path}\n")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cubetiles',
        description='Convert equirectangular panoramas into cube faces and a 3-level tile archive.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            'Output: {stem}.tiles.zip (and {stem}.faces/ with --faces) next to each input.\n'
            'Tile levels: 0 = 1×1, 1 = 2×2, 2 = 4×4, every tile 512×512 px.'
        ),
    )
    parser.add_argument('images', nargs='+', help='Path(s) to equirectangular images')
    parser.add_argument('--rotation', type=float, default=0.0,
                        help='Rotation about the vertical axis in degrees (default: 0)')
    parser.add_argument('--interpolation', choices=[i.value for i in Interpolation],
                        default=Interpolation.LINEAR.value,
                        help='Sampling for previews and, unless overridden, '
                             'the full-resolution faces (default: linear)')
    parser.add_argument('--full-interpolation', choices=[i.value for i in Interpolation],
                        default=None,
                        help='Sampling for the full-resolution faces and tiles '
                             '(default: same as --interpolation)')
    parser.add_argument('--format', choices=[f.value for f in OutputFormat],
                        default=OutputFormat.JPG.value,
                        help='Encoding of the full-resolution faces (default: jpg)')
    parser.add_argument('--face-size', type=int, default=None,
                        help='Full-resolution face size in px (default: width / π)')
    parser.add_argument('--faces', action='store_true',
                        help='Also write the six full-resolution faces')
    parser.add_argument('--no-tiles', action='store_true',
                        help='Skip the tile archive')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    )

    try:
        settings = Settings.from_degrees(
            args.rotation,
            interpolation=args.interpolation,
            full_interpolation=args.full_interpolation or args.interpolation,
            format=args.format,
            face_size=args.face_size,
        )
    except CubetilesError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    failed = 0
    with Orchestrator(on_face=_print_face) as orch:
        for path in args.images:
            if not os.path.isfile(path):
                print(f"ERROR: file not found: {path}", file=sys.stderr)
                failed += 1
                continue
            try:
                if not process_image(path, orch, settings,
                                     write_faces=args.faces,
                                     write_tiles=not args.no_tiles):
                    failed += 1
            except Exception as exc:
                print(f"ERROR processing {path}: {exc}", file=sys.stderr)
                traceback.print_exc()
                failed += 1

    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
