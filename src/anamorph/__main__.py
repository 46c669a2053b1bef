"""Command-line interface: run one pass and report (or save) the mesh."""
import argparse
import logging
import sys

import numpy as np

from anamorph.errors import ConfigError
from anamorph.logging_config import level_for_verbosity, setup_logging
from anamorph.pipeline import run_once
from anamorph.scene import LIVE_RESOLUTION_LIMIT, AnamorphConfig

logger = logging.getLogger("anamorph.cli")


def parse_args(argv=None) -> argparse.Namespace:
    defaults = AnamorphConfig()
    parser = argparse.ArgumentParser(
        prog="anamorph",
        description="Compute the anamorphic target mesh for an eye/lens/screen setup.",
    )
    parser.add_argument("--cols", type=int, default=defaults.cols)
    parser.add_argument("--rows", type=int, default=defaults.rows)
    parser.add_argument("--n1", type=float, default=defaults.n1)
    parser.add_argument("--n2", type=float, default=defaults.n2)
    parser.add_argument("--eye", type=float, default=defaults.eye_depth, help="eye depth (mm)")
    parser.add_argument("--plane", type=float, default=defaults.virtual_plane_depth,
                        help="virtual image plane depth (mm)")
    parser.add_argument("--target", type=float, default=defaults.target_depth,
                        help="target screen depth (mm)")
    parser.add_argument("--threshold", type=float, default=defaults.mesh_distance_threshold,
                        help="maximum mesh edge length")
    parser.add_argument("--second-ray-offset", type=float, default=defaults.second_ray_offset)
    parser.add_argument("--live", action="store_true",
                        help=f"cap the grid at {LIVE_RESOLUTION_LIMIT} per axis as live mode does")
    parser.add_argument("-o", "--output", help="save vertices/uvs/triangles to this .npz file")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="show per-sample DEBUG detail on the console")
    parser.add_argument("--log-file", help="also write a DEBUG-level log to this file")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level_for_verbosity(args.verbose), args.log_file)

    config = AnamorphConfig(
        cols=args.cols,
        rows=args.rows,
        n1=args.n1,
        n2=args.n2,
        eye_depth=args.eye,
        virtual_plane_depth=args.plane,
        target_depth=args.target,
        mesh_distance_threshold=args.threshold,
        second_ray_offset=args.second_ray_offset,
        show_rays=False,
        show_markers=False,
        live_mode=args.live,
    )

    try:
        result = run_once(config, live=args.live)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    mesh = result.mesh
    logger.info(
        f"{len(result.virtual)} samples, {result.trace.num_hits} reached the target; "
        f"{mesh.num_triangles} triangles ({mesh.skipped} skipped)."
    )

    if args.output:
        np.savez(args.output, vertices=mesh.vertices, uvs=mesh.uvs, triangles=mesh.triangles)
        logger.info(f"Mesh saved to: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
