"""Two-surface refraction raycasting from the eye to the target screen.

Every virtual-plane sample is traced

    eye -> lens entry (n1 -> n2) -> lens exit (n2 -> n1) -> target

using three nearest-hit ray queries.  The exit surface of the solid lens is
not known in advance, so it is found by overshooting past the lens along
the refracted direction and casting a second ray back toward the entry
point.  This only works while ``lens_depth + second_ray_offset`` carries the
probe beyond the lens; a smaller overshoot leaves the probe inside the solid
and the backward ray misses the exit surface.

Failures are per sample: they are logged, tagged on the sample, and the
slot keeps ``SENTINEL_POINT`` so the refracted grid always has the same size
and ordering as the input grid.
"""

import logging
from typing import NamedTuple, Optional

import jax.numpy as jnp
import numpy as np

from .datatypes import (
    SENTINEL_POINT,
    SEGMENT_EXIT,
    SEGMENT_INTERNAL,
    SEGMENT_PRIMARY,
    RefractionMedium,
    SampleGrid,
    SampleResult,
    SampleStatus,
    Segment,
)
from .errors import NoIntersection, SampleError
from .refraction import propagate, refract

logger = logging.getLogger(__name__)

# Length of the debug segment drawn for a ray that misses the target.
MISS_RAY_LENGTH = 50.0


class TraceResult(NamedTuple):
    """Outcome of one pass over a grid.

    refracted : SampleGrid with the target hits (``SENTINEL_POINT`` in failed
                slots) and a ``valid`` mask
    samples   : one SampleResult per grid slot, in grid order
    segments  : debug line segments, empty when rays are not shown
    """
    refracted: SampleGrid
    samples: list
    segments: list

    @property
    def failures(self) -> list:
        return [s for s in self.samples if not s.ok]

    @property
    def num_hits(self) -> int:
        return sum(1 for s in self.samples if s.ok)


def trace_sample(
    point,
    eye,
    lens,
    target,
    medium: RefractionMedium,
    lens_depth: float,
    offset_percentage: float = 0.0,
    second_ray_offset: float = 5.0,
    segments: Optional[list] = None,
    line_width: float = 1.0,
) -> jnp.ndarray:
    """Trace the ray from *eye* through *point* to the target.

    Parameters
    ----------
    point, eye : (3,) arrays
    lens, target : geometry providers with ``raycast(origin, direction)``
    medium : RefractionMedium
        Indices outside (n1) and inside (n2) the lens.
    lens_depth : float
        Depth of the lens bounding box along z.
    offset_percentage : float
        Distance the exit point is pushed along the outgoing ray before the
        final query.
    second_ray_offset : float
        Extra overshoot beyond ``lens_depth`` for the exit-surface probe.
    segments : list, optional
        Debug segments are appended here when given.

    Returns
    -------
    hit : (3,) array
        Point on the target.

    Raises
    ------
    NoIntersection
        A ray query missed; ``status`` tells which one.
    InvalidRefraction
        Total internal reflection at either surface.
    """
    point = jnp.asarray(point, dtype=jnp.float32)
    eye = jnp.asarray(eye, dtype=jnp.float32)

    # 1. Eye -> lens entry surface
    entry = lens.raycast(eye, point - eye)
    if entry is None:
        raise NoIntersection(
            "ray from the eye misses the lens", SampleStatus.MISSED_LENS
        )
    if segments is not None:
        segments.append(Segment(eye, entry.point, SEGMENT_PRIMARY, line_width))

    # 2. Refract into the lens
    inside_dir = refract(entry.point - eye, entry.normal, medium.n1, medium.n2)

    # 3. Overshoot past the lens and look back for the exit surface
    probe = propagate(entry.point, inside_dir, lens_depth + second_ray_offset)
    exit_ = lens.raycast(probe, -inside_dir)
    if exit_ is None:
        raise NoIntersection(
            "backward ray misses the lens exit surface "
            "(second_ray_offset too small for this lens?)",
            SampleStatus.MISSED_EXIT,
        )
    if segments is not None:
        segments.append(Segment(entry.point, exit_.point, SEGMENT_INTERNAL, line_width))

    # 4. Refract out of the lens; the exit normal points out of the solid,
    #    i.e. along the ray, so it is negated.
    reverse = medium.reversed()
    out_dir = refract(exit_.point - entry.point, -exit_.normal, reverse.n1, reverse.n2)
    start = propagate(exit_.point, out_dir, offset_percentage)

    # 5. Exit -> target
    final = target.raycast(start, out_dir)
    if final is None:
        if segments is not None:
            stub_end = propagate(exit_.point, out_dir, MISS_RAY_LENGTH)
            segments.append(Segment(exit_.point, stub_end, SEGMENT_EXIT, line_width))
        raise NoIntersection(
            "refracted ray misses the target", SampleStatus.MISSED_TARGET
        )
    if segments is not None:
        segments.append(Segment(exit_.point, final.point, SEGMENT_EXIT, line_width))

    return final.point


def trace_grid(
    grid: SampleGrid,
    eye,
    lens,
    target,
    medium: RefractionMedium = RefractionMedium(),
    offset_percentage: float = 0.0,
    second_ray_offset: float = 5.0,
    lens_depth: Optional[float] = None,
    show_rays: bool = True,
    line_width: float = 1.0,
) -> TraceResult:
    """Trace every point of *grid* through the lens onto the target.

    A failed sample never aborts the pass: the returned refracted grid has
    exactly ``len(grid)`` slots in the same order.

    ``lens_depth`` defaults to ``lens.bounding_depth``.
    """
    if lens_depth is None:
        lens_depth = lens.bounding_depth

    sentinel = jnp.array(SENTINEL_POINT, dtype=jnp.float32)
    segments = [] if show_rays else None
    points = []
    samples = []

    for index, point in enumerate(grid):
        try:
            hit = trace_sample(
                point,
                eye,
                lens,
                target,
                medium,
                lens_depth,
                offset_percentage=offset_percentage,
                second_ray_offset=second_ray_offset,
                segments=segments,
                line_width=line_width,
            )
        except SampleError as e:
            row, col = grid.position(index)
            logger.warning(f"Sample {index} (row {row}, col {col}): {e}")
            samples.append(SampleResult(index, e.status))
            points.append(sentinel)
            continue
        samples.append(SampleResult(index, SampleStatus.HIT, hit))
        points.append(hit)

    valid = np.array([s.ok for s in samples], dtype=bool)
    refracted = SampleGrid(jnp.stack(points), grid.rows, grid.cols, valid=valid)

    n_failed = len(samples) - int(valid.sum())
    if n_failed:
        logger.info(f"Traced {len(samples)} samples, {n_failed} failed.")
    else:
        logger.debug(f"Traced {len(samples)} samples.")

    return TraceResult(refracted, samples, segments if segments is not None else [])
