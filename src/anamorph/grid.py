"""Sampling of the virtual image plane.

Produces the row-major point grid that the raycaster traces and whose
topology the mesh assembler reuses.
"""

import jax.numpy as jnp

from .datatypes import SampleGrid
from .errors import InvalidGridDimensions


def _axis_coords(size, count):
    """Coordinates ``-size/2 + k * step`` with ``step = size / (count - 1)``.

    Each coordinate is one multiply-add from the lower edge, so grids whose
    step is representable land exactly on it.  A single sample sits on the
    center line instead of the lower edge.
    """
    if count == 1:
        return jnp.zeros(1)
    step = size / (count - 1)
    return -size / 2.0 + jnp.arange(count) * step


def sample_grid(h_size, v_size, cols, rows, plane_z):
    """Sample a ``h_size x v_size`` rectangle on the plane ``z = plane_z``.

    Parameters
    ----------
    h_size, v_size : float
        Physical width and height of the sampled rectangle.  The rectangle
        is centered on the z-axis.
    cols, rows : int
        Number of samples along x and y.  The step sizes are
        ``h_size / (cols - 1)`` and ``v_size / (rows - 1)``; a single column
        (row) is placed on ``x = 0`` (``y = 0``).  ``rows == cols == 0``
        yields the single point ``(0, 0, plane_z)``.
    plane_z : float
        Depth of the virtual image plane.

    Returns
    -------
    grid : SampleGrid
        Points ordered from the bottom-left corner, right along a row, then
        up: index ``i * cols + j`` is row ``i``, column ``j``.

    Raises
    ------
    InvalidGridDimensions
        For negative counts, or when exactly one of the counts is zero.
    """
    if rows < 0 or cols < 0:
        raise InvalidGridDimensions(f"negative grid size {cols}x{rows}")
    if rows == 0 and cols == 0:
        return SampleGrid(jnp.array([[0.0, 0.0, float(plane_z)]]), rows=1, cols=1)
    if rows == 0 or cols == 0:
        raise InvalidGridDimensions(
            f"cannot sample a {cols}x{rows} grid: both counts must be >= 1"
        )

    xs = _axis_coords(h_size, cols)
    ys = _axis_coords(v_size, rows)

    # meshgrid(xs, ys) has shape (rows, cols), so ravel() is row-major.
    gx, gy = jnp.meshgrid(xs, ys)
    gz = jnp.full_like(gx, plane_z)
    points = jnp.stack([gx.ravel(), gy.ravel(), gz.ravel()], axis=-1)

    return SampleGrid(points, rows=rows, cols=cols)
