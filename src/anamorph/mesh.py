"""Triangulation of the refracted grid into the output mesh.

Vertices are the refracted grid points in grid order.  Each grid cell is
split into two triangles with a fixed fan; a triangle is dropped when its
checked edge is at least ``distance_threshold`` long, or when any of its
corners belongs to a failed sample.  UVs come from the grid position alone,
so every vertex has one whether or not it ends up in a triangle.
"""

import logging

import numpy as np

from .datatypes import OutputMesh, SampleGrid

logger = logging.getLogger(__name__)


def grid_uvs(rows: int, cols: int) -> np.ndarray:
    """``(j / (cols - 1), i / (rows - 1))`` for every slot, row-major.

    A dimension with a single sample gets coordinate 0 along that axis.
    """
    u = np.arange(cols) / (cols - 1) if cols > 1 else np.zeros(1)
    v = np.arange(rows) / (rows - 1) if rows > 1 else np.zeros(1)
    gu, gv = np.meshgrid(u, v)
    return np.stack([gu.ravel(), gv.ravel()], axis=-1)


def cell_triangles(rows: int, cols: int) -> np.ndarray:
    """Fan split of every cell, two triangles per cell, cell by cell.

    For the cell with lower-left corner (i, j):

        A = (i, j), (i+1, j), (i, j+1)
        B = (i+1, j), (i+1, j+1), (i, j+1)

    Returns a ``((rows-1) * (cols-1) * 2, 3)`` int array.
    """
    if rows < 2 or cols < 2:
        return np.empty((0, 3), dtype=np.int32)

    i, j = np.meshgrid(np.arange(rows - 1), np.arange(cols - 1), indexing="ij")
    i = i.ravel()
    j = j.ravel()

    lower_left = i * cols + j
    upper_left = (i + 1) * cols + j
    lower_right = i * cols + j + 1
    upper_right = (i + 1) * cols + j + 1

    tri_a = np.stack([lower_left, upper_left, lower_right], axis=-1)
    tri_b = np.stack([upper_left, upper_right, lower_right], axis=-1)
    return np.stack([tri_a, tri_b], axis=1).reshape(-1, 3).astype(np.int32)


def build_mesh(refracted: SampleGrid, distance_threshold: float) -> OutputMesh:
    """Build the anamorphic mesh from a refracted grid.

    Parameters
    ----------
    refracted : SampleGrid
        Target-plane points in the virtual grid's order, with an optional
        ``valid`` mask marking successful samples.
    distance_threshold : float
        Triangles whose checked edge is at least this long are dropped.
        Triangle A is checked along its bottom edge (i, j)-(i, j+1) and
        triangle B along its top edge (i+1, j)-(i+1, j+1).

    Returns
    -------
    mesh : OutputMesh
        A new mesh; nothing from a previous run is reused.
    """
    rows, cols = refracted.rows, refracted.cols
    vertices = np.asarray(refracted.points, dtype=np.float64)
    uvs = grid_uvs(rows, cols)

    triangles = cell_triangles(rows, cols)
    if triangles.shape[0] == 0:
        return OutputMesh(vertices, uvs, triangles, 0)

    # The checked edge: A uses corners 0 and 2, B uses corners 1 and 0.
    edge_a = np.linalg.norm(vertices[triangles[0::2, 0]] - vertices[triangles[0::2, 2]], axis=-1)
    edge_b = np.linalg.norm(vertices[triangles[1::2, 1]] - vertices[triangles[1::2, 0]], axis=-1)
    edges = np.stack([edge_a, edge_b], axis=1).ravel()

    usable = refracted.valid_mask & np.all(np.isfinite(vertices), axis=1)
    touches_failure = ~usable[triangles].all(axis=1)
    oversized = ~touches_failure & ~(edges < distance_threshold)

    keep = ~touches_failure & ~oversized
    skipped = int(triangles.shape[0] - keep.sum())
    if skipped:
        logger.debug(
            f"Skipped {skipped} mesh triangles: {int(oversized.sum())} too big, "
            f"{int(touches_failure.sum())} touching failed samples."
        )

    return OutputMesh(vertices, uvs, triangles[keep], skipped)
