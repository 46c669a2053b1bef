"""Core data structures for the anamorphic mesh pipeline.

Points and directions are shape (3,) ``jax.numpy`` arrays in a single world
frame.  Grids keep their samples in one row-major (rows * cols, 3) array so
that adjacency can be recovered from index arithmetic alone; ``SampleGrid``
wraps that buffer and validates every logical (row, col) access.
"""

from typing import NamedTuple, Optional

import jax.numpy as jnp
import numpy as np

from .errors import InvalidGridDimensions, SampleStatus


# ---------------------------------------------------------------------------
# Ray queries
# ---------------------------------------------------------------------------

class SurfaceHit(NamedTuple):
    """Nearest intersection reported by a geometry query.

    ``normal`` is the unit outward normal of the surface at ``point``.
    """
    point: jnp.ndarray
    normal: jnp.ndarray


class RefractionMedium(NamedTuple):
    """Refractive indices on either side of a surface crossing."""
    n1: float = 1.0   # medium the ray leaves
    n2: float = 1.4   # medium the ray enters

    def reversed(self) -> "RefractionMedium":
        return RefractionMedium(self.n2, self.n1)


# ---------------------------------------------------------------------------
# Per-sample outcome
# ---------------------------------------------------------------------------

# Stored in the vertex buffer for failed slots so that buffers keep their
# full length.  The failure itself is carried by SampleStatus / the valid mask.
SENTINEL_POINT = (-100.0, -100.0, -100.0)


class SampleResult(NamedTuple):
    index: int
    status: SampleStatus
    point: Optional[jnp.ndarray] = None

    @property
    def ok(self) -> bool:
        return self.status is SampleStatus.HIT


# ---------------------------------------------------------------------------
# Row-major sample grid
# ---------------------------------------------------------------------------

class SampleGrid:
    """A rows x cols grid of 3-D points stored row-major.

    Index ``i * cols + j`` is logical position (row i, col j).  Row 0 is the
    bottom row and column 0 the left column.

    Parameters
    ----------
    points : (rows * cols, 3) array
    rows, cols : int, both >= 1
    valid : optional (rows * cols,) bool array
        Which slots hold a successful trace.  ``None`` means all of them.
    """

    def __init__(self, points, rows: int, cols: int, valid=None):
        if rows < 1 or cols < 1:
            raise InvalidGridDimensions(
                f"grid needs at least one row and column, got {rows}x{cols}"
            )
        points = jnp.asarray(points)
        if points.shape != (rows * cols, 3):
            raise ValueError(
                f"expected {rows * cols} points of shape (3,), got {points.shape}"
            )
        if valid is not None:
            valid = np.asarray(valid, dtype=bool)
            if valid.shape != (rows * cols,):
                raise ValueError(f"valid mask has shape {valid.shape}")
        self.points = points
        self.rows = rows
        self.cols = cols
        self.valid = valid

    def __len__(self) -> int:
        return self.rows * self.cols

    def __iter__(self):
        return iter(self.points)

    def __repr__(self) -> str:
        return f"SampleGrid(rows={self.rows}, cols={self.cols})"

    def index(self, row: int, col: int) -> int:
        """Linear index of (row, col); raises IndexError when out of bounds."""
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(
                f"({row}, {col}) outside {self.rows}x{self.cols} grid"
            )
        return row * self.cols + col

    def at(self, row: int, col: int) -> jnp.ndarray:
        return self.points[self.index(row, col)]

    def position(self, index: int) -> tuple[int, int]:
        """Inverse of :meth:`index`."""
        if not 0 <= index < len(self):
            raise IndexError(f"index {index} outside grid of {len(self)}")
        return divmod(index, self.cols)

    @property
    def valid_mask(self) -> np.ndarray:
        if self.valid is None:
            return np.ones(len(self), dtype=bool)
        return self.valid


# ---------------------------------------------------------------------------
# Visualization data (consumed by a renderer, never drawn here)
# ---------------------------------------------------------------------------

SEGMENT_PRIMARY = "primary"    # eye -> lens entry
SEGMENT_INTERNAL = "internal"  # entry -> exit, inside the lens
SEGMENT_EXIT = "exit"          # exit -> target

SEGMENT_COLORS = {
    SEGMENT_PRIMARY: (1.0, 0.0, 0.0),
    SEGMENT_INTERNAL: (0.0, 0.0, 1.0),
    SEGMENT_EXIT: (1.0, 0.92, 0.016),
}


class Segment(NamedTuple):
    start: jnp.ndarray
    end: jnp.ndarray
    tag: str
    width: float = 1.0

    @property
    def color(self) -> tuple:
        """RGB drawing color for this segment's tag."""
        return SEGMENT_COLORS[self.tag]


MARKER_VIRTUAL = "virtual"
MARKER_REFRACTED = "refracted"
MARKER_EYE = "eye"


class Marker(NamedTuple):
    position: jnp.ndarray
    kind: str
    size: float = 1.0


# ---------------------------------------------------------------------------
# Mesh output
# ---------------------------------------------------------------------------

class OutputMesh(NamedTuple):
    """Buffers a renderer needs to display the anamorphic surface.

    vertices  : (N, 3) float array, one per grid slot (row-major)
    uvs       : (N, 2) float array, same ordering as ``vertices``
    triangles : (M, 3) int array of vertex indices
    skipped   : number of triangles dropped as oversized or touching a
                failed sample
    """
    vertices: np.ndarray
    uvs: np.ndarray
    triangles: np.ndarray
    skipped: int = 0

    @property
    def num_triangles(self) -> int:
        return int(self.triangles.shape[0])
