"""End-to-end pass: sample, trace, triangulate.

``run_once`` is the whole contract: it recomputes everything from a config
and returns fresh data.  How often it runs is the caller's decision;
``AnamorphRunner`` packages the two usual policies (recompute on every
frame in live mode, compute once otherwise).
"""

import logging
from typing import NamedTuple, Optional

import jax.numpy as jnp

from .datatypes import (
    MARKER_EYE,
    MARKER_REFRACTED,
    MARKER_VIRTUAL,
    Marker,
    OutputMesh,
    SampleGrid,
)
from .grid import sample_grid
from .mesh import build_mesh
from .scene import (
    AnamorphConfig,
    Scene,
    build_scene,
    effective_resolution,
    validate_config,
)
from .trace import TraceResult, trace_grid

logger = logging.getLogger(__name__)


class PipelineResult(NamedTuple):
    virtual: SampleGrid
    trace: TraceResult
    mesh: OutputMesh
    markers: list
    eye: jnp.ndarray

    @property
    def refracted(self) -> SampleGrid:
        return self.trace.refracted

    @property
    def segments(self) -> list:
        return self.trace.segments


def grid_markers(virtual: SampleGrid, refracted: SampleGrid, eye, size: float = 1.0) -> list:
    """Markers for every virtual point, every successful refracted point and the eye."""
    markers = [Marker(p, MARKER_VIRTUAL, size) for p in virtual]
    mask = refracted.valid_mask
    markers.extend(
        Marker(p, MARKER_REFRACTED, size)
        for p, ok in zip(refracted, mask)
        if ok
    )
    markers.append(Marker(jnp.asarray(eye), MARKER_EYE, size))
    return markers


def run_once(
    config: AnamorphConfig,
    scene: Optional[Scene] = None,
    live: bool = False,
) -> PipelineResult:
    """Run a full pass for *config*.

    Parameters
    ----------
    config : AnamorphConfig
    scene : Scene, optional
        Pre-built eye/lens/target; built from *config* when omitted.
    live : bool
        Cap the grid at ``LIVE_RESOLUTION_LIMIT`` per axis.

    Raises
    ------
    ConfigError
        Before any tracing when *config* is invalid.
    """
    validate_config(config)
    if scene is None:
        scene = build_scene(config)

    cols, rows = effective_resolution(config, live)
    virtual = sample_grid(
        config.h_size, config.v_size, cols, rows, config.virtual_plane_depth
    )

    traced = trace_grid(
        virtual,
        scene.eye,
        scene.lens,
        scene.target,
        medium=config.medium,
        offset_percentage=config.offset_percentage,
        second_ray_offset=config.second_ray_offset,
        show_rays=config.show_rays,
        line_width=config.line_width,
    )
    mesh = build_mesh(traced.refracted, config.mesh_distance_threshold)

    markers = []
    if config.show_markers:
        markers = grid_markers(virtual, traced.refracted, scene.eye, config.marker_size)

    logger.debug(
        f"Pass {cols}x{rows}: {traced.num_hits} hits, "
        f"{mesh.num_triangles} triangles, {mesh.skipped} skipped."
    )
    return PipelineResult(virtual, traced, mesh, markers, scene.eye)


class AnamorphRunner:
    """Holds the latest result and decides when to recompute it.

    In live mode every :meth:`update` call runs a capped-resolution pass.
    Otherwise the first :meth:`update` runs a full-resolution pass and later
    calls return the cached result until :meth:`invalidate` is called.
    """

    def __init__(self, config: AnamorphConfig, scene: Optional[Scene] = None):
        self.config = config
        self.scene = scene
        self.result: Optional[PipelineResult] = None
        self._built = False

    def invalidate(self) -> None:
        self._built = False

    def reconfigure(self, config: AnamorphConfig) -> None:
        self.config = config
        self.invalidate()

    def update_once(self) -> PipelineResult:
        """Full-resolution pass regardless of mode."""
        # Replace the previous result only once the new pass has finished.
        self.result = run_once(self.config, self.scene, live=False)
        self._built = True
        return self.result

    def update(self) -> PipelineResult:
        if self.config.live_mode:
            self.result = run_once(self.config, self.scene, live=True)
            self._built = False
            return self.result
        if not self._built:
            return self.update_once()
        return self.result
