"""Scene configuration and placement.

``AnamorphConfig`` holds every user-facing parameter (lengths in mm).
``build_scene`` turns it into the eye point and the two geometry providers
the raycaster queries; ``camera_frame`` gives the orthographic framing a
renderer uses to look at the target screen.
"""

from typing import NamedTuple

import jax.numpy as jnp

from .datatypes import RefractionMedium
from .errors import ConfigError, InvalidGridDimensions
from .intersection import PlaneTarget, SphericalLens

# Live mode recomputes every frame, so the grid is capped per axis.
LIVE_RESOLUTION_LIMIT = 40

# The target plane is made this much larger than the screen in each
# direction; hits outside the screen area are simply not displayed.
TARGET_BUFFER = 20000.0


class AnamorphConfig(NamedTuple):
    # refractive indices
    n1: float = 1.0
    n2: float = 1.4

    # positions along the optical axis
    eye_depth: float = -350.0
    virtual_plane_depth: float = -10.0
    target_depth: float = 500.0

    # virtual image size
    h_size: float = 60.0
    v_size: float = 60.0

    # target screen size
    screen_width: float = 300.0
    screen_height: float = 200.0

    # requested mesh resolution
    cols: int = 20
    rows: int = 20

    mesh_distance_threshold: float = 100.0
    offset_percentage: float = 0.0
    second_ray_offset: float = 5.0

    # lens shape, centered at the origin
    lens_front_curvature: float = 0.01
    lens_back_curvature: float = -0.01
    lens_thickness: float = 30.0
    lens_aperture_radius: float = 50.0

    # debug output
    show_rays: bool = True
    show_markers: bool = True
    marker_size: float = 1.0
    line_width: float = 1.0

    live_mode: bool = True

    @property
    def medium(self) -> RefractionMedium:
        return RefractionMedium(self.n1, self.n2)


class Scene(NamedTuple):
    eye: jnp.ndarray
    lens: object    # anything with raycast() and bounding_depth
    target: object  # anything with raycast()


class CameraFrame(NamedTuple):
    position: tuple
    aspect: float
    ortho_size: float


def validate_config(config: AnamorphConfig) -> AnamorphConfig:
    """Check a configuration before any tracing; returns it unchanged.

    Raises
    ------
    InvalidGridDimensions
        When cols or rows is below 1.
    ConfigError
        For any other out-of-range value.
    """
    if config.cols < 1 or config.rows < 1:
        raise InvalidGridDimensions(
            f"grid resolution must be at least 1x1, got {config.cols}x{config.rows}"
        )
    if config.n1 <= 0 or config.n2 <= 0:
        raise ConfigError("refractive indices must be positive")
    if config.h_size <= 0 or config.v_size <= 0:
        raise ConfigError("virtual image size must be positive")
    if config.screen_width <= 0 or config.screen_height <= 0:
        raise ConfigError("target screen size must be positive")
    if config.mesh_distance_threshold <= 0:
        raise ConfigError("mesh distance threshold must be positive")
    if config.offset_percentage < 0 or config.second_ray_offset < 0:
        raise ConfigError("ray offsets must not be negative")
    if not config.eye_depth < config.virtual_plane_depth:
        raise ConfigError("the virtual image plane must lie in front of the eye")
    return config


def effective_resolution(config: AnamorphConfig, live: bool) -> tuple[int, int]:
    """Grid ``(cols, rows)`` to trace; capped in live mode.

    The requested values in *config* are left as they are.
    """
    if not live:
        return config.cols, config.rows
    return (
        min(config.cols, LIVE_RESOLUTION_LIMIT),
        min(config.rows, LIVE_RESOLUTION_LIMIT),
    )


def default_lens(config: AnamorphConfig) -> SphericalLens:
    return SphericalLens(
        front_curvature=config.lens_front_curvature,
        back_curvature=config.lens_back_curvature,
        thickness=config.lens_thickness,
        aperture_radius=config.lens_aperture_radius,
    ).validate()


def build_scene(config: AnamorphConfig, lens=None, target=None) -> Scene:
    """Place the eye, lens and target described by *config*.

    *lens* and *target* override the analytic defaults with any other
    geometry providers.
    """
    eye = jnp.array([0.0, 0.0, config.eye_depth])
    if lens is None:
        lens = default_lens(config)
    if target is None:
        target = PlaneTarget(
            z=config.target_depth,
            width=config.screen_width + TARGET_BUFFER,
            height=config.screen_height + TARGET_BUFFER,
        )
    return Scene(eye, lens, target)


def camera_frame(config: AnamorphConfig) -> CameraFrame:
    """Orthographic camera looking at the target screen from just in front of it."""
    return CameraFrame(
        position=(0.0, 0.0, config.target_depth - 10.0),
        aspect=round(config.screen_width) / round(config.screen_height),
        ortho_size=config.screen_height / 2.0,
    )
