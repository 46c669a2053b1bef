"""Ray-surface intersection and analytic geometry providers.

The raycaster only needs objects with a ``raycast(origin, direction)``
method returning the nearest :class:`SurfaceHit` or ``None``.  This module
supplies two such providers built from closed-form intersections:

* :class:`SphericalLens` – a solid lens bounded by two capped spherical (or
  flat) surfaces.
* :class:`PlaneTarget` – a finite flat screen facing the eye.

The low-level functions are JAX-traceable: no Python-level control flow, only
``jnp.where`` so that the whole query compiles under ``jax.jit``.

Coordinate convention
---------------------
* The optical axis is the z-axis; the eye sits at negative z and light
  travels toward +z.
* A surface vertex sits at ``z = z_offset`` on the axis.
* For a spherical surface with curvature *c = 1/R*, the center of
  curvature is at ``(0, 0, z_offset + R)``: ``c > 0`` bulges toward the
  eye, ``c < 0`` bulges away from it.
* Normals returned by the providers point out of the solid.  Only hits on
  surfaces facing the ray count, so a ray leaving a solid does not hit it.
"""

import math
from typing import NamedTuple, Optional

import jax
import jax.numpy as jnp

from .datatypes import SurfaceHit
from .errors import ConfigError
from .refraction import normalize

# Small epsilon to guard against division by zero in JAX traces.
_EPS = 1e-12

# Minimum ray parameter accepted as a hit (scene units, mm).
_T_MIN = 1e-4


def intersect_plane(
    ray_origin: jnp.ndarray,
    ray_dir: jnp.ndarray,
    z_offset: float,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Intersect a ray with the plane ``z = z_offset``.

    Returns ``(t, hit_point)``.  A ray parallel to the plane gets a huge
    ``t`` instead of a division by zero.
    """
    dz = jnp.where(jnp.abs(ray_dir[2]) < _EPS, _EPS, ray_dir[2])
    t = (z_offset - ray_origin[2]) / dz
    return t, ray_origin + t * ray_dir


def intersect_sphere(
    ray_origin: jnp.ndarray,
    ray_dir: jnp.ndarray,
    curvature: float,
    z_offset: float,
) -> tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """Both ray parameters where a ray meets a spherical (or planar) surface.

    Parameters
    ----------
    ray_origin : (3,) array – ray starting point [x, y, z].
    ray_dir    : (3,) array – unit direction vector of the ray.
    curvature  : scalar – 1/R of the surface (0 for a flat surface).
    z_offset   : scalar – z-position of the surface vertex.

    Returns
    -------
    t_near, t_far : scalars – the two roots, ``t_near <= t_far``.  For a flat
                    surface both equal the plane parameter.
    real          : scalar bool – False when the ray misses the sphere (or
                    runs parallel to the plane).

    Notes
    -----
    Both the planar and the spherical path are evaluated and blended with
    ``jnp.where``.
    """
    # --- planar intersection (always computed) ---
    t_plane, _ = intersect_plane(ray_origin, ray_dir, z_offset)

    # --- spherical intersection (always computed) ---
    # Sphere equation: |P - C|^2 = R^2, with P = O + tD and A = O - C:
    #   t^2 |D|^2 + 2t (A·D) + |A|^2 - R^2 = 0
    safe_c = jnp.where(jnp.abs(curvature) < _EPS, _EPS, curvature)
    R = 1.0 / safe_c
    center = jnp.array([0.0, 0.0, z_offset + R])

    A = ray_origin - center
    a_coeff = jnp.dot(ray_dir, ray_dir)
    b_coeff = 2.0 * jnp.dot(A, ray_dir)
    c_coeff = jnp.dot(A, A) - R * R

    discriminant = b_coeff ** 2 - 4.0 * a_coeff * c_coeff
    sqrt_disc = jnp.sqrt(jnp.maximum(discriminant, 0.0))

    t1 = (-b_coeff - sqrt_disc) / (2.0 * a_coeff + _EPS)
    t2 = (-b_coeff + sqrt_disc) / (2.0 * a_coeff + _EPS)

    is_flat = jnp.abs(curvature) < _EPS
    t_near = jnp.where(is_flat, t_plane, t1)
    t_far = jnp.where(is_flat, t_plane, t2)
    real = jnp.where(
        is_flat,
        jnp.abs(ray_dir[2]) >= _EPS,
        discriminant >= 0.0,
    )
    return t_near, t_far, real


def surface_normal(
    hit_point: jnp.ndarray,
    curvature: float,
    z_offset: float,
    facing: float = -1.0,
) -> jnp.ndarray:
    """Unit normal at *hit_point* on a spherical surface.

    The normal is oriented so that the sign of its z component equals
    *facing*: ``-1`` for a surface that looks toward the eye (a lens front
    face, the target), ``+1`` for one that looks away (a lens back face).
    For a planar surface the normal is simply ``[0, 0, facing]``.
    """
    plane_normal = jnp.array([0.0, 0.0, 1.0]) * facing

    safe_c = jnp.where(jnp.abs(curvature) < _EPS, _EPS, curvature)
    R = 1.0 / safe_c
    center = jnp.array([0.0, 0.0, z_offset + R])

    diff = hit_point - center
    sphere_normal = diff / (jnp.linalg.norm(diff) + _EPS)
    sphere_normal = jnp.where(
        sphere_normal[2] * facing < 0, -sphere_normal, sphere_normal
    )

    is_flat = jnp.abs(curvature) < _EPS
    return jnp.where(is_flat, plane_normal, sphere_normal)


def surface_sag(curvature: float, r: float) -> float:
    """Axial displacement of a spherical surface from its vertex at radius *r*."""
    cr2 = (curvature * r) ** 2
    if cr2 >= 1.0:
        raise ConfigError(
            f"radius {r} exceeds the sphere of curvature {curvature}"
        )
    return curvature * r * r / (1.0 + math.sqrt(1.0 - cr2))


def _cap_hit(origin, direction, curvature, z_vertex, aperture, facing):
    """Nearest front-facing hit on the part of a surface inside *aperture*.

    Returns ``(t, point, normal)`` with ``t = inf`` when nothing qualifies.
    """
    t_near, t_far, real = intersect_sphere(origin, direction, curvature, z_vertex)
    ts = jnp.stack([t_near, t_far])
    points = origin[None, :] + ts[:, None] * direction[None, :]
    normals = jax.vmap(surface_normal, in_axes=(0, None, None, None))(
        points, curvature, z_vertex, facing
    )

    # Keep only the hemisphere that contains the vertex.
    safe_c = jnp.where(jnp.abs(curvature) < _EPS, _EPS, curvature)
    center_z = z_vertex + 1.0 / safe_c
    vertex_side = (jnp.abs(curvature) < _EPS) | (
        (points[:, 2] - center_z) * (z_vertex - center_z) > 0.0
    )

    radial = jnp.sqrt(points[:, 0] ** 2 + points[:, 1] ** 2)
    facing_ray = normals @ direction < 0.0

    ok = real & (ts > _T_MIN) & (radial <= aperture) & vertex_side & facing_ray
    ts = jnp.where(ok, ts, jnp.inf)
    k = jnp.argmin(ts)
    return ts[k], points[k], normals[k]


@jax.jit
def _raycast_solid_lens(origin, direction, front_curvature, back_curvature,
                        z_front, z_back, aperture):
    d = normalize(direction)
    t_f, p_f, n_f = _cap_hit(origin, d, front_curvature, z_front, aperture, -1.0)
    t_b, p_b, n_b = _cap_hit(origin, d, back_curvature, z_back, aperture, 1.0)
    use_front = t_f <= t_b
    point = jnp.where(use_front, p_f, p_b)
    normal = jnp.where(use_front, n_f, n_b)
    return point, normal, jnp.isfinite(jnp.minimum(t_f, t_b))


@jax.jit
def _raycast_rectangle(origin, direction, z, half_width, half_height):
    d = normalize(direction)
    t, point = intersect_plane(origin, d, z)
    ok = (
        (d[2] >= _EPS)  # the screen faces -z, toward the eye
        & (t > _T_MIN)
        & (jnp.abs(point[0]) <= half_width)
        & (jnp.abs(point[1]) <= half_height)
    )
    return point, jnp.array([0.0, 0.0, -1.0]), ok


# ---------------------------------------------------------------------------
# Geometry providers
# ---------------------------------------------------------------------------

class SphericalLens(NamedTuple):
    """Solid lens centered on the z-axis.

    The front surface (toward the eye) has its vertex at
    ``z_center - thickness / 2``, the back surface at
    ``z_center + thickness / 2``.  Both are clipped to a circular clear
    aperture; the rim between them is not modelled, so the edge thickness
    must not be negative.
    """
    front_curvature: float = 0.01
    back_curvature: float = -0.01
    thickness: float = 30.0
    aperture_radius: float = 50.0
    z_center: float = 0.0

    @property
    def z_front(self) -> float:
        return self.z_center - self.thickness / 2.0

    @property
    def z_back(self) -> float:
        return self.z_center + self.thickness / 2.0

    @property
    def edge_thickness(self) -> float:
        a = self.aperture_radius
        return (
            self.thickness
            - surface_sag(self.front_curvature, a)
            + surface_sag(self.back_curvature, a)
        )

    @property
    def bounding_depth(self) -> float:
        """Extent of the lens along z (the axis-aligned bounding box depth)."""
        a = self.aperture_radius
        front_rim = self.z_front + surface_sag(self.front_curvature, a)
        back_rim = self.z_back + surface_sag(self.back_curvature, a)
        return max(self.z_back, back_rim) - min(self.z_front, front_rim)

    def validate(self) -> "SphericalLens":
        if self.thickness <= 0 or self.aperture_radius <= 0:
            raise ConfigError(
                "lens thickness and aperture radius must be positive"
            )
        if self.edge_thickness < 0:
            raise ConfigError(
                f"lens surfaces cross inside the aperture "
                f"(edge thickness {self.edge_thickness:.3f})"
            )
        return self

    def raycast(self, origin, direction) -> Optional[SurfaceHit]:
        point, normal, hit = _raycast_solid_lens(
            jnp.asarray(origin, dtype=jnp.float32),
            jnp.asarray(direction, dtype=jnp.float32),
            self.front_curvature,
            self.back_curvature,
            self.z_front,
            self.z_back,
            self.aperture_radius,
        )
        if not bool(hit):
            return None
        return SurfaceHit(point, normal)


class PlaneTarget(NamedTuple):
    """Finite rectangular screen at ``z = z``, centered on the axis, facing -z."""
    z: float = 500.0
    width: float = 300.0
    height: float = 200.0

    def raycast(self, origin, direction) -> Optional[SurfaceHit]:
        point, normal, hit = _raycast_rectangle(
            jnp.asarray(origin, dtype=jnp.float32),
            jnp.asarray(direction, dtype=jnp.float32),
            self.z,
            self.width / 2.0,
            self.height / 2.0,
        )
        if not bool(hit):
            return None
        return SurfaceHit(point, normal)


# ---------------------------------------------------------------------------
# Example lenses
# ---------------------------------------------------------------------------

def flat_lens(
    thickness: float = 10.0,
    aperture_radius: float = 100.0,
    z_center: float = 0.0,
) -> SphericalLens:
    """A plane-parallel slab: both surfaces flat."""
    return SphericalLens(
        front_curvature=0.0,
        back_curvature=0.0,
        thickness=thickness,
        aperture_radius=aperture_radius,
        z_center=z_center,
    ).validate()


def biconvex_lens(
    radius: float = 100.0,
    thickness: float = 30.0,
    aperture_radius: float = 50.0,
    z_center: float = 0.0,
) -> SphericalLens:
    """A symmetric biconvex lens with surface radius *radius*."""
    return SphericalLens(
        front_curvature=1.0 / radius,
        back_curvature=-1.0 / radius,
        thickness=thickness,
        aperture_radius=aperture_radius,
        z_center=z_center,
    ).validate()
