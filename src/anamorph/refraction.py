"""Vector form of Snell's law and small vector helpers.

``snell_refraction`` is branchless (``jnp.where`` only) so it works under
jax.jit, jax.vmap and jax.grad.  ``refract`` is the per-sample entry point
used by the raycaster: it raises ``InvalidRefraction`` instead of returning
a direction when there is no real solution.
"""

import jax
import jax.numpy as jnp

from .errors import InvalidRefraction

# Small epsilon to guard against division by zero.
_EPS = 1e-12


def normalize(v: jnp.ndarray) -> jnp.ndarray:
    v = jnp.asarray(v, dtype=jnp.float32)
    return v / (jnp.linalg.norm(v) + _EPS)


@jax.jit
def snell_refraction(
    incident_dir: jnp.ndarray,
    normal: jnp.ndarray,
    n1: float,
    n2: float,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Compute the refracted ray direction using the vector form of Snell's law.

    Parameters
    ----------
    incident_dir : (3,) array
        Direction of the incoming ray.  Need not be normalized.
    normal : (3,) array
        Surface normal facing the incoming ray (pointing back into the n1
        medium).  Need not be normalized.  A normal that faces along the ray
        is flipped.
    n1 : float
        Refractive index of the medium the ray is leaving.
    n2 : float
        Refractive index of the medium the ray is entering.

    Returns
    -------
    refracted_dir : (3,) array
        Unit direction of the refracted ray.  Under total internal
        reflection the value is finite but meaningless.
    valid : scalar bool array
        False when ``sin^2(theta_t) > 1`` (total internal reflection).
    """
    incident_dir = normalize(incident_dir)
    normal = normalize(normal)

    eta = n1 / n2

    cos_i = -jnp.dot(normal, incident_dir)
    normal = jnp.where(cos_i < 0.0, -normal, normal)
    cos_i = jnp.abs(cos_i)

    sin2_t = eta ** 2 * (1.0 - cos_i ** 2)

    # Check before the sqrt; the clamp only keeps the discarded value finite.
    valid = sin2_t <= 1.0
    cos_t = jnp.sqrt(1.0 - jnp.clip(sin2_t, 0.0, 1.0))

    refracted = eta * incident_dir + (eta * cos_i - cos_t) * normal
    refracted = refracted / (jnp.linalg.norm(refracted) + _EPS)

    return refracted, valid


def refract(incident, normal, n1: float, n2: float) -> jnp.ndarray:
    """Refract *incident* at a surface with *normal*, going from n1 into n2.

    Raises
    ------
    InvalidRefraction
        When ``(n1/n2)^2 * (1 - cos_i^2) > 1``.  This happens routinely at
        grazing geometry and is meant to be handled per sample.
    """
    refracted, valid = snell_refraction(
        jnp.asarray(incident, dtype=jnp.float32),
        jnp.asarray(normal, dtype=jnp.float32),
        n1,
        n2,
    )
    if not bool(valid):
        raise InvalidRefraction(
            f"total internal reflection going from n={n1} into n={n2}"
        )
    return refracted


def propagate(
    origin: jnp.ndarray,
    direction: jnp.ndarray,
    distance: float,
) -> jnp.ndarray:
    """Advance a point along *direction* by *distance*.

    Returns ``origin + distance * direction``; *direction* is used as given.
    """
    return origin + distance * direction
