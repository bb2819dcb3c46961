"""Physics/math helpers shared by the vertex fitters and the candidate creator."""

from __future__ import annotations
__author__ = "hfcand developers"

import math
from typing import Sequence

import numpy as np

from .errors import NumericalFailure
from .models import LorentzVector
from .particle import ParticleState

# Conditioning limit of the seed normal matrix before tracks count as parallel.
MAX_SEED_CONDITION = 1e12


def seed_vertex(daughters: Sequence[ParticleState]) -> np.ndarray:
    """Least-squares point closest to the straight-line tangents of all daughters.

    Each daughter contributes the projector orthogonal to its direction; the
    normal matrix is singular when all directions are parallel.
    """
    ata = np.zeros((3, 3))
    atb = np.zeros(3)
    for d in daughters:
        p = d.momentum
        norm = float(np.linalg.norm(p))
        if norm <= 0.0:
            raise NumericalFailure("Daughter with zero momentum has no direction.")
        u = p / norm
        proj = np.eye(3) - np.outer(u, u)
        ata += proj
        atb += proj @ d.position
    try:
        if not np.linalg.cond(ata) <= MAX_SEED_CONDITION:
            raise NumericalFailure("Parallel daughter tracks: vertex seed is undefined.")
        return np.linalg.solve(ata, atb)
    except np.linalg.LinAlgError as exc:
        raise NumericalFailure(f"Vertex seed could not be solved: {exc}") from exc


def point_direction(point1: Sequence[float], point2: Sequence[float]) -> tuple[float, float]:
    """Return azimuth `phi` and elevation `theta` of the direction point1 -> point2."""
    dx = point2[0] - point1[0]
    dy = point2[1] - point1[1]
    dz = point2[2] - point1[2]
    return math.atan2(dy, dx), math.atan2(dz, math.hypot(dx, dy))


def directional_variance(cov: np.ndarray, phi: float, theta: float) -> float:
    """Project a 3x3 covariance matrix onto the unit direction `(phi, theta)`."""
    u = np.array([math.cos(phi) * math.cos(theta), math.sin(phi) * math.cos(theta), math.sin(theta)])
    return max(float(u @ cov @ u), 0.0)


def decay_length_errors(pv: ParticleState, sv_xyz: Sequence[float], sv_cov: np.ndarray) -> tuple[float, float]:
    """Return `(error_decay_length, error_decay_length_xy)` for a PV -> SV flight."""
    pv_cov = pv.cov[:3, :3]
    phi, theta = point_direction(pv.position, sv_xyz)
    error = math.sqrt(directional_variance(pv_cov, phi, theta) + directional_variance(sv_cov, phi, theta))
    error_xy = math.sqrt(directional_variance(pv_cov, phi, 0.0) + directional_variance(sv_cov, phi, 0.0))
    return error, error_xy


def impact_parameter_xy(track: ParticleState, pv: ParticleState, bz: float) -> tuple[float, float]:
    """Signed transverse impact parameter of a track to a PV and its uncertainty.

    The track is transported to its transverse point of closest approach; the
    sign is that of `(r - r_pv) x p` along z.
    """
    ds = track.ds_to_point(pv.position, bz, transverse_only=True)
    at_pca = track.transported(ds, bz)
    px, py = float(at_pca.momentum[0]), float(at_pca.momentum[1])
    pt = math.hypot(px, py)
    if pt <= 0.0:
        raise NumericalFailure("Impact parameter undefined for a track without transverse momentum.")
    dx = float(at_pca.position[0] - pv.position[0])
    dy = float(at_pca.position[1] - pv.position[1])
    normal = np.array([py / pt, -px / pt])
    d0 = float(normal @ np.array([dx, dy]))
    total = at_pca.cov[:2, :2] + pv.cov[:2, :2]
    return d0, math.sqrt(max(float(normal @ total @ normal), 0.0))


def invariant_mass(params: np.ndarray, cov: np.ndarray) -> tuple[float, float]:
    """Return invariant mass and its uncertainty from a seven-parameter state."""
    p4 = LorentzVector(float(params[3]), float(params[4]), float(params[5]), float(params[6]))
    jac = np.array([-2.0 * p4.px, -2.0 * p4.py, -2.0 * p4.pz, 2.0 * p4.e])
    var_m2 = max(float(jac @ cov[3:7, 3:7] @ jac), 0.0)
    mass = p4.mass
    if mass > 0.0:
        return mass, math.sqrt(var_m2) / (2.0 * mass)
    return mass, var_m2**0.25
