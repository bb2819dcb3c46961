"""Kalman-style particle states and their transport in a homogeneous field.

A `ParticleState` carries the seven parameters `(x, y, z, px, py, pz, E)` with
a 7x7 covariance. Daughter tracks enter the vertex fit as particle states built
with a mass hypothesis; the primary vertex enters as a zero-daughter particle
(momentum and energy zero, position covariance only).

Transport follows a helix around the z axis. With the path parameter `ds`
defined by `dr/ds = p`, the map for a fixed `ds` is linear in the state, so the
covariance is transported with the same matrix.
"""

from __future__ import annotations
__author__ = "hfcand developers"

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .errors import NumericalFailure
from .models import ParticleHypothesis, PrimaryVertex, TrackState

# Curvature constant for B in kG, lengths in cm and momenta in GeV/c.
C_LIGHT_KG_CM = 0.000299792458

_SMALL_PHASE = 1e-4
_NEWTON_STEPS = 3


def unpack_symmetric(packed: Sequence[float], n: int) -> np.ndarray:
    """Expand a packed lower-triangle covariance into a full `n x n` matrix."""
    expected = n * (n + 1) // 2
    if len(packed) != expected:
        raise ValueError(f"Packed covariance needs {expected} entries, got {len(packed)}.")
    out = np.zeros((n, n))
    rows, cols = np.tril_indices(n)
    out[rows, cols] = packed
    out[cols, rows] = packed
    return out


def check_finite(values: Sequence[float], what: str) -> None:
    if not np.all(np.isfinite(np.asarray(values, dtype=float))):
        raise NumericalFailure(f"{what} contains non-finite entries.")


def check_positive_definite(matrix: np.ndarray, what: str) -> None:
    """Raise `NumericalFailure` unless `matrix` is finite and positive definite."""
    if not np.all(np.isfinite(matrix)):
        raise NumericalFailure(f"{what} contains non-finite entries.")
    try:
        np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError as exc:
        raise NumericalFailure(f"{what} is not positive definite.") from exc


def field_constant(bz: float, charge: int) -> float:
    """Angular rate of the helix per unit path parameter."""
    return C_LIGHT_KG_CM * bz * charge


def transport_matrix(ds: float, k: float) -> np.ndarray:
    """Return the 7x7 transport matrix for path parameter `ds` and field constant `k`."""
    phase = k * ds
    if abs(phase) < _SMALL_PHASE:
        # Series expansion keeps the straight-line limit exact.
        s_b = ds * (1.0 - phase * phase / 6.0)
        c_b = ds * (phase / 2.0 - phase**3 / 24.0)
    else:
        s_b = math.sin(phase) / k
        c_b = (1.0 - math.cos(phase)) / k
    cos_p = math.cos(phase)
    sin_p = math.sin(phase)

    f = np.eye(7)
    f[0, 3], f[0, 4] = s_b, c_b
    f[1, 3], f[1, 4] = -c_b, s_b
    f[2, 5] = ds
    f[3, 3], f[3, 4] = cos_p, sin_p
    f[4, 3], f[4, 4] = -sin_p, cos_p
    return f


@dataclass(frozen=True, eq=False)
class ParticleState:
    """Seven-parameter particle estimate with covariance."""

    params: np.ndarray
    cov: np.ndarray = field(repr=False)
    charge: int = 0
    mass: float = 0.0

    @classmethod
    def from_track(cls, track: TrackState, hypothesis: ParticleHypothesis) -> "ParticleState":
        """Build a daughter state from a measured track and a mass hypothesis.

        The energy is not measured: its covariance follows from `dE/dp = p / E`.
        """
        check_finite((*track.position, *track.momentum), f"Parameters of track {track.track_id}")
        cov6 = unpack_symmetric(track.cov21, 6)
        check_positive_definite(cov6, f"Covariance of track {track.track_id}")
        p = np.array(track.momentum, dtype=float)
        energy = math.sqrt(float(p @ p) + hypothesis.mass * hypothesis.mass)
        jac = np.zeros((7, 6))
        jac[:6, :6] = np.eye(6)
        jac[6, 3:6] = p / energy
        params = np.array([*track.position, *track.momentum, energy], dtype=float)
        return cls(params=params, cov=jac @ cov6 @ jac.T, charge=int(track.charge), mass=hypothesis.mass)

    @classmethod
    def from_primary_vertex(cls, pv: PrimaryVertex) -> "ParticleState":
        """Represent a primary vertex as a particle without daughters."""
        check_finite(pv.position, f"Position of primary vertex {pv.collision_id}")
        cov3 = unpack_symmetric(pv.cov6, 3)
        check_positive_definite(cov3, f"Covariance of primary vertex {pv.collision_id}")
        cov = np.zeros((7, 7))
        cov[:3, :3] = cov3
        params = np.array([pv.x, pv.y, pv.z, 0.0, 0.0, 0.0, 0.0])
        return cls(params=params, cov=cov)

    @property
    def position(self) -> np.ndarray:
        return self.params[:3]

    @property
    def momentum(self) -> np.ndarray:
        return self.params[3:6]

    @property
    def energy(self) -> float:
        return float(self.params[6])

    def transported(self, ds: float, bz: float) -> "ParticleState":
        """Return a new state moved by path parameter `ds` along its helix."""
        f = transport_matrix(ds, field_constant(bz, self.charge))
        return ParticleState(params=f @ self.params, cov=f @ self.cov @ f.T, charge=self.charge, mass=self.mass)

    def ds_to_point(self, point: Sequence[float], bz: float, transverse_only: bool = False) -> float:
        """Path parameter of the point of closest approach to `point`.

        The transverse solution is exact for the helix; the 3D solution refines
        it with a few Newton steps on `p(s) . (r(s) - point)`.
        """
        k = field_constant(bz, self.charge)
        px, py, pz = (float(v) for v in self.momentum)
        dx, dy, dz = (float(point[i]) - float(self.params[i]) for i in range(3))
        pt2 = px * px + py * py
        p2 = pt2 + pz * pz
        if p2 <= 0.0:
            return 0.0
        if pt2 <= 0.0:
            return 0.0 if transverse_only else dz / pz
        if k == 0.0:
            if transverse_only:
                return (dx * px + dy * py) / pt2
            return (dx * px + dy * py + dz * pz) / p2

        a = dx * px + dy * py
        b = dx * py - dy * px
        ds = math.atan2(k * a, pt2 - k * b) / k
        if transverse_only:
            return ds

        target = np.asarray(point, dtype=float)
        for _ in range(_NEWTON_STEPS):
            state = self.params if ds == 0.0 else transport_matrix(ds, k) @ self.params
            r = state[:3] - target
            mom = state[3:6]
            dmom = np.array([k * mom[1], -k * mom[0], 0.0])
            g = float(mom @ r)
            dg = float(dmom @ r) + p2
            if dg <= 0.0:
                break
            step = g / dg
            ds -= step
            if abs(step) < 1e-9 * (1.0 + abs(ds)):
                break
        return ds
