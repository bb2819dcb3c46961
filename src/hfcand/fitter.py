"""Three-prong vertex fitters behind a single variant selector.

Two variants are available:
- `"kf"`: closed-form constrained least-squares merge of the daughter particle
  states (KFParticle style). No convergence knobs.
- `"dca"`: iterative minimiser of the weighted distance of the daughters to a
  common point (DCA-fitter style) with radius, seed-separation and convergence
  thresholds.

Both return a `CompositeParticle` or raise a `FitError` subclass. Inputs
are never modified: every step works on freshly built particle states.
"""

from __future__ import annotations
__author__ = "hfcand developers"

import logging
import math
from dataclasses import dataclass
from typing import ClassVar, Protocol, Sequence

import numpy as np

from .config import CreatorConfig
from .errors import NumericalFailure, UnphysicalResult
from .models import CompositeParticle, LorentzVector, ParticleHypothesis, PrimaryVertex, TrackState
from .particle import ParticleState, check_positive_definite
from .physics import decay_length_errors, invariant_mass, seed_vertex

logger = logging.getLogger(__name__)

# Fits around the seed, then around the fitted vertex.
_KF_LINEARISATIONS = 2


class VertexFitter(Protocol):
    """Common interface of the fitter variants."""

    name: ClassVar[str]

    def fit(
        self,
        tracks: Sequence[TrackState],
        hypotheses: Sequence[ParticleHypothesis],
        pv: PrimaryVertex,
        bz: float,
    ) -> CompositeParticle:
        ...


def make_vertex_fitter(config: CreatorConfig) -> VertexFitter:
    """Return the fitter variant selected by `config.fitter`."""
    if config.fitter == "dca":
        return DCAVertexFitter(
            max_r=config.max_r,
            max_dz_ini=config.max_dz_ini,
            min_param_change=config.min_param_change,
            min_rel_chi2_change=config.min_rel_chi2_change,
            max_iterations=config.max_iterations,
            propagate_to_pca=config.propagate_to_pca,
        )
    return KFVertexFitter(max_r=config.max_r, propagate_to_pca=config.propagate_to_pca)


@dataclass(frozen=True)
class KFVertexFitter:
    """Closed-form Kalman merge of daughter particle states."""

    name: ClassVar[str] = "kf"

    max_r: float = 200.0
    propagate_to_pca: bool = True

    def fit(
        self,
        tracks: Sequence[TrackState],
        hypotheses: Sequence[ParticleHypothesis],
        pv: PrimaryVertex,
        bz: float,
    ) -> CompositeParticle:
        """Build the composite from all daughters sharing one decay vertex.

        Workflow:
        1. Convert tracks to particle states with their mass hypotheses and
           the primary vertex to a particle without daughters.
        2. Seed the linearisation point from the straight-line tangents.
        3. Transport daughters to their PCA to the linearisation point.
        4. Merge daughters one by one under the common-vertex constraint.
        5. Repeat 3-4 around the fitted vertex.
        """
        daughters = _daughter_states(tracks, hypotheses)
        pv_state = ParticleState.from_primary_vertex(pv)
        point = seed_vertex(daughters)
        for _ in range(_KF_LINEARISATIONS):
            params, cov, chi2, transported = self._construct(daughters, point, bz)
            point = params[:3]
        _check_radius(params[:3], self.max_r)

        momenta = transported if self.propagate_to_pca else daughters
        return _composite(self.name, params, cov, chi2, daughters, momenta, pv_state)

    @staticmethod
    def _construct(
        daughters: Sequence[ParticleState],
        point: np.ndarray,
        bz: float,
    ) -> tuple[np.ndarray, np.ndarray, float, list[ParticleState]]:
        """Merge transported daughters into one mother state."""
        transported = [d.transported(d.ds_to_point(point, bz), bz) for d in daughters]
        params = transported[0].params.copy()
        cov = transported[0].cov.copy()
        chi2 = 0.0
        for prong in transported[1:]:
            params, cov, delta_chi2 = merge_daughter(params, cov, prong.params, prong.cov)
            chi2 += delta_chi2
        return params, cov, chi2, transported


def merge_daughter(
    mother: np.ndarray,
    mother_cov: np.ndarray,
    daughter: np.ndarray,
    daughter_cov: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, float]:
    """Weighted least-squares merge of one daughter into the running mother.

    Mother and daughter are independent Gaussian estimates; the constraint is
    that both positions coincide. The updated mother keeps the common position
    and the sum of the updated four-momenta. Returns the new parameters, the
    new covariance and the chi2 contribution of the constraint.
    """
    y = np.concatenate([mother, daughter])
    cy = np.zeros((14, 14))
    cy[:7, :7] = mother_cov
    cy[7:, 7:] = daughter_cov

    h = np.zeros((3, 14))
    h[:, 0:3] = np.eye(3)
    h[:, 7:10] = -np.eye(3)

    zeta = h @ y
    s = h @ cy @ h.T
    check_positive_definite(s, "Residual covariance of the vertex constraint")
    s_inv = np.linalg.inv(s)
    gain = cy @ h.T @ s_inv
    y = y - gain @ zeta
    cy = cy - gain @ h @ cy

    a = np.zeros((7, 14))
    a[:, :7] = np.eye(7)
    a[3:7, 10:14] = np.eye(4)
    new_cov = a @ cy @ a.T
    return a @ y, 0.5 * (new_cov + new_cov.T), float(zeta @ s_inv @ zeta)


@dataclass(frozen=True)
class DCAVertexFitter:
    """Iterative minimiser of the covariance-weighted distance to a common point."""

    name: ClassVar[str] = "dca"

    max_r: float = 200.0
    max_dz_ini: float = 4.0
    min_param_change: float = 1e-3
    min_rel_chi2_change: float = 0.9
    max_iterations: int = 20
    propagate_to_pca: bool = True

    def fit(
        self,
        tracks: Sequence[TrackState],
        hypotheses: Sequence[ParticleHypothesis],
        pv: PrimaryVertex,
        bz: float,
    ) -> CompositeParticle:
        """Iterate PCA transport and weighted-mean vertex updates until converged."""
        daughters = _daughter_states(tracks, hypotheses)
        pv_state = ParticleState.from_primary_vertex(pv)
        vertex = seed_vertex(daughters)
        _check_radius(vertex, self.max_r)
        self._check_seed_separation(daughters, vertex, bz)

        chi2_old: float | None = None
        for _ in range(self.max_iterations):
            transported = [d.transported(d.ds_to_point(vertex, bz), bz) for d in daughters]
            new_vertex, _, chi2 = _weighted_vertex(transported)
            change = float(np.max(np.abs(new_vertex - vertex)))
            vertex = new_vertex
            _check_radius(vertex, self.max_r)
            if change < self.min_param_change:
                break
            if chi2_old is not None and chi2_old > 0.0 and chi2 / chi2_old > self.min_rel_chi2_change:
                break
            chi2_old = chi2
        else:
            logger.debug("DCA fitter stopped after %d iterations without convergence", self.max_iterations)

        transported = [d.transported(d.ds_to_point(vertex, bz), bz) for d in daughters]
        _, weight, chi2 = _weighted_vertex(transported)
        cov = np.zeros((7, 7))
        cov[:3, :3] = np.linalg.inv(weight)
        params = np.zeros(7)
        params[:3] = vertex
        for d in transported:
            params[3:7] += d.params[3:7]
            cov[3:7, 3:7] += d.cov[3:7, 3:7]

        momenta = transported if self.propagate_to_pca else daughters
        return _composite(self.name, params, cov, chi2, daughters, momenta, pv_state)

    def _check_seed_separation(self, daughters: Sequence[ParticleState], seed: np.ndarray, bz: float) -> None:
        """Reject seeds whose tracks are too far apart along z at their transverse PCA."""
        if self.max_dz_ini <= 0.0:
            return
        z_values = []
        for d in daughters:
            at_pca = d.transported(d.ds_to_point(seed, bz, transverse_only=True), bz)
            z_values.append(float(at_pca.position[2]))
        spread = max(z_values) - min(z_values)
        if spread > self.max_dz_ini:
            raise UnphysicalResult(
                f"Track z separation {spread:.3g} at seed exceeds max_dz_ini={self.max_dz_ini:g}."
            )


def _weighted_vertex(transported: Sequence[ParticleState]) -> tuple[np.ndarray, np.ndarray, float]:
    """Inverse-covariance weighted mean of daughter positions and its chi2."""
    weights = []
    for d in transported:
        pos_cov = d.cov[:3, :3]
        check_positive_definite(pos_cov, "Daughter position covariance")
        weights.append(np.linalg.inv(pos_cov))
    weight = sum(weights)
    rhs = sum(w @ d.position for w, d in zip(weights, transported, strict=True))
    try:
        vertex = np.linalg.solve(weight, rhs)
    except np.linalg.LinAlgError as exc:
        raise NumericalFailure("Singular summed vertex weight.") from exc
    chi2 = 0.0
    for w, d in zip(weights, transported, strict=True):
        r = d.position - vertex
        chi2 += float(r @ w @ r)
    return vertex, weight, chi2


def _daughter_states(
    tracks: Sequence[TrackState],
    hypotheses: Sequence[ParticleHypothesis],
) -> list[ParticleState]:
    """Validate prong multiplicity and build the daughter particle states."""
    if len(tracks) != len(hypotheses):
        raise ValueError("Hypothesis list length must match track multiplicity.")
    if len(tracks) < 2:
        raise ValueError("A vertex needs at least two daughters.")
    return [ParticleState.from_track(t, h) for t, h in zip(tracks, hypotheses, strict=True)]


def _composite(
    name: str,
    params: np.ndarray,
    cov: np.ndarray,
    chi2: float,
    daughters: Sequence[ParticleState],
    momenta: Sequence[ParticleState],
    pv: ParticleState,
) -> CompositeParticle:
    """Assemble the fit output: mass, decay-length errors and prong momenta."""
    mass, mass_error = invariant_mass(params, cov)
    error_decay_length, error_decay_length_xy = decay_length_errors(pv, params[:3], cov[:3, :3])
    return CompositeParticle(
        vertex_xyz=_as_vector3(params[:3]),
        p4=LorentzVector(float(params[3]), float(params[4]), float(params[5]), float(params[6])),
        covariance=cov,
        mass=mass,
        mass_error=mass_error,
        chi2=chi2,
        ndf=2 * len(daughters) - 3,
        charge=sum(d.charge for d in daughters),
        prong_momenta=tuple(_as_vector3(d.momentum) for d in momenta),
        fitter=name,
        pv_xyz=_as_vector3(pv.position),
        error_decay_length=error_decay_length,
        error_decay_length_xy=error_decay_length_xy,
    )


def _check_radius(vertex: np.ndarray, max_r: float) -> None:
    radius = math.hypot(float(vertex[0]), float(vertex[1]))
    if radius > max_r:
        raise UnphysicalResult(f"Vertex radius {radius:.3g} exceeds max_r={max_r:g}.")


def _as_vector3(values: np.ndarray) -> tuple[float, float, float]:
    return float(values[0]), float(values[1]), float(values[2])
