"""Core data models used by the three-prong candidate framework.

This module defines:
- immutable detector inputs (`TrackState`, `PrimaryVertex`, `TrackTriplet`)
- particle-mass assignment objects (`ParticleHypothesis`, `LorentzVector`)
- fit and candidate outputs (`CompositeParticle`, `Candidate3Prong`)
- the simulated record (`McParticle`, `McParticleTable`) and `MatchResult`.

Packed covariances follow the KFParticle convention: the lower triangle of the
symmetric matrix, row by row (`c00, c10, c11, c20, c21, c22, ...`).
"""

from __future__ import annotations
__author__ = "hfcand developers"

import math
from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np

from .errors import StructuralInconsistency

Vector3 = tuple[float, float, float]
PackedCov6 = tuple[float, float, float, float, float, float]


@dataclass(frozen=True)
class TrackState:
    """Reconstructed charged track at its reference point.

    `cov21` is the packed 6x6 covariance of `(x, y, z, px, py, pz)`.
    `charge` carries the sign of the measured curvature.
    """

    track_id: int
    collision_id: int
    x: float
    y: float
    z: float
    px: float
    py: float
    pz: float
    charge: int
    cov21: tuple[float, ...]
    mc_particle_id: int = -1  # -1 when not linked to a simulated particle

    @property
    def position(self) -> Vector3:
        return self.x, self.y, self.z

    @property
    def momentum(self) -> Vector3:
        return self.px, self.py, self.pz


@dataclass(frozen=True)
class PrimaryVertex:
    """Primary-vertex estimate of one collision.

    `cov6` is the packed 3x3 position covariance `(xx, xy, yy, xz, yz, zz)`.
    """

    collision_id: int
    x: float
    y: float
    z: float
    cov6: PackedCov6

    @property
    def position(self) -> Vector3:
        return self.x, self.y, self.z


@dataclass(frozen=True)
class TrackTriplet:
    """Three track ids proposed by the upstream combinatorics."""

    index: int
    prong_ids: tuple[int, int, int]
    hf_flag: int = 0


@dataclass(frozen=True)
class ParticleHypothesis:
    """Named particle hypothesis used to assign a mass to a prong."""

    name: str
    mass: float
    pdg_id: int | None = None


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)


@dataclass(frozen=True, eq=False)
class CompositeParticle:
    """Fitted composite particle: decay vertex, four-momentum and covariance.

    `covariance` is the 7x7 covariance of `(x, y, z, px, py, pz, E)`.
    `prong_momenta` are the daughter momenta at their point of closest
    approach to the fitted vertex. Decay-length errors are measured from the
    primary vertex at `pv_xyz`.
    """

    vertex_xyz: Vector3
    p4: LorentzVector
    covariance: np.ndarray = field(repr=False)
    mass: float
    mass_error: float
    chi2: float
    ndf: int
    charge: int
    prong_momenta: tuple[Vector3, ...]
    fitter: str
    pv_xyz: Vector3
    error_decay_length: float
    error_decay_length_xy: float

    @property
    def vertex_cov_xyz(self) -> np.ndarray:
        return self.covariance[:3, :3]

    @property
    def momentum(self) -> Vector3:
        return self.p4.px, self.p4.py, self.p4.pz

    @property
    def decay_length(self) -> float:
        return math.dist(self.pv_xyz, self.vertex_xyz)


@dataclass(frozen=True)
class Candidate3Prong:
    """One accepted triplet, flattened for downstream tabular storage."""

    triplet_index: int
    collision_id: int
    pv_xyz: Vector3
    sv_xyz: Vector3
    momentum: Vector3
    mass: float
    mass_error: float
    chi2: float
    ndf: int
    error_decay_length: float
    error_decay_length_xy: float
    prong_momenta: tuple[Vector3, Vector3, Vector3]
    impact_parameters: tuple[float, float, float]
    impact_parameter_errors: tuple[float, float, float]
    prong_ids: tuple[int, int, int]
    hf_flag: int = 0

    @property
    def decay_length(self) -> float:
        return math.dist(self.pv_xyz, self.sv_xyz)

    @property
    def decay_length_xy(self) -> float:
        return math.hypot(self.sv_xyz[0] - self.pv_xyz[0], self.sv_xyz[1] - self.pv_xyz[1])


@dataclass(frozen=True)
class McParticle:
    """One entry of the simulated event record.

    Daughters occupy the contiguous index range `[daughter_first, daughter_last]`;
    either bound may be -1 when the generator only filled the other one.
    """

    index: int
    pdg_code: int
    mother_index: int = -1
    daughter_first: int = -1
    daughter_last: int = -1
    px: float = 0.0
    py: float = 0.0
    pz: float = 0.0
    e: float = 0.0

    @property
    def has_mother(self) -> bool:
        return self.mother_index > -1

    @property
    def has_daughters(self) -> bool:
        return self.daughter_first > -1 or self.daughter_last > -1

    def daughter_range(self) -> range:
        """Return the daughter index range, tolerating one missing bound."""
        first, last = self.daughter_first, self.daughter_last
        if first <= -1:
            first = last
        if last <= -1:
            last = first
        if first <= -1:
            return range(0)
        return range(first, last + 1)


class McParticleTable:
    """Read-only, index-addressable view of the simulated particle record."""

    def __init__(self, particles: Sequence[McParticle]) -> None:
        self._particles = tuple(particles)
        for position, particle in enumerate(self._particles):
            if particle.index != position:
                raise StructuralInconsistency(
                    f"MC particle at position {position} carries index {particle.index}."
                )

    def __len__(self) -> int:
        return len(self._particles)

    def __iter__(self) -> Iterator[McParticle]:
        return iter(self._particles)

    def __getitem__(self, index: int) -> McParticle:
        if index < 0 or index >= len(self._particles):
            raise StructuralInconsistency(
                f"MC particle index {index} outside record of size {len(self._particles)}."
            )
        return self._particles[index]


@dataclass(frozen=True)
class MatchResult:
    """MC classification of one reconstructed triplet or one simulated particle.

    `flag` is `sign * (1 << decay_type)` of the first matching hypothesis, 0
    when nothing matched.
    """

    flag: int = 0
    origin: int = 0
    channel: int = 0
    mother_index: int = -1
    item_index: int = -1

    @property
    def matched(self) -> bool:
        return self.flag != 0

    @property
    def sign(self) -> int:
        return (self.flag > 0) - (self.flag < 0)
