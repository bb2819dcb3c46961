"""Synthetic Lc+ -> p K- pi+ study: vertex fits plus truth matching.

Generates a toy event record, fits every true triplet, matches the candidates
against the record and writes both tables.

Run from repository root without installation:
    PYTHONPATH=src python examples/synthetic_lc_study.py
"""

from __future__ import annotations
__author__ = "hfcand developers"

import logging
from pathlib import Path

import numpy as np

from hfcand import (
    CandidateCreator3Prong,
    CreatorConfig,
    McParticle,
    McParticleTable,
    PrimaryVertex,
    TrackState,
    TrackTriplet,
    make_kaon,
    make_pion,
    make_proton,
    match_candidates,
)
from hfcand.io import write_candidates_table, write_match_table
from hfcand.particle import ParticleState

LC_MASS = 2.28646
BZ = 5.0
POS_SIGMA = 0.003
MOM_SIGMA = 0.002


def _two_body(mass: float, m1: float, m2: float, rng: np.random.Generator) -> np.ndarray:
    """Momentum of the first daughter of an isotropic two-body decay at rest."""
    p = np.sqrt(max((mass**2 - (m1 + m2) ** 2) * (mass**2 - (m1 - m2) ** 2), 0.0)) / (2.0 * mass)
    cos_t = rng.uniform(-1.0, 1.0)
    phi = rng.uniform(0.0, 2.0 * np.pi)
    sin_t = np.sqrt(1.0 - cos_t**2)
    return p * np.array([sin_t * np.cos(phi), sin_t * np.sin(phi), cos_t])


def _boost(p: np.ndarray, m: float, beta: np.ndarray) -> np.ndarray:
    """Boost a 3-momentum of mass `m` by velocity `beta`."""
    b2 = float(beta @ beta)
    if b2 == 0.0:
        return p
    gamma = 1.0 / np.sqrt(1.0 - b2)
    e = np.sqrt(float(p @ p) + m * m)
    bp = float(beta @ p)
    return p + ((gamma - 1.0) * bp / b2 + gamma * e) * beta


def _decay_lc(p_lc: np.ndarray, rng: np.random.Generator) -> list[np.ndarray]:
    """Three-body phase space via p + (K pi) with a flat K pi mass."""
    masses = (make_proton().mass, make_kaon().mass, make_pion().mass)
    m_kpi = rng.uniform(masses[1] + masses[2], LC_MASS - masses[0])
    p_p = _two_body(LC_MASS, masses[0], m_kpi, rng)
    p_k = _two_body(m_kpi, masses[1], masses[2], rng)
    beta_kpi = -p_p / np.sqrt(float(p_p @ p_p) + m_kpi**2)
    p_k_rest = _boost(p_k, masses[1], beta_kpi)
    p_pi_rest = _boost(-p_k, masses[2], beta_kpi)
    beta_lc = p_lc / np.sqrt(float(p_lc @ p_lc) + LC_MASS**2)
    return [_boost(q, m, beta_lc) for q, m in zip((p_p, p_k_rest, p_pi_rest), masses)]


def make_sample(n_decays: int, seed: int = 11):
    """Return `(collisions, tracks, triplets, mc_table)` for `n_decays` toy decays."""
    rng = np.random.default_rng(seed)
    cov = np.diag([POS_SIGMA**2] * 3 + [MOM_SIGMA**2] * 3)
    cov21 = tuple(float(x) for x in cov[np.tril_indices(6)])
    collisions = [PrimaryVertex(collision_id=0, x=0.0, y=0.0, z=0.0, cov6=(1e-6, 0.0, 1e-6, 0.0, 0.0, 4e-6))]
    tracks: list[TrackState] = []
    triplets: list[TrackTriplet] = []
    particles: list[McParticle] = []

    for i in range(n_decays):
        p_lc = rng.normal(0.0, 2.0, size=3)
        sign = 1 if rng.uniform() < 0.5 else -1
        flight = rng.exponential(0.006) * p_lc / LC_MASS
        first = len(particles)
        particles.append(McParticle(first, sign * 4122, -1, first + 1, first + 3))
        for j, (p, code, charge) in enumerate(zip(_decay_lc(p_lc, rng), (2212, -321, 211), (1, -1, 1))):
            mc_index = first + 1 + j
            particles.append(McParticle(mc_index, sign * code, first))
            start = ParticleState(params=np.array([*flight, *p, 0.0]), cov=np.eye(7), charge=sign * charge)
            state = start.transported(1.0, BZ)
            x, y, z = state.params[:3] + rng.normal(0.0, POS_SIGMA, size=3)
            px, py, pz = state.params[3:6] + rng.normal(0.0, MOM_SIGMA, size=3)
            tracks.append(
                TrackState(
                    track_id=3 * i + j,
                    collision_id=0,
                    x=float(x),
                    y=float(y),
                    z=float(z),
                    px=float(px),
                    py=float(py),
                    pz=float(pz),
                    charge=sign * charge,
                    cov21=cov21,
                    mc_particle_id=mc_index,
                )
            )
        triplets.append(TrackTriplet(index=i, prong_ids=(3 * i, 3 * i + 1, 3 * i + 2)))

    return collisions, tracks, triplets, McParticleTable(particles)


def main() -> int:
    """Fit toy Lc triplets, match them and write both tables."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    collisions, tracks, triplets, mc_table = make_sample(500)

    creator = CandidateCreator3Prong(CreatorConfig(bz=BZ))
    output = creator.process(collisions, triplets, tracks, n_workers=4)
    matches = match_candidates(mc_table, output.candidates, tracks, n_workers=4)

    masses = np.array([c.mass for c in output.candidates])
    print(f"Candidates: {len(output.candidates)}  rejected: {output.n_rejected}")
    if masses.size:
        print(f"Mass mean {masses.mean():.4f} GeV, rms {masses.std():.4f} GeV")
    print(f"Matched: {sum(1 for m in matches if m.matched)} / {len(matches)}")

    out_dir = Path("examples")
    write_candidates_table(out_dir / "synthetic_lc_candidates.csv", output.candidates)
    write_match_table(out_dir / "synthetic_lc_matches.csv", matches)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
