"""Monte Carlo truth matching of three-prong candidates and generated particles.

The matcher walks mother links upward and daughter ranges downward in the
simulated record. Every walk is iterative, bounded in depth and guarded against
revisiting an index, so a corrupt record raises `StructuralInconsistency`
instead of looping. At the item boundary that error degrades to "no match".

Hypotheses are tried in the order they are listed and the first match wins.
"""

from __future__ import annotations
__author__ = "hfcand developers"

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Mapping, Sequence

from .errors import ConfigurationError, StructuralInconsistency
from .models import Candidate3Prong, MatchResult, McParticleTable, TrackState
from .pid import PdgCode, is_bottom_flavour

logger = logging.getLogger(__name__)

# Bound for walks without an explicit depth limit.
MAX_ANCESTRY_DEPTH = 1000


class DecayType(IntEnum):
    """Bit positions of the three-prong decay flags."""

    DPLUS_TO_PI_K_PI = 0
    LC_TO_P_K_PI = 1
    XIC_TO_P_K_PI = 2


class OriginType(IntEnum):
    NONE = 0
    PROMPT = 1
    NON_PROMPT = 2


@dataclass(frozen=True)
class ResonantChannel:
    """Intermediate two-body state identified among the mother's direct daughters."""

    channel: int
    daughters_pdg: tuple[int, int]
    name: str = ""

    @property
    def key(self) -> tuple[int, int]:
        a, b = sorted(abs(code) for code in self.daughters_pdg)
        return a, b


@dataclass(frozen=True)
class DecayHypothesis:
    """Expected decay: mother species, final daughter species and search depth.

    `depth_max` limits both the upward search for the mother from the first
    daughter and the downward collection of final daughters; 2 admits one
    intermediate resonance. With `accept_antiparticles` the charge-conjugate
    decay matches too, with every code flipped at once.
    """

    name: str
    decay_type: DecayType
    mother_pdg: int
    daughters_pdg: tuple[int, ...]
    accept_antiparticles: bool = True
    depth_max: int = 1
    channels: tuple[ResonantChannel, ...] = ()

    @property
    def bit(self) -> int:
        return 1 << int(self.decay_type)


LC_RESONANT_CHANNELS = (
    ResonantChannel(1, (PdgCode.PROTON, PdgCode.KSTAR0), "p K*0(892)"),
    ResonantChannel(2, (PdgCode.DELTA_PLUSPLUS, PdgCode.KAON), "Delta++(1232) K"),
    ResonantChannel(3, (PdgCode.LAMBDA_1520, PdgCode.PION), "Lambda(1520) pi"),
)

# Priority order: the first matching entry sets the flag.
THREE_PRONG_HYPOTHESES = (
    DecayHypothesis(
        name="D+ -> pi+ K- pi+",
        decay_type=DecayType.DPLUS_TO_PI_K_PI,
        mother_pdg=PdgCode.DPLUS,
        daughters_pdg=(PdgCode.PION, -PdgCode.KAON, PdgCode.PION),
    ),
    DecayHypothesis(
        name="Lc+ -> p K- pi+",
        decay_type=DecayType.LC_TO_P_K_PI,
        mother_pdg=PdgCode.LAMBDA_C,
        daughters_pdg=(PdgCode.PROTON, -PdgCode.KAON, PdgCode.PION),
        depth_max=2,
        channels=LC_RESONANT_CHANNELS,
    ),
    DecayHypothesis(
        name="Xic+ -> p K- pi+",
        decay_type=DecayType.XIC_TO_P_K_PI,
        mother_pdg=PdgCode.XI_C,
        daughters_pdg=(PdgCode.PROTON, -PdgCode.KAON, PdgCode.PION),
    ),
)


def validate_hypotheses(hypotheses: Sequence[DecayHypothesis]) -> None:
    """Reject empty, duplicated or malformed hypothesis lists."""
    if not hypotheses:
        raise ConfigurationError("At least one decay hypothesis is required.")
    seen: set[int] = set()
    for hyp in hypotheses:
        if not hyp.daughters_pdg:
            raise ConfigurationError(f"Hypothesis '{hyp.name}' has no daughters.")
        if hyp.depth_max < 1:
            raise ConfigurationError(f"Hypothesis '{hyp.name}' needs depth_max >= 1.")
        if hyp.decay_type in seen:
            raise ConfigurationError(f"Decay type {hyp.decay_type.name} listed twice.")
        seen.add(hyp.decay_type)
        keys = [ch.key for ch in hyp.channels]
        if len(set(keys)) != len(keys):
            raise ConfigurationError(f"Hypothesis '{hyp.name}' has duplicated resonant channels.")


def find_mother(
    table: McParticleTable,
    index: int,
    predicate: Callable[[int], bool],
    depth_max: int = -1,
) -> int:
    """Return the index of the closest strict ancestor whose code satisfies `predicate`.

    `depth_max` counts generations (1 = direct mother only, -1 = no limit).
    Returns -1 when no ancestor matches.
    """
    visited = {index}
    particle = table[index]
    stage = 0
    while particle.has_mother:
        if depth_max > -1 and stage >= depth_max:
            break
        if stage >= MAX_ANCESTRY_DEPTH:
            raise StructuralInconsistency(f"Ancestry of particle {index} deeper than {MAX_ANCESTRY_DEPTH}.")
        mother_index = particle.mother_index
        if mother_index in visited:
            raise StructuralInconsistency(f"Ancestry of particle {index} revisits index {mother_index}.")
        visited.add(mother_index)
        particle = table[mother_index]
        if predicate(particle.pdg_code):
            return mother_index
        stage += 1
    return -1


def find_mother_pdg(
    table: McParticleTable,
    index: int,
    pdg_mother: int,
    accept_antiparticles: bool = False,
    depth_max: int = -1,
) -> tuple[int, int]:
    """Return `(mother_index, sign)` of the closest ancestor with code `pdg_mother`.

    `sign` is -1 when the antiparticle matched, 0 when nothing did.
    """
    def matches(code: int) -> bool:
        return code == pdg_mother or (accept_antiparticles and code == -pdg_mother)

    mother = find_mother(table, index, matches, depth_max)
    if mother < 0:
        return -1, 0
    return mother, 1 if table[mother].pdg_code == pdg_mother else -1


def get_daughters(
    table: McParticleTable,
    index: int,
    final_pdgs: Sequence[int] = (),
    depth_max: int = -1,
) -> list[int]:
    """Collect the final daughters of a particle in record order.

    A descendant is final when the depth limit is reached, when it has no
    daughters, or when its absolute code is listed in `final_pdgs`. A start
    particle without daughters yields an empty list.
    """
    finals = {abs(int(code)) for code in final_pdgs}
    out: list[int] = []
    seen: set[int] = set()
    stack = [(index, 0)]
    while stack:
        idx, stage = stack.pop()
        if idx in seen:
            raise StructuralInconsistency(f"Decay tree of particle {index} revisits index {idx}.")
        if stage > MAX_ANCESTRY_DEPTH:
            raise StructuralInconsistency(f"Decay tree of particle {index} deeper than {MAX_ANCESTRY_DEPTH}.")
        seen.add(idx)
        particle = table[idx]

        is_final = depth_max > -1 and stage >= depth_max
        if not is_final and not particle.has_daughters:
            if stage == 0:
                return []
            is_final = True
        if not is_final and stage > 0 and abs(particle.pdg_code) in finals:
            is_final = True
        if is_final:
            out.append(idx)
            continue
        # Reversed push keeps depth-first record order.
        for daughter in reversed(particle.daughter_range()):
            stack.append((daughter, stage + 1))
    return out


def match_reco_daughters(
    table: McParticleTable,
    daughter_indices: Sequence[int],
    hypothesis: DecayHypothesis,
) -> tuple[int, int]:
    """Match truth-linked reconstructed daughters to one hypothesis.

    Returns `(mother_index, sign)` or `(-1, 0)`. The mother is searched from
    the first daughter; every daughter must be one of its final daughters and
    consume one expected code equal to `sign * code`.
    """
    n_prongs = len(hypothesis.daughters_pdg)
    if len(daughter_indices) != n_prongs or len(set(daughter_indices)) != n_prongs:
        return -1, 0
    if any(idx < 0 for idx in daughter_indices):
        return -1, 0

    mother, sign = find_mother_pdg(
        table,
        daughter_indices[0],
        hypothesis.mother_pdg,
        hypothesis.accept_antiparticles,
        hypothesis.depth_max,
    )
    if mother < 0:
        return -1, 0
    finals = get_daughters(table, mother, hypothesis.daughters_pdg, hypothesis.depth_max)
    if len(finals) != n_prongs:
        return -1, 0

    expected = [sign * int(code) for code in hypothesis.daughters_pdg]
    for idx in daughter_indices:
        if idx not in finals:
            return -1, 0
        try:
            expected.remove(table[idx].pdg_code)
        except ValueError:
            return -1, 0
    return mother, sign


def is_matched_gen(table: McParticleTable, index: int, hypothesis: DecayHypothesis) -> int:
    """Return the sign (+1/-1) when a generated particle decays as hypothesised, else 0."""
    code = table[index].pdg_code
    if code == hypothesis.mother_pdg:
        sign = 1
    elif hypothesis.accept_antiparticles and code == -hypothesis.mother_pdg:
        sign = -1
    else:
        return 0

    n_prongs = len(hypothesis.daughters_pdg)
    if n_prongs > 1:
        finals = get_daughters(table, index, hypothesis.daughters_pdg, hypothesis.depth_max)
        if len(finals) != n_prongs:
            return 0
        expected = [sign * int(c) for c in hypothesis.daughters_pdg]
        for idx in finals:
            try:
                expected.remove(table[idx].pdg_code)
            except ValueError:
                return 0
    return sign


def resolve_channel(table: McParticleTable, mother_index: int, channels: Sequence[ResonantChannel]) -> int:
    """Sub-channel tag from the mother's direct daughters, 0 when none applies."""
    if not channels:
        return 0
    direct = get_daughters(table, mother_index, (0,), 1)
    if len(direct) != 2:
        return 0
    a, b = sorted(abs(table[idx].pdg_code) for idx in direct)
    lookup = {ch.key: ch.channel for ch in channels}
    return lookup.get((a, b), 0)


def resolve_origin(table: McParticleTable, index: int) -> OriginType:
    """Non-prompt when any ancestor of `index` is of bottom flavour."""
    if find_mother(table, index, is_bottom_flavour) > -1:
        return OriginType.NON_PROMPT
    return OriginType.PROMPT


def match_reconstructed(
    table: McParticleTable,
    daughter_indices: Sequence[int],
    hypotheses: Sequence[DecayHypothesis] = THREE_PRONG_HYPOTHESES,
    item_index: int = -1,
) -> MatchResult:
    """Classify one reconstructed triplet given the MC indices of its prongs."""
    def attempt(hyp: DecayHypothesis) -> tuple[int, int]:
        return match_reco_daughters(table, daughter_indices, hyp)

    return _classify(table, hypotheses, attempt, item_index)


def match_generated(
    table: McParticleTable,
    index: int,
    hypotheses: Sequence[DecayHypothesis] = THREE_PRONG_HYPOTHESES,
) -> MatchResult:
    """Classify one generated particle by its own decay."""
    def attempt(hyp: DecayHypothesis) -> tuple[int, int]:
        sign = is_matched_gen(table, index, hyp)
        return (index, sign) if sign else (-1, 0)

    return _classify(table, hypotheses, attempt, index)


def match_candidates(
    table: McParticleTable,
    candidates: Sequence[Candidate3Prong],
    tracks: Sequence[TrackState] | Mapping[int, TrackState],
    hypotheses: Sequence[DecayHypothesis] = THREE_PRONG_HYPOTHESES,
    n_workers: int = 1,
) -> list[MatchResult]:
    """Match every candidate through the MC links of its prong tracks.

    Results follow the candidate order and carry `item_index = triplet_index`.
    """
    validate_hypotheses(hypotheses)
    tracks_by_id = tracks if isinstance(tracks, Mapping) else {t.track_id: t for t in tracks}

    def run(candidate: Candidate3Prong) -> MatchResult:
        daughters = [
            tracks_by_id[tid].mc_particle_id if tid in tracks_by_id else -1 for tid in candidate.prong_ids
        ]
        return match_reconstructed(table, daughters, hypotheses, candidate.triplet_index)

    return _run_all(run, list(candidates), n_workers)


def match_generated_particles(
    table: McParticleTable,
    hypotheses: Sequence[DecayHypothesis] = THREE_PRONG_HYPOTHESES,
    n_workers: int = 1,
) -> list[MatchResult]:
    """Match every particle of the simulated record, in record order."""
    validate_hypotheses(hypotheses)
    return _run_all(lambda particle: match_generated(table, particle.index, hypotheses), list(table), n_workers)


def _classify(
    table: McParticleTable,
    hypotheses: Sequence[DecayHypothesis],
    attempt: Callable[[DecayHypothesis], tuple[int, int]],
    item_index: int,
) -> MatchResult:
    """Try hypotheses in priority order and resolve channel and origin of the winner."""
    try:
        for hyp in hypotheses:
            mother, sign = attempt(hyp)
            if mother < 0:
                continue
            return MatchResult(
                flag=sign * hyp.bit,
                origin=int(resolve_origin(table, mother)),
                channel=resolve_channel(table, mother, hyp.channels),
                mother_index=mother,
                item_index=item_index,
            )
    except StructuralInconsistency as exc:
        logger.warning("Item %d left unmatched: %s", item_index, exc)
    return MatchResult(item_index=item_index)


def _run_all(func, items: list, n_workers: int) -> list[MatchResult]:
    if n_workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]
    with ThreadPoolExecutor(max_workers=n_workers) as pool:
        return list(pool.map(func, items))
