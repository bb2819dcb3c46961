"""High-level candidate creator: vertex fits over track triplets."""

from __future__ import annotations
__author__ = "hfcand developers"

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from .config import CreatorConfig
from .errors import FitError
from .fitter import VertexFitter, make_vertex_fitter
from .histograms import ValidationHistograms
from .models import Candidate3Prong, PrimaryVertex, TrackState, TrackTriplet
from .particle import ParticleState
from .physics import impact_parameter_xy

logger = logging.getLogger(__name__)


@dataclass
class CreatorOutput:
    """Accepted candidates of one batch plus the merged validation histograms."""

    candidates: list[Candidate3Prong] = field(default_factory=list)
    histograms: ValidationHistograms | None = None
    n_rejected: int = 0


class CandidateCreator3Prong:
    """Fit every proposed triplet and flatten accepted fits into output rows."""

    def __init__(self, config: CreatorConfig | None = None, fitter: VertexFitter | None = None) -> None:
        self.config = config or CreatorConfig()
        self.fitter = fitter or make_vertex_fitter(self.config)
        self.hypotheses = self.config.prong_hypotheses()

    def process(
        self,
        collisions: Sequence[PrimaryVertex],
        triplets: Sequence[TrackTriplet],
        tracks: Sequence[TrackState],
        n_workers: int = 1,
    ) -> CreatorOutput:
        """Build candidates for all triplets.

        Workflow:
        1. Index tracks and collisions by id.
        2. Split triplets into contiguous chunks, one per worker.
        3. Fit each triplet; rejected fits are logged and skipped.
        4. Merge per-chunk candidates and histograms in input order.
        """
        tracks_by_id = {t.track_id: t for t in tracks}
        collisions_by_id = {c.collision_id: c for c in collisions}
        items = list(triplets)
        chunks = _split_chunks(items, n_workers)

        if len(chunks) <= 1:
            partials = [self._process_chunk(chunk, tracks_by_id, collisions_by_id) for chunk in chunks]
        else:
            with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
                partials = list(
                    pool.map(lambda chunk: self._process_chunk(chunk, tracks_by_id, collisions_by_id), chunks)
                )

        out = CreatorOutput(histograms=ValidationHistograms() if self.config.do_validation_plots else None)
        for partial in partials:
            out.candidates.extend(partial.candidates)
            out.n_rejected += partial.n_rejected
            if out.histograms is not None and partial.histograms is not None:
                out.histograms.merge(partial.histograms)
        logger.info(
            "Built %d three-prong candidates from %d triplets (%d rejected)",
            len(out.candidates),
            len(items),
            out.n_rejected,
        )
        return out

    def build_candidate(
        self,
        triplet: TrackTriplet,
        tracks_by_id: Mapping[int, TrackState],
        collisions_by_id: Mapping[int, PrimaryVertex],
        histograms: ValidationHistograms | None = None,
    ) -> Candidate3Prong:
        """Fit one triplet and derive its output row.

        Raises `KeyError` for unknown track or collision ids and a `FitError`
        subclass when the fit is rejected.
        """
        prongs = tuple(tracks_by_id[track_id] for track_id in triplet.prong_ids)
        pv = collisions_by_id[prongs[0].collision_id]
        bz = self.config.bz

        composite = self.fitter.fit(prongs, self.hypotheses, pv, bz)
        pv_state = ParticleState.from_primary_vertex(pv)
        impact = [
            impact_parameter_xy(ParticleState.from_track(track, hypothesis), pv_state, bz)
            for track, hypothesis in zip(prongs, self.hypotheses, strict=True)
        ]

        if histograms is not None:
            histograms.fill(composite.mass, pv.cov6[0], float(composite.covariance[0, 0]))

        p0, p1, p2 = composite.prong_momenta
        return Candidate3Prong(
            triplet_index=triplet.index,
            collision_id=pv.collision_id,
            pv_xyz=pv.position,
            sv_xyz=composite.vertex_xyz,
            momentum=composite.momentum,
            mass=composite.mass,
            mass_error=composite.mass_error,
            chi2=composite.chi2,
            ndf=composite.ndf,
            error_decay_length=composite.error_decay_length,
            error_decay_length_xy=composite.error_decay_length_xy,
            prong_momenta=(p0, p1, p2),
            impact_parameters=(impact[0][0], impact[1][0], impact[2][0]),
            impact_parameter_errors=(impact[0][1], impact[1][1], impact[2][1]),
            prong_ids=triplet.prong_ids,
            hf_flag=triplet.hf_flag,
        )

    def _process_chunk(
        self,
        chunk: Sequence[TrackTriplet],
        tracks_by_id: Mapping[int, TrackState],
        collisions_by_id: Mapping[int, PrimaryVertex],
    ) -> CreatorOutput:
        """Process one contiguous slice of triplets with its own histograms."""
        out = CreatorOutput(histograms=ValidationHistograms() if self.config.do_validation_plots else None)
        for triplet in chunk:
            try:
                out.candidates.append(
                    self.build_candidate(triplet, tracks_by_id, collisions_by_id, out.histograms)
                )
            except FitError as exc:
                out.n_rejected += 1
                logger.debug("Triplet %d rejected: %s: %s", triplet.index, type(exc).__name__, exc)
            except KeyError as exc:
                out.n_rejected += 1
                logger.warning("Triplet %d references unknown id %s", triplet.index, exc)
        return out


def _split_chunks(items: list[TrackTriplet], n_workers: int) -> list[list[TrackTriplet]]:
    """Split items into at most `n_workers` contiguous, non-empty chunks."""
    if n_workers <= 1 or len(items) <= 1:
        return [items]
    n_chunks = min(n_workers, len(items))
    size, extra = divmod(len(items), n_chunks)
    chunks: list[list[TrackTriplet]] = []
    start = 0
    for i in range(n_chunks):
        stop = start + size + (1 if i < extra else 0)
        chunks.append(items[start:stop])
        start = stop
    return chunks
