"""Public package exports for three-prong candidate creation and MC matching."""
__author__ = "hfcand developers"


from .config import CreatorConfig
from .creator import CandidateCreator3Prong, CreatorOutput
from .errors import (
    ConfigurationError,
    FitError,
    HFCandError,
    NumericalFailure,
    StructuralInconsistency,
    UnphysicalResult,
)
from .fitter import DCAVertexFitter, KFVertexFitter, VertexFitter, make_vertex_fitter
from .histograms import ValidationHistograms
from .mcmatch import (
    THREE_PRONG_HYPOTHESES,
    DecayHypothesis,
    DecayType,
    OriginType,
    ResonantChannel,
    match_candidates,
    match_generated,
    match_generated_particles,
    match_reconstructed,
)
from .models import (
    Candidate3Prong,
    CompositeParticle,
    LorentzVector,
    MatchResult,
    McParticle,
    McParticleTable,
    ParticleHypothesis,
    PrimaryVertex,
    TrackState,
    TrackTriplet,
)
from .pid import (
    PdgCode,
    make_kaon,
    make_pion,
    make_proton,
    particle_hypothesis_from_name,
    particle_hypothesis_from_pdg,
)

__all__ = [
    "CandidateCreator3Prong",
    "CreatorOutput",
    "CreatorConfig",
    "VertexFitter",
    "KFVertexFitter",
    "DCAVertexFitter",
    "make_vertex_fitter",
    "ValidationHistograms",
    "TrackState",
    "PrimaryVertex",
    "TrackTriplet",
    "LorentzVector",
    "ParticleHypothesis",
    "CompositeParticle",
    "Candidate3Prong",
    "McParticle",
    "McParticleTable",
    "MatchResult",
    "DecayHypothesis",
    "DecayType",
    "OriginType",
    "ResonantChannel",
    "THREE_PRONG_HYPOTHESES",
    "match_reconstructed",
    "match_generated",
    "match_candidates",
    "match_generated_particles",
    "PdgCode",
    "make_pion",
    "make_kaon",
    "make_proton",
    "particle_hypothesis_from_name",
    "particle_hypothesis_from_pdg",
    "HFCandError",
    "ConfigurationError",
    "FitError",
    "NumericalFailure",
    "UnphysicalResult",
    "StructuralInconsistency",
]
