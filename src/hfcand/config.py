"""Configuration bundle for the three-prong candidate creator."""

from __future__ import annotations
__author__ = "hfcand developers"

from dataclasses import dataclass

from .errors import ConfigurationError
from .models import ParticleHypothesis
from .pid import PdgCode, particle_hypothesis_from_pdg

FITTER_VARIANTS = ("kf", "dca")

# Prong slot convention of the baryon decay: baryon, opposite-sign kaon, pion.
DEFAULT_PRONG_SPECIES = (int(PdgCode.PROTON), -int(PdgCode.KAON), int(PdgCode.PION))


@dataclass(frozen=True)
class CreatorConfig:
    """Options for vertexing and validation output.

    `bz` is the homogeneous magnetic field in kG; lengths are cm, momenta GeV/c.
    `max_dz_ini`, `min_param_change`, `min_rel_chi2_change` and
    `max_iterations` are only read by the iterative `"dca"` fitter.
    """

    bz: float = 5.0
    propagate_to_pca: bool = True
    max_r: float = 200.0
    max_dz_ini: float = 4.0
    min_param_change: float = 1e-3
    min_rel_chi2_change: float = 0.9
    max_iterations: int = 20
    do_validation_plots: bool = True
    fitter: str = "kf"
    prong_species: tuple[int, int, int] = DEFAULT_PRONG_SPECIES

    def __post_init__(self) -> None:
        if self.fitter not in FITTER_VARIANTS:
            raise ConfigurationError(
                f"Unknown fitter variant '{self.fitter}'. Use one of: {', '.join(FITTER_VARIANTS)}"
            )
        if len(self.prong_species) != 3:
            raise ConfigurationError("prong_species must name exactly three species codes.")
        # Resolving every slot up front makes a missing mass fatal at startup.
        for code in self.prong_species:
            particle_hypothesis_from_pdg(code)
        if self.max_r <= 0.0:
            raise ConfigurationError("max_r must be positive.")
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1.")
        if self.min_param_change <= 0.0:
            raise ConfigurationError("min_param_change must be positive.")
        if not 0.0 < self.min_rel_chi2_change <= 1.0:
            raise ConfigurationError("min_rel_chi2_change must lie in (0, 1].")

    def prong_hypotheses(self) -> tuple[ParticleHypothesis, ParticleHypothesis, ParticleHypothesis]:
        """Mass hypotheses assigned to prong slots 0, 1 and 2."""
        h0, h1, h2 = (particle_hypothesis_from_pdg(code) for code in self.prong_species)
        return h0, h1, h2
