"""Particle species codes and mass-hypothesis helpers.

Species codes follow the PDG Monte Carlo numbering scheme: the sign
distinguishes particle from antiparticle.
"""

from __future__ import annotations
__author__ = "hfcand developers"

from enum import IntEnum

from particle import pdgid

from .errors import ConfigurationError
from .models import ParticleHypothesis


class PdgCode(IntEnum):
    """Species codes used by the three-prong hypotheses and sub-channels."""

    BOTTOM_QUARK = 5
    PION = 211
    KAON = 321
    KSTAR0 = 313
    PROTON = 2212
    DELTA_PLUSPLUS = 2224
    LAMBDA_1520 = 3124
    DPLUS = 411
    LAMBDA_C = 4122
    XI_C = 4232


_PION = ParticleHypothesis(name="pi", mass=0.13957039, pdg_id=PdgCode.PION)
_KAON = ParticleHypothesis(name="K", mass=0.493677, pdg_id=PdgCode.KAON)
_PROTON = ParticleHypothesis(name="p", mass=0.93827208816, pdg_id=PdgCode.PROTON)

_NAME_TO_HYPOTHESIS: dict[str, ParticleHypothesis] = {
    "pi": _PION,
    "pion": _PION,
    "k": _KAON,
    "kaon": _KAON,
    "p": _PROTON,
    "proton": _PROTON,
}

_PDG_TO_HYPOTHESIS: dict[int, ParticleHypothesis] = {
    PdgCode.PION: _PION,
    PdgCode.KAON: _KAON,
    PdgCode.PROTON: _PROTON,
}


def make_pion() -> ParticleHypothesis:
    """Return the standard charged-pion mass hypothesis."""
    return _PION


def make_kaon() -> ParticleHypothesis:
    """Return the standard charged-kaon mass hypothesis."""
    return _KAON


def make_proton() -> ParticleHypothesis:
    """Return the proton mass hypothesis."""
    return _PROTON


def particle_hypothesis_from_name(name: str) -> ParticleHypothesis:
    """Resolve a short particle name (e.g. `pi`, `kaon`) into a hypothesis."""
    key = name.strip().lower()
    try:
        return _NAME_TO_HYPOTHESIS[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_HYPOTHESIS))
        raise ConfigurationError(
            f"Unknown particle hypothesis name '{name}'. Supported names: {supported}"
        ) from exc


def particle_hypothesis_from_pdg(pdg_code: int) -> ParticleHypothesis:
    """Resolve a signed species code into its mass hypothesis.

    The sign only encodes the charge convention of the prong slot, so the
    lookup uses the absolute code.
    """
    try:
        return _PDG_TO_HYPOTHESIS[abs(int(pdg_code))]
    except KeyError as exc:
        supported = ", ".join(str(int(code)) for code in sorted(_PDG_TO_HYPOTHESIS))
        raise ConfigurationError(
            f"No mass hypothesis for species code {pdg_code}. Supported codes: {supported}"
        ) from exc


def is_bottom_flavour(pdg_code: int) -> bool:
    """True for the b quark and for hadrons with b valence content.

    `pdgid.has_bottom` is False for quarks themselves and for nuclei codes.
    """
    code = int(pdg_code)
    if abs(code) == PdgCode.BOTTOM_QUARK:
        return True
    return bool(pdgid.has_bottom(code))
