"""Exception hierarchy for candidate fitting and MC matching.

Per-item failures (`FitError` subclasses, `StructuralInconsistency`) are caught
at the item boundary by the batch drivers; `ConfigurationError` is raised at
startup and is meant to stop the run.
"""

from __future__ import annotations
__author__ = "hfcand developers"


class HFCandError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(HFCandError, ValueError):
    """Raised when the configuration bundle is invalid or incomplete.

    Examples:
    - a prong species code without a mass in the hypothesis registry
    - an unknown fitter variant name
    - non-positive iteration limits
    """


class FitError(HFCandError):
    """Base class for failures that reject a single triplet."""


class NumericalFailure(FitError):
    """Singular or non-positive-definite covariance, or degenerate geometry."""


class UnphysicalResult(FitError):
    """Fitted vertex outside the configured acceptance."""


class StructuralInconsistency(HFCandError):
    """Corrupt simulated record: dangling index, revisited index or runaway depth."""
