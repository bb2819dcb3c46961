"""Validation histograms filled by the candidate creator.

Histograms are plain bin-count arrays so that per-worker partial copies can be
merged by addition at the end of a batch.
"""

from __future__ import annotations
__author__ = "hfcand developers"

from dataclasses import dataclass, field

import numpy as np


@dataclass
class Histogram1D:
    """Fixed-binning 1D histogram with under/overflow counters.

    Non-finite values go to the `invalid` counter, not to a bin.
    """

    title: str
    n_bins: int
    low: float
    high: float
    counts: np.ndarray = field(init=False, repr=False, compare=False)
    underflow: int = field(init=False, default=0)
    overflow: int = field(init=False, default=0)
    invalid: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if self.n_bins < 1 or self.high <= self.low:
            raise ValueError(f"Invalid binning for histogram '{self.title}'.")
        self.counts = np.zeros(self.n_bins, dtype=np.int64)

    @property
    def edges(self) -> np.ndarray:
        return np.linspace(self.low, self.high, self.n_bins + 1)

    @property
    def entries(self) -> int:
        return int(self.counts.sum()) + self.underflow + self.overflow + self.invalid

    def fill(self, value: float) -> None:
        if not np.isfinite(value):
            self.invalid += 1
        elif value < self.low:
            self.underflow += 1
        elif value >= self.high:
            self.overflow += 1
        else:
            idx = int(np.searchsorted(self.edges, value, side="right")) - 1
            self.counts[idx] += 1

    def merge(self, other: "Histogram1D") -> None:
        """Add the contents of a histogram with identical binning."""
        if (other.n_bins, other.low, other.high) != (self.n_bins, self.low, self.high):
            raise ValueError(f"Cannot merge histograms with different binning into '{self.title}'.")
        self.counts += other.counts
        self.underflow += other.underflow
        self.overflow += other.overflow
        self.invalid += other.invalid


@dataclass
class ValidationHistograms:
    """Invariant mass and covariance diagonal monitors for three-prong fits."""

    mass: Histogram1D = field(
        default_factory=lambda: Histogram1D("3-prong candidates;inv. mass (p K pi) (GeV/c^2)", 300, 2.1, 2.4)
    )
    cov_pv_xx: Histogram1D = field(
        default_factory=lambda: Histogram1D("XX element of cov. matrix of prim. vtx position (cm^2)", 100, 0.0, 1e-4)
    )
    cov_sv_xx: Histogram1D = field(
        default_factory=lambda: Histogram1D("XX element of cov. matrix of sec. vtx position (cm^2)", 100, 0.0, 0.2)
    )

    def fill(self, mass: float, cov_pv_xx: float, cov_sv_xx: float) -> None:
        self.mass.fill(mass)
        self.cov_pv_xx.fill(cov_pv_xx)
        self.cov_sv_xx.fill(cov_sv_xx)

    def merge(self, other: "ValidationHistograms") -> None:
        self.mass.merge(other.mass)
        self.cov_pv_xx.merge(other.cov_pv_xx)
        self.cov_sv_xx.merge(other.cov_sv_xx)
