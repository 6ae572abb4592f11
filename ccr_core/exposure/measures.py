"""
Exposure measures and their statistics.

Provides the measure catalogue and the weighted statistics used to
compute:
- EE / NEE (expected positive / negative exposure)
- PFE / PFNE (exposure quantiles)
- EPE, EEE, EEPE (time averages and running maxima)
"""

import datetime
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ccr_core._types import FloatArray, PathArray


class MeasureKind(Enum):
    """How a measure aggregates over simulation dates."""

    INTEGRATED = "integrated"
    PROFILE = "profile"
    AVERAGE = "average"


class Measure(Enum):
    """Catalogue of exposure measures (values are the report names)."""

    CVA = "CVA"
    CVA0 = "CVA0"
    DVA = "DVA"
    DVA0 = "DVA0"
    FCA = "FCA"
    FCA0 = "FCA0"
    FCA_NO_DEFAULT = "FCANoDefault"
    FBA = "FBA"
    FBA0 = "FBA0"
    FBA_NO_DEFAULT = "FBANoDefault"
    FVA = "FVA"
    FVA0 = "FVA0"
    FVA_NO_DEFAULT = "FVANoDefault"
    EE = "EE"
    EE0 = "EE0"
    DISCOUNTED_EE = "DiscountedEE"
    DISCOUNTED_EE0 = "DiscountedEE0"
    NEE = "NEE"
    NEE0 = "NEE0"
    DISCOUNTED_NEE = "DiscountedNEE"
    DISCOUNTED_NEE0 = "DiscountedNEE0"
    PFE = "PFE"
    PFE0 = "PFE0"
    PFNE = "PFNE"
    PFNE0 = "PFNE0"
    EPE = "EPE"
    EEE = "EEE"
    EEPE = "EEPE"

    @classmethod
    def parse(cls, text: "str | Measure") -> "Measure":
        """Measure from its report name (case-insensitive)."""
        if isinstance(text, Measure):
            return text
        for m in cls:
            if m.value.lower() == text.strip().lower():
                return m
        raise ValueError(f"Unknown measure {text!r}")

    @property
    def is_zero_volatility(self) -> bool:
        """True for measures read from the zero-volatility run."""
        return self.value.endswith("0")

    @property
    def base(self) -> "Measure":
        """Stochastic counterpart of a zero-volatility measure."""
        if not self.is_zero_volatility:
            return self
        return Measure(self.value[:-1])

    @property
    def kind(self) -> MeasureKind:
        base = self.base
        if base in (Measure.EPE, Measure.EEPE):
            return MeasureKind.AVERAGE
        if base.value.endswith(("VA", "CA", "BA", "NoDefault")):
            return MeasureKind.INTEGRATED
        return MeasureKind.PROFILE

    @property
    def is_quantile(self) -> bool:
        return self.base in (Measure.PFE, Measure.PFNE)


@dataclass(frozen=True)
class MeasureRequest:
    """
    One requested measure.

    Attributes
    ----------
    measure : Measure
        Measure to compute
    date : datetime.date | None
        Date of the value (None: life of deal)
    quantile : float | None
        Quantile level of PFE / PFNE (None: the aggregator default)
    """

    measure: Measure
    date: datetime.date | None = None
    quantile: float | None = None

    def __post_init__(self) -> None:
        if self.quantile is not None and not 0 < self.quantile < 1:
            raise ValueError(f"Quantile must be in (0, 1), got {self.quantile}")

    @property
    def tenor(self) -> str:
        """Report label of the date."""
        return "None" if self.date is None else self.date.isoformat()


def weighted_expectation(values: PathArray, weights: FloatArray) -> FloatArray:
    """
    Weighted expectation per date, E_w[V(t)] = Σ_p w_p V_p(t).

    Parameters
    ----------
    values : PathArray
        Values, shape (n_paths, n_dates)
    weights : FloatArray
        Path weights, shape (n_paths,)

    Returns
    -------
    FloatArray
        Expectation at each date, shape (n_dates,)
    """
    return np.asarray(weights @ values, dtype=float)


def weighted_quantile(values: FloatArray, weights: FloatArray, quantile: float) -> float:
    """
    Lower weighted quantile: smallest v with Σ_{v_p ≤ v} w_p ≥ q Σ w_p.

    Example
    -------
    >>> weighted_quantile(np.array([1.0, 2.0, 3.0, 4.0]), np.ones(4), 0.5)
    2.0
    """
    if not 0 < quantile < 1:
        raise ValueError(f"Quantile must be in (0, 1), got {quantile}")
    weights = np.maximum(np.asarray(weights, dtype=float), 0.0)
    total = float(weights.sum())
    if values.size == 0 or total <= 0.0:
        return 0.0
    order = np.argsort(values, kind="stable")
    cumulative = np.cumsum(weights[order])
    k = int(np.searchsorted(cumulative, quantile * total * (1.0 - 1e-12), side="left"))
    return float(values[order][min(k, len(values) - 1)])


def time_weighted_average(profile: FloatArray, times: FloatArray, end: int | None = None) -> float:
    """
    Step-weighted average Σ p_i Δt_i / Σ Δt_i over dates 1..end.

    Parameters
    ----------
    profile : FloatArray
        Values per date
    times : FloatArray
        Simulation times
    end : int | None
        Last date index included (None: all); index 0 returns p_0
    """
    end = len(times) - 1 if end is None else end
    if end <= 0:
        return float(profile[0])
    dt = np.diff(times[: end + 1])
    return float(np.sum(profile[1 : end + 1] * dt) / np.sum(dt))


def running_maximum(profile: FloatArray) -> FloatArray:
    """Effective profile: non-decreasing running maximum."""
    return np.maximum.accumulate(profile)
