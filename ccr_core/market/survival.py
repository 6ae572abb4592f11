"""
Survival curves for credit modeling.

Provides survival and default probabilities used in CVA, DVA and funding
adjustments. Hazard rates are piecewise constant and implied from CDS-style
spreads with the credit-triangle approximation (spread = hazard × LGD).
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ccr_core._types import FloatArray, Year
from ccr_core.clone import DeepCloneable
from ccr_core.market.curve import _tenor_label


@dataclass(eq=False)
class SurvivalCurve(DeepCloneable):
    """
    Piecewise constant hazard rate curve.

    The hazard rate λ(t) determines the instantaneous probability of default.
    Survival probability is S(t) = exp(-∫₀ᵗ λ(u) du), with λ constant on
    each interval (T_{i-1}, T_i] and flat beyond the last tenor.

    Attributes
    ----------
    name : str
        Curve name (counterparty or funding entity)
    tenors : FloatArray
        Tenor points in years
    spreads : FloatArray
        Spreads at each tenor (decimal, e.g. 0.01 for 100bps)
    recovery_rate : float
        Recovery rate in case of default (0-1)

    Example
    -------
    >>> curve = SurvivalCurve.from_cds_spread("CPTY", spread=0.012, recovery_rate=0.4)
    >>> print(f"5Y survival: {curve.survival_probability(5.0):.2%}")
    5Y survival: 90.48%
    """

    name: str
    tenors: FloatArray
    spreads: FloatArray
    recovery_rate: float = 0.4
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    bump_unit = 1e-4

    def __post_init__(self) -> None:
        """Validate inputs."""
        self.tenors = np.asarray(self.tenors, dtype=float)
        self.spreads = np.asarray(self.spreads, dtype=float)
        if len(self.tenors) != len(self.spreads) or len(self.tenors) == 0:
            raise ValueError(f"{self.name}: tenors and spreads must be non-empty and aligned")
        if not np.all(np.diff(self.tenors) > 0) or self.tenors[0] <= 0:
            raise ValueError(f"{self.name}: tenors must be positive and strictly increasing")
        if np.any(self.spreads < 0):
            raise ValueError(f"{self.name}: spreads must be non-negative")
        if not 0 <= self.recovery_rate < 1:
            raise ValueError(
                f"Recovery rate must be in [0, 1), got {self.recovery_rate}"
            )

    @classmethod
    def from_cds_spread(
        cls, name: str, spread: float, recovery_rate: float = 0.4
    ) -> "SurvivalCurve":
        """
        Create a flat curve from a single CDS spread.

        Parameters
        ----------
        name : str
            Curve name
        spread : float
            CDS spread in decimal (e.g., 0.01 for 100bps)
        recovery_rate : float
            Recovery rate assumption
        """
        return cls(name, np.array([1.0]), np.array([spread]), recovery_rate)

    @property
    def lgd(self) -> float:
        """Loss given default (1 - recovery rate)."""
        return 1.0 - self.recovery_rate

    @property
    def parent_curves(self) -> list[Any]:
        return []

    @property
    def hazard_rates(self) -> FloatArray:
        """Hazard rate on each interval: spread / LGD."""
        return self.spreads / self.lgd

    def _cumulative_hazard(self, t: FloatArray) -> FloatArray:
        lam = self.hazard_rates
        starts = np.concatenate([[0.0], self.tenors[:-1]])
        widths = self.tenors - starts
        node_h = np.concatenate([[0.0], np.cumsum(lam[:-1] * widths[:-1])])
        idx = np.searchsorted(self.tenors[:-1], t, side="left")
        return node_h[idx] + lam[idx] * (t - starts[idx])

    def survival_probability(self, t: Year | FloatArray) -> float | FloatArray:
        """
        Survival probability to time t.

        Parameters
        ----------
        t : float | FloatArray
            Time(s) in years

        Returns
        -------
        float | FloatArray
            S(t), equal to 1 for t <= 0
        """
        t_arr = np.maximum(np.asarray(t, dtype=float), 0.0)
        result = np.exp(-self._cumulative_hazard(t_arr))
        if result.ndim == 0:
            return float(result)
        return result

    def default_probability(self, t1: Year, t2: Year | None = None) -> float:
        """
        Probability of default in [t1, t2], or in [0, t1] when t2 is None.

        Notes
        -----
        PD(t1, t2) = S(t1) - S(t2)
        """
        if t2 is None:
            return 1.0 - float(self.survival_probability(t1))
        return float(self.survival_probability(t1)) - float(self.survival_probability(t2))

    def incremental_default_probabilities(self, time_grid: FloatArray) -> FloatArray:
        """
        Incremental default probabilities for each grid interval.

        Parameters
        ----------
        time_grid : FloatArray
            Time points in years, starting at the as-of time

        Returns
        -------
        FloatArray
            Shape (len(time_grid),); element 0 is zero, element i is
            S(t_{i-1}) - S(t_i)
        """
        survival_probs = self.survival_probability(np.asarray(time_grid, dtype=float))
        inc_pd = np.zeros_like(survival_probs)
        inc_pd[1:] = survival_probs[:-1] - survival_probs[1:]
        return inc_pd

    def forward_hazard_rates(self, t: Year, taus: FloatArray) -> FloatArray:
        """Average hazard rates seen at time t for horizons t + tau."""
        taus = np.asarray(taus, dtype=float)
        s_t = self.survival_probability(t)
        return -np.log(self.survival_probability(t + taus) / s_t) / taus

    # Quote interface used by bump-and-reprice

    @property
    def quote_labels(self) -> list[str]:
        return [_tenor_label(t) for t in self.tenors]

    @property
    def quotes(self) -> FloatArray:
        return self.spreads.copy()

    def set_quotes(self, values: FloatArray) -> None:
        """Replace the spread quotes and refit."""
        values = np.asarray(values, dtype=float)
        if values.shape != self.spreads.shape:
            raise ValueError(
                f"{self.name}: unexpected change of quote count "
                f"({len(self.spreads)} -> {values.size})"
            )
        self.spreads = np.maximum(values, 0.0)
        self.refit()

    def refit(self) -> None:
        for dependent in self.dependent_curves:
            dependent.refit()
