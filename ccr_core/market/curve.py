"""
Discount curve implementation for risk-free discounting.

Curves are defined by continuously compounded zero rates at tenor points
(linear interpolation, flat extrapolation). They are used as risk-factor
references, so equality is identity.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ccr_core._types import FloatArray, Year
from ccr_core.clone import DeepCloneable


@dataclass(eq=False)
class DiscountCurve(DeepCloneable):
    """
    Discount curve for calculating present values.

    Attributes
    ----------
    name : str
        Curve name, unique within a market environment
    currency : str
        Currency of the curve
    tenors : FloatArray
        Tenor points in years (strictly increasing, positive)
    rates : FloatArray
        Zero rates (continuously compounded) at each tenor
    dependent_curves : list
        Curves whose fit references this curve; they are refitted when this
        curve changes unless detached

    Example
    -------
    >>> curve = DiscountCurve.flat("USD-OIS", "USD", 0.02)
    >>> df = curve.discount_factor(1.0)
    >>> print(f"1Y DF: {df:.4f}")
    1Y DF: 0.9802

    >>> curve = DiscountCurve(
    ...     "EUR-OIS", "EUR",
    ...     tenors=np.array([1.0, 2.0, 5.0]),
    ...     rates=np.array([0.02, 0.025, 0.03]),
    ... )
    """

    name: str
    currency: str
    tenors: FloatArray
    rates: FloatArray
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    bump_unit = 1e-4

    def __post_init__(self) -> None:
        """Validate curve inputs."""
        self.tenors = np.asarray(self.tenors, dtype=float)
        self.rates = np.asarray(self.rates, dtype=float)
        if len(self.tenors) != len(self.rates):
            raise ValueError(
                f"{self.name}: tenors and rates must have same length, "
                f"got {len(self.tenors)} and {len(self.rates)}"
            )
        if len(self.tenors) == 0:
            raise ValueError(f"{self.name}: curve needs at least one tenor")
        if not np.all(np.diff(self.tenors) > 0) or self.tenors[0] <= 0:
            raise ValueError(f"{self.name}: tenors must be positive and strictly increasing")

    @classmethod
    def flat(cls, name: str, currency: str, rate: float) -> "DiscountCurve":
        """Flat curve at a single zero rate."""
        return cls(name, currency, tenors=np.array([1.0]), rates=np.array([rate]))

    @property
    def parent_curves(self) -> list[Any]:
        """Curves this curve is built from (none for a zero-rate curve)."""
        return []

    def zero_rate(self, t: Year | FloatArray) -> float | FloatArray:
        """
        Zero rate to time t.

        Parameters
        ----------
        t : float | FloatArray
            Time(s) in years

        Returns
        -------
        float | FloatArray
            Interpolated zero rate, flat beyond the tenor range
        """
        return np.interp(t, self.tenors, self.rates)  # type: ignore[return-value]

    def discount_factor(
        self, t: Year | FloatArray, t_start: Year | FloatArray = 0.0
    ) -> float | FloatArray:
        """
        Calculate discount factor from t_start to t.

        Parameters
        ----------
        t : float | FloatArray
            End time(s) in years
        t_start : float | FloatArray
            Start time(s) in years (default 0)

        Returns
        -------
        float | FloatArray
            Discount factor(s) P(t_start, t) = P(0, t) / P(0, t_start)

        Notes
        -----
        For t <= t_start, returns 1.0
        """
        t_arr = np.asarray(t, dtype=float)
        s_arr = np.asarray(t_start, dtype=float)
        end = np.maximum(t_arr, s_arr)
        log_df = -self.zero_rate(end) * end + self.zero_rate(s_arr) * s_arr
        result = np.exp(log_df)
        if result.ndim == 0:
            return float(result)
        return result

    def forward_rate(self, t1: Year, t2: Year) -> float:
        """
        Calculate continuously compounded forward rate.

        Notes
        -----
        f(t1, t2) = -[ln(P(0,t2)) - ln(P(0,t1))] / (t2 - t1)
        """
        if t2 <= t1:
            raise ValueError(f"t2 ({t2}) must be greater than t1 ({t1})")
        return float(-np.log(self.discount_factor(t2, t1)) / (t2 - t1))

    def forward_zero_rates(self, t: Year, taus: FloatArray) -> FloatArray:
        """Zero rates seen at time t for maturities t + tau."""
        taus = np.asarray(taus, dtype=float)
        return -np.log(self.discount_factor(t + taus, t)) / taus

    # Quote interface used by bump-and-reprice

    @property
    def quote_labels(self) -> list[str]:
        """Labels of the bumpable quotes."""
        return [_tenor_label(t) for t in self.tenors]

    @property
    def quotes(self) -> FloatArray:
        """Copy of the zero-rate quotes."""
        return self.rates.copy()

    def set_quotes(self, values: FloatArray) -> None:
        """Replace the quotes and refit."""
        values = np.asarray(values, dtype=float)
        if values.shape != self.rates.shape:
            raise ValueError(
                f"{self.name}: unexpected change of quote count "
                f"({len(self.rates)} -> {values.size})"
            )
        self.rates = values.copy()
        self.refit()

    def refit(self) -> None:
        """Refit after a quote change and propagate to dependent curves."""
        for dependent in self.dependent_curves:
            dependent.refit()


def _tenor_label(t: float) -> str:
    """Short label for a tenor in years (0.25 -> 3M, 2.0 -> 2Y)."""
    months = t * 12.0
    if abs(months - round(months)) < 1e-9 and round(months) % 12 != 0:
        return f"{int(round(months))}M"
    if abs(t - round(t)) < 1e-9:
        return f"{int(round(t))}Y"
    return f"{t:g}Y"
