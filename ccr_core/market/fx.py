"""
FX rates with forward points implied by two discount curves.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ccr_core._types import FloatArray, Year
from ccr_core.clone import DeepCloneable
from ccr_core.market.curve import DiscountCurve


@dataclass(eq=False)
class FxRate(DeepCloneable):
    """
    Spot FX rate: units of ``to_currency`` per one unit of ``from_currency``.

    Forwards follow covered interest parity:
    F(T) = S × P_from(T) / P_to(T).

    Attributes
    ----------
    spot : float
        Spot rate
    from_curve : DiscountCurve
        Discount curve of the from (foreign) currency
    to_curve : DiscountCurve
        Discount curve of the to (domestic) currency

    Example
    -------
    >>> eur = DiscountCurve.flat("EUR-OIS", "EUR", 0.015)
    >>> usd = DiscountCurve.flat("USD-OIS", "USD", 0.02)
    >>> eurusd = FxRate("EURUSD", spot=1.10, from_curve=eur, to_curve=usd)
    >>> round(eurusd.forward(1.0), 4)
    1.1055
    """

    name: str
    spot: float
    from_curve: DiscountCurve
    to_curve: DiscountCurve
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    bump_unit = 0.01

    def __post_init__(self) -> None:
        if self.spot <= 0:
            raise ValueError(f"{self.name}: spot must be positive, got {self.spot}")
        if self.from_curve.currency == self.to_curve.currency:
            raise ValueError(f"{self.name}: from and to currencies are both {self.to_curve.currency}")

    @property
    def from_currency(self) -> str:
        return self.from_curve.currency

    @property
    def to_currency(self) -> str:
        return self.to_curve.currency

    @property
    def parent_curves(self) -> list[Any]:
        """Both discount curves must be calibrated before the FX rate."""
        return [self.from_curve, self.to_curve]

    def forward(self, t: Year | FloatArray) -> float | FloatArray:
        """Forward FX rate to time t."""
        fwd = self.spot * np.asarray(self.from_curve.discount_factor(t)) / np.asarray(
            self.to_curve.discount_factor(t)
        )
        if np.ndim(fwd) == 0:
            return float(fwd)
        return fwd

    @property
    def quote_labels(self) -> list[str]:
        return ["Spot"]

    @property
    def quotes(self) -> FloatArray:
        return np.array([self.spot])

    def set_quotes(self, values: FloatArray) -> None:
        values = np.asarray(values, dtype=float)
        if values.shape != (1,):
            raise ValueError(f"{self.name}: unexpected change of quote count")
        if values[0] <= 0:
            raise ValueError(f"{self.name}: bumped spot must stay positive")
        self.spot = float(values[0])

    def refit(self) -> None:
        pass
