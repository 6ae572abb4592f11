"""
Forward price curves for stocks, commodities and inflation indices.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

from ccr_core._types import FloatArray, Year
from ccr_core.clone import DeepCloneable
from ccr_core.market.curve import DiscountCurve

_DEFAULT_NODES = np.array([0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 7.0, 10.0, 15.0, 20.0, 30.0])


@dataclass(eq=False)
class ForwardCurve(DeepCloneable):
    """
    Forward curve of an asset priced off a spot and a funding curve.

    F(T) = spot × exp(-carry × T) / P(T), cached at node times and
    interpolated log-linearly. The cache is rebuilt by :meth:`refit`, which
    the funding curve triggers through its dependent-curve list.

    Attributes
    ----------
    name : str
        Curve name
    spot : float
        Spot price (index level for inflation)
    discount_curve : DiscountCurve
        Funding curve of the asset currency
    carry_rate : float
        Dividend yield / convenience yield / real rate (continuously
        compounded)
    kind : str
        ``"stock"``, ``"commodity"`` or ``"inflation"``
    """

    name: str
    spot: float
    discount_curve: DiscountCurve
    carry_rate: float = 0.0
    kind: Literal["stock", "commodity", "inflation"] = "stock"
    node_times: FloatArray = field(default_factory=lambda: _DEFAULT_NODES.copy())
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    bump_unit = 0.01

    def __post_init__(self) -> None:
        if self.spot <= 0:
            raise ValueError(f"{self.name}: spot must be positive, got {self.spot}")
        self.node_times = np.asarray(self.node_times, dtype=float)
        self.discount_curve.dependent_curves.append(self)
        self.refit()

    @property
    def currency(self) -> str:
        return self.discount_curve.currency

    @property
    def parent_curves(self) -> list[Any]:
        return [self.discount_curve]

    def refit(self) -> None:
        """Rebuild cached node forwards from spot and funding curve."""
        t = self.node_times
        fwd = self.spot * np.exp(-self.carry_rate * t) / self.discount_curve.discount_factor(t)
        self._log_nodes = np.concatenate([[0.0], t])
        self._log_forwards = np.log(np.concatenate([[self.spot], fwd]))
        for dependent in self.dependent_curves:
            dependent.refit()

    def forward_price(self, t: Year | FloatArray) -> float | FloatArray:
        """Forward price for delivery at time t (flat log-forward growth beyond nodes)."""
        t_arr = np.maximum(np.asarray(t, dtype=float), 0.0)
        nodes, logs = self._log_nodes, self._log_forwards
        slope = (logs[-1] - logs[-2]) / (nodes[-1] - nodes[-2])
        inside = np.interp(t_arr, nodes, logs)
        beyond = logs[-1] + slope * (t_arr - nodes[-1])
        result = np.exp(np.where(t_arr > nodes[-1], beyond, inside))
        if result.ndim == 0:
            return float(result)
        return result

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
        self.refit()
