"""
Fixed rate bond instrument implementation.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.instruments.base import (
    CashflowNode,
    CashflowNodesGenerator,
    InstrumentType,
    Trade,
    cashflow_nodes_pv,
)
from ccr_core.market.curve import DiscountCurve
from ccr_core.simulation.paths import MarketState


@dataclass(eq=False)
class FixedRateBond(Trade, CashflowNodesGenerator):
    """
    Bullet bond paying a fixed coupon.

    Value at time t is the discounted sum of the coupons and the
    redemption paid after t:
        V(t) = N × [Σ c × τᵢ × P_t(t, Tᵢ) + P_t(t, T_n)]

    Attributes
    ----------
    name : str
        Trade identifier
    notional : float
        Face amount
    coupon : float
        Annual coupon rate (decimal)
    maturity : float
        Redemption date in years
    discount_curve : DiscountCurve
        Discount curve of the bond currency
    payment_freq : float
        Coupon frequency in years
    long : bool
        True if we hold the bond
    netting_group : str | None
        Netting group of the trade
    """

    name: str
    notional: float
    coupon: float
    maturity: float
    discount_curve: DiscountCurve
    payment_freq: float = 1.0
    long: bool = True
    netting_group: str | None = None
    instrument_type: InstrumentType = field(default=InstrumentType.BOND, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.notional <= 0:
            raise ValueError(f"Notional must be positive, got {self.notional}")
        if self.maturity <= 0:
            raise ValueError(f"Maturity must be positive, got {self.maturity}")
        if self.payment_freq <= 0 or self.payment_freq > 1:
            raise ValueError(f"Payment frequency must be in (0, 1], got {self.payment_freq}")

    def cashflow_nodes(self) -> list[CashflowNode]:
        """Coupons and redemption, signed from our side."""
        n_payments = max(int(round(self.maturity / self.payment_freq, 9)), 1)
        dates = self.maturity - self.payment_freq * np.arange(n_payments)[::-1]
        accruals = np.diff(np.concatenate([[max(dates[0] - self.payment_freq, 0.0)], dates]))
        sign = 1.0 if self.long else -1.0
        nodes = [
            CashflowNode(t, sign * self.notional * self.coupon * tau, self.discount_curve)
            for t, tau in zip(dates, accruals)
        ]
        nodes.append(CashflowNode(self.maturity, sign * self.notional, self.discount_curve))
        return nodes

    def pv(self, state: MarketState) -> FloatArray:
        return cashflow_nodes_pv(self.cashflow_nodes(), state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.instrument_type.value,
            "name": self.name,
            "currency": self.discount_curve.currency,
            "notional": self.notional,
            "coupon": self.coupon,
            "maturity": self.maturity,
            "payment_freq": self.payment_freq,
            "long": self.long,
            "netting_group": self.netting_group,
        }
