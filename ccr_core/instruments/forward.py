"""
Forward contract on an equity, commodity or inflation index.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.instruments.base import InstrumentType, Trade
from ccr_core.market.forward import ForwardCurve
from ccr_core.simulation.paths import MarketState


@dataclass(eq=False)
class ForwardContract(Trade):
    """
    Physically settled forward on the underlying of a forward curve.

    PV at time t (in base currency):
        V(t) = q × (F_t(T) - K) × P_t(t, T) × X(t)

    with F_t(T) the simulated forward price, P_t the discount factor of the
    curve's funding currency and X(t) its conversion into base currency.

    Attributes
    ----------
    name : str
        Trade identifier
    curve : ForwardCurve
        Forward curve of the underlying
    quantity : float
        Number of units delivered
    strike : float
        Delivery price per unit
    maturity : float
        Delivery date in years
    long : bool
        True if we buy the underlying
    netting_group : str | None
        Netting group of the trade
    """

    name: str
    curve: ForwardCurve
    quantity: float
    strike: float
    maturity: float
    long: bool = True
    netting_group: str | None = None
    instrument_type: InstrumentType = field(default=InstrumentType.FORWARD, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {self.quantity}")
        if self.maturity <= 0:
            raise ValueError(f"Maturity must be positive, got {self.maturity}")

    def pv(self, state: MarketState) -> FloatArray:
        if self.is_expired(state.t):
            return np.zeros(state.n_paths)
        sign = 1.0 if self.long else -1.0
        forward = state.forward_price(self.curve, self.maturity)
        df = state.discount_factor(self.curve.discount_curve, self.maturity)
        return sign * self.quantity * (forward - self.strike) * df * state.to_base(self.curve.currency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.instrument_type.value,
            "name": self.name,
            "underlying": self.curve.name,
            "quantity": self.quantity,
            "strike": self.strike,
            "maturity": self.maturity,
            "long": self.long,
            "netting_group": self.netting_group,
        }
