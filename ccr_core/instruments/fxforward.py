"""
FX Forward instrument implementation.

Provides pricing for foreign exchange forward contracts
where currencies are exchanged at a pre-agreed rate on a future date.
"""

from dataclasses import dataclass, field
from typing import Any

from ccr_core._types import FloatArray
from ccr_core.instruments.base import (
    CashflowNode,
    CashflowNodesGenerator,
    InstrumentType,
    Trade,
    cashflow_nodes_pv,
)
from ccr_core.market.fx import FxRate
from ccr_core.simulation.paths import MarketState


@dataclass(eq=False)
class FxForward(Trade, CashflowNodesGenerator):
    """
    FX Forward contract instrument.

    An FX Forward is an agreement to exchange notional amounts of two
    currencies at a predetermined rate (strike) on a future date.

    PV at time t (in base currency):
        V(t) = N_f × X_f(t) × P_f(t,T) - K × N_f × X_d(t) × P_d(t,T)

    where:
        N_f = notional in foreign currency
        K = forward strike (domestic per foreign)
        P_d, P_f = simulated domestic and foreign discount factors
        X_f, X_d = simulated conversion of each currency into base

    Attributes
    ----------
    name : str
        Trade identifier
    notional_foreign : float
        Notional in foreign currency
    strike : float
        Forward strike rate (domestic per foreign)
    maturity : float
        Settlement date in years
    fx_rate : FxRate
        Rate quoting the foreign currency (``from``) in the domestic one (``to``)
    buy_foreign : bool
        True if we're buying foreign currency (receiving foreign, paying domestic)
    netting_group : str | None
        Netting group of the trade

    Example
    -------
    >>> fxf = FxForward(
    ...     "FXF-1",
    ...     notional_foreign=1_000_000,  # 1M EUR
    ...     strike=1.10,                  # 1.10 USD/EUR
    ...     maturity=1.0,
    ...     fx_rate=eurusd,
    ...     buy_foreign=True,             # We buy EUR, sell USD
    ... )
    """

    name: str
    notional_foreign: float
    strike: float
    maturity: float
    fx_rate: FxRate
    buy_foreign: bool = True
    netting_group: str | None = None
    instrument_type: InstrumentType = field(
        default=InstrumentType.FX_FORWARD, init=False, repr=False
    )

    def __post_init__(self) -> None:
        """Validate forward parameters."""
        if self.notional_foreign <= 0:
            raise ValueError(
                f"Foreign notional must be positive, got {self.notional_foreign}"
            )
        if self.strike <= 0:
            raise ValueError(f"Strike must be positive, got {self.strike}")
        if self.maturity <= 0:
            raise ValueError(f"Maturity must be positive, got {self.maturity}")

    @property
    def notional_domestic(self) -> float:
        """Domestic currency notional at strike."""
        return self.notional_foreign * self.strike

    def cashflow_nodes(self) -> list[CashflowNode]:
        """The two settlement flows, signed from our side."""
        sign = 1.0 if self.buy_foreign else -1.0
        return [
            CashflowNode(self.maturity, sign * self.notional_foreign, self.fx_rate.from_curve),
            CashflowNode(self.maturity, -sign * self.notional_domestic, self.fx_rate.to_curve),
        ]

    def pv(self, state: MarketState) -> FloatArray:
        """
        Calculate forward value at the state's date.

        Returns
        -------
        FloatArray
            Value in base currency for each path
        """
        return cashflow_nodes_pv(self.cashflow_nodes(), state)

    def fair_forward_rate(self) -> float:
        """
        Calculate fair (at-the-money) forward rate on today's curves.

        Returns
        -------
        float
            F = X_0 × P_f(T) / P_d(T)
        """
        return float(self.fx_rate.forward(self.maturity))

    def to_dict(self) -> dict[str, Any]:
        """Convert FX forward to dictionary."""
        return {
            "type": self.instrument_type.value,
            "name": self.name,
            "pair": self.fx_rate.name,
            "notional_foreign": self.notional_foreign,
            "strike": self.strike,
            "maturity": self.maturity,
            "buy_foreign": self.buy_foreign,
            "netting_group": self.netting_group,
        }
