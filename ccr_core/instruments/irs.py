"""
Interest Rate Swap instrument implementation.

Provides pricing for fixed-for-floating interest rate swaps
where one leg pays a fixed rate and the other pays floating
(projected off the swap's discount curve).
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
class InterestRateSwap(Trade, CashflowNodesGenerator):
    """
    Interest Rate Swap instrument.

    A payer swap pays fixed and receives floating.
    A receiver swap receives fixed and pays floating.

    Value at time t (single-curve):
    - Fixed leg: N × K × Σ τᵢ × P_t(t, Tᵢ) over payments after t
    - Float leg: N × [P_t(t, max(T_start, t)) - P_t(t, T_n)]

    where:
        N = notional
        K = fixed rate
        τᵢ = accrual period
        P_t(t, T) = simulated discount factor

    Attributes
    ----------
    name : str
        Trade identifier
    notional : float
        Notional amount in the swap currency
    fixed_rate : float
        Fixed coupon rate (decimal, e.g., 0.02 for 2%)
    maturity : float
        Swap maturity in years
    discount_curve : DiscountCurve
        Discount and projection curve (its currency is the swap currency)
    pay_fixed : bool
        True for payer swap (pay fixed, receive float)
    payment_freq : float
        Payment frequency in years (0.5 = semi-annual)
    start : float
        Swap start date in years (default 0)
    netting_group : str | None
        Netting group of the trade

    Example
    -------
    >>> swap = InterestRateSwap(
    ...     "IRS-1",
    ...     notional=10_000_000,
    ...     fixed_rate=0.02,
    ...     maturity=5.0,
    ...     discount_curve=usd,
    ...     pay_fixed=True,
    ... )
    >>> round(swap.pv(DeterministicMarketState(env, 0.0))[0], 2)
    """

    name: str
    notional: float
    fixed_rate: float
    maturity: float
    discount_curve: DiscountCurve
    pay_fixed: bool = True
    payment_freq: float = 0.5
    start: float = 0.0
    netting_group: str | None = None
    instrument_type: InstrumentType = field(default=InstrumentType.IRS, init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate swap parameters."""
        if self.notional <= 0:
            raise ValueError(f"Notional must be positive, got {self.notional}")
        if self.maturity <= 0:
            raise ValueError(f"Maturity must be positive, got {self.maturity}")
        if self.payment_freq <= 0 or self.payment_freq > 1:
            raise ValueError(f"Payment frequency must be in (0, 1], got {self.payment_freq}")
        if self.start < 0:
            raise ValueError(f"Start date must be non-negative, got {self.start}")
        if self.start >= self.maturity:
            raise ValueError(f"Start ({self.start}) must be before maturity ({self.maturity})")

    @property
    def currency(self) -> str:
        return self.discount_curve.currency

    def get_cash_flow_dates(self) -> FloatArray:
        """
        Get payment dates for the swap.

        Returns
        -------
        FloatArray
            Array of payment dates from start to maturity
        """
        n_payments = int(round((self.maturity - self.start) / self.payment_freq, 9))
        dates = self.start + np.arange(1, n_payments + 1) * self.payment_freq
        if len(dates) == 0 or dates[-1] < self.maturity - 1e-12:
            dates = np.append(dates, self.maturity)
        return dates

    def accrual_periods(self) -> FloatArray:
        """Year fraction of every fixed-leg period."""
        return np.diff(np.concatenate([[self.start], self.get_cash_flow_dates()]))

    def cashflow_nodes(self) -> list[CashflowNode]:
        """Fixed-leg coupons, signed from our side."""
        sign = -1.0 if self.pay_fixed else 1.0
        return [
            CashflowNode(t, sign * self.notional * self.fixed_rate * tau, self.discount_curve)
            for t, tau in zip(self.get_cash_flow_dates(), self.accrual_periods())
        ]

    def _float_leg(self, state: MarketState) -> FloatArray:
        """Floating leg value in swap currency."""
        first = state.discount_factor(self.discount_curve, max(self.start, state.t))
        last = state.discount_factor(self.discount_curve, self.maturity)
        return self.notional * (first - last)

    def annuity(self, state: MarketState) -> FloatArray:
        """Σ τᵢ P_t(t, Tᵢ) over the remaining payments, in swap currency."""
        dates = self.get_cash_flow_dates()
        remaining = dates > state.t
        if not np.any(remaining):
            return np.zeros(state.n_paths)
        dfs = state.discount_factor(self.discount_curve, dates[remaining])
        return (dfs * self.accrual_periods()[remaining][None, :]).sum(axis=1)

    def swap_rate(self, state: MarketState) -> FloatArray:
        """Forward swap rate of the remaining schedule per path."""
        annuity = self.annuity(state)
        float_leg = self._float_leg(state) / self.notional
        return np.divide(float_leg, annuity, out=np.zeros_like(annuity), where=annuity > 0)

    def pv(self, state: MarketState) -> FloatArray:
        """
        Calculate swap value at the state's date.

        Returns
        -------
        FloatArray
            Value for each path in base currency (positive = in-the-money
            for us)
        """
        if self.is_expired(state.t):
            return np.zeros(state.n_paths)
        fixed = cashflow_nodes_pv(self.cashflow_nodes(), state)
        float_leg = self._float_leg(state) * state.to_base(self.currency)
        if self.pay_fixed:
            return float_leg + fixed
        return fixed - float_leg

    def par_rate(self) -> float:
        """
        Par rate on today's curve.

        Notes
        -----
        K = (P(T_start) - P(T_n)) / Σ τᵢ P(Tᵢ)
        """
        dates = self.get_cash_flow_dates()
        dfs = np.asarray(self.discount_curve.discount_factor(dates))
        annuity = float(np.sum(self.accrual_periods() * dfs))
        first = float(self.discount_curve.discount_factor(self.start))
        last = float(self.discount_curve.discount_factor(self.maturity))
        return (first - last) / annuity

    def to_dict(self) -> dict[str, Any]:
        """Convert swap to dictionary."""
        return {
            "type": self.instrument_type.value,
            "name": self.name,
            "currency": self.currency,
            "notional": self.notional,
            "fixed_rate": self.fixed_rate,
            "maturity": self.maturity,
            "pay_fixed": self.pay_fixed,
            "payment_freq": self.payment_freq,
            "start": self.start,
            "netting_group": self.netting_group,
        }
