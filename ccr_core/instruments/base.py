"""
Base classes for trades.

Provides the abstract interface every trade implements for exposure
calculation, plus the two optional capabilities: decomposition into
discrete cashflows and valuation by least-squares American Monte Carlo.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from ccr_core._types import FloatArray, Year
from ccr_core.market.curve import DiscountCurve
from ccr_core.market.fx import FxRate
from ccr_core.simulation.paths import MarketState


class InstrumentType(Enum):
    """Enumeration of supported instrument types."""

    IRS = "interest_rate_swap"
    BOND = "fixed_rate_bond"
    FX_FORWARD = "fx_forward"
    FORWARD = "forward_contract"
    BERMUDAN_SWAPTION = "bermudan_swaption"


class Trade(ABC):
    """
    Abstract base class for all trades.

    Attributes
    ----------
    name : str
        Trade identifier, unique within a portfolio
    maturity : float
        Last payment time in years
    netting_group : str | None
        Netting group the trade belongs to (None: counted gross)
    instrument_type : InstrumentType
        Type of instrument for classification

    Methods
    -------
    pv(state)
        Value per path in base currency at the state's date
    cashflow_nodes()
        Optional discrete cashflow decomposition
    american_monte_carlo()
        Optional early-exercise adapter
    """

    name: str
    maturity: float
    netting_group: str | None
    instrument_type: InstrumentType

    @abstractmethod
    def pv(self, state: MarketState) -> FloatArray:
        """
        Value of the trade at the state's date.

        Parameters
        ----------
        state : MarketState
            Market at one simulation date

        Returns
        -------
        FloatArray
            Value per path in base currency (positive = asset to us),
            shape (n_paths,)
        """

    def is_expired(self, t: float) -> bool:
        """True if every payment lies at or before time t."""
        return t >= self.maturity

    def american_monte_carlo(self) -> "AmericanMonteCarloAdapter | None":
        """Early-exercise adapter (None for trades priced in closed form)."""
        return None

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """
        Convert trade to dictionary for reporting.

        Returns
        -------
        dict[str, Any]
            Dictionary representation of the trade
        """

    def __repr__(self) -> str:
        """Return string representation."""
        return f"{self.__class__.__name__}(name={self.name!r}, maturity={self.maturity:.2f}Y)"


@dataclass
class CashflowNode:
    """Fixed cashflow paid at ``time`` in the currency of ``curve``."""

    time: Year
    amount: float
    curve: DiscountCurve


class CashflowNodesGenerator(ABC):
    """Capability of trades whose value is a sum of known cashflows."""

    @abstractmethod
    def cashflow_nodes(self) -> list[CashflowNode]:
        """Cashflows of the trade, in payment order."""


def cashflow_nodes_pv(nodes: Sequence[CashflowNode], state: MarketState) -> FloatArray:
    """
    Present value at the state's date of the cashflows paid after it.

    Parameters
    ----------
    nodes : Sequence[CashflowNode]
        Cashflows (any currencies)
    state : MarketState
        Market at one simulation date

    Returns
    -------
    FloatArray
        Value per path in base currency
    """
    total = np.zeros(state.n_paths)
    by_curve: dict[int, list[CashflowNode]] = {}
    for node in nodes:
        if node.time > state.t:
            by_curve.setdefault(id(node.curve), []).append(node)
    for group in by_curve.values():
        curve = group[0].curve
        times = np.array([n.time for n in group])
        amounts = np.array([n.amount for n in group])
        dfs = state.discount_factor(curve, times)
        total += (dfs * amounts[None, :]).sum(axis=1) * state.to_base(curve.currency)
    return total


class ExerciseSide(Enum):
    """Which party holds the exercise right."""

    CALL = "call"
    PUT = "put"


@dataclass
class ExerciseEvaluator:
    """
    Exercise decision of one party.

    The call side (we hold the option) exercises when the exercise value
    exceeds both the continuation value and zero; the put side (the
    counterparty holds it) exercises when the exercise value, seen from
    our side, is below both.

    Attributes
    ----------
    side : ExerciseSide
        Holder of the right
    exercise_value : Callable[[MarketState], FloatArray]
        Value to us of exercising at the state's date, in base currency
    """

    side: ExerciseSide
    exercise_value: Callable[[MarketState], FloatArray]

    def should_exercise(self, exercise: FloatArray, continuation: FloatArray) -> FloatArray:
        """Boolean exercise decision per path."""
        if self.side is ExerciseSide.CALL:
            return (exercise > continuation) & (exercise > 0.0)
        return (exercise < continuation) & (exercise < 0.0)


class AmericanMonteCarloAdapter(ABC):
    """
    Early-exercise description consumed by least-squares Monte Carlo.

    Attributes
    ----------
    physical_settlement : bool
        After exercise the trade becomes the underlying (True) or pays the
        exercise value and terminates (False)
    """

    physical_settlement: bool = True

    @property
    @abstractmethod
    def notional(self) -> float:
        """Notional, used to scale regression targets."""

    @property
    @abstractmethod
    def discount_curves(self) -> list[DiscountCurve]:
        """Discount curves the exercise value depends on."""

    @property
    def fx_rates(self) -> list[FxRate]:
        """FX rates the exercise value depends on."""
        return []

    @property
    @abstractmethod
    def exercise_times(self) -> FloatArray:
        """Exercise times in years."""

    @property
    @abstractmethod
    def evaluator(self) -> ExerciseEvaluator:
        """Call or put exercise evaluator."""

    @abstractmethod
    def explanatory_variable(self, state: MarketState) -> FloatArray:
        """Regression variable per path."""

    @abstractmethod
    def post_exercise_value(self, state: MarketState) -> FloatArray:
        """Value after (physical) exercise per path."""
