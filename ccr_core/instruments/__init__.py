"""
Trade pricers for exposure simulation.

Provides the trade contract and the reference pricers:
- Interest Rate Swaps
- Fixed Rate Bonds
- FX Forwards
- Forward contracts on equity, commodity and inflation curves
- Bermudan swaptions (least-squares American Monte Carlo)

Each trade values itself at any simulation date from a market state,
enabling exposure calculation.
"""

from ccr_core.instruments.base import (
    AmericanMonteCarloAdapter,
    CashflowNode,
    CashflowNodesGenerator,
    ExerciseEvaluator,
    ExerciseSide,
    InstrumentType,
    Trade,
    cashflow_nodes_pv,
)
from ccr_core.instruments.bond import FixedRateBond
from ccr_core.instruments.forward import ForwardContract
from ccr_core.instruments.fxforward import FxForward
from ccr_core.instruments.irs import InterestRateSwap
from ccr_core.instruments.swaption import BermudanSwaption

__all__ = [
    "Trade",
    "InstrumentType",
    "CashflowNode",
    "CashflowNodesGenerator",
    "cashflow_nodes_pv",
    "AmericanMonteCarloAdapter",
    "ExerciseEvaluator",
    "ExerciseSide",
    "InterestRateSwap",
    "FixedRateBond",
    "FxForward",
    "ForwardContract",
    "BermudanSwaption",
]
