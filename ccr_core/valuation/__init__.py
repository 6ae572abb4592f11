"""
Portfolio valuation on simulated paths, including least-squares American
Monte Carlo for early-exercise trades.
"""

from ccr_core.valuation.amc import LeastSquaresMonteCarlo, RegressionFit
from ccr_core.valuation.engine import PortfolioValuationEngine, TradeValues

__all__ = [
    "LeastSquaresMonteCarlo",
    "RegressionFit",
    "PortfolioValuationEngine",
    "TradeValues",
]
