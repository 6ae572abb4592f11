"""
Path simulation of the calibrated factor model.

Provides the path simulator, stored path sets, the market states read by
trade pricers and the Gaussian-copula credit kernels.
"""

from ccr_core.simulation.credit import (
    CreditDriver,
    CreditSetup,
    DefaultKernels,
    RadonNikodymCalculator,
    bivariate_normal_cdf,
    conditional_default_probability,
    copula_loading,
)
from ccr_core.simulation.paths import (
    DeterministicMarketState,
    FactorLayout,
    MarketState,
    PathSet,
    SimulatedMarketState,
)
from ccr_core.simulation.simulator import PathSimulator

__all__ = [
    "CreditDriver",
    "CreditSetup",
    "DefaultKernels",
    "RadonNikodymCalculator",
    "bivariate_normal_cdf",
    "conditional_default_probability",
    "copula_loading",
    "DeterministicMarketState",
    "FactorLayout",
    "MarketState",
    "PathSet",
    "SimulatedMarketState",
    "PathSimulator",
]
