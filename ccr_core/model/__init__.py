"""
Factor model of the joint market simulation.

Provides factor loading and volatility collections keyed by risk-factor
reference and the loading interpolation used by calibration.
"""

from ccr_core.model.factors import (
    FactorLoadingCollection,
    MarketVariableType,
    VolatilityCollection,
    interpolate_factor_loadings,
)

__all__ = [
    "FactorLoadingCollection",
    "VolatilityCollection",
    "MarketVariableType",
    "interpolate_factor_loadings",
]
