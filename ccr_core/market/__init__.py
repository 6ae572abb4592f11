"""
Market objects for the CCR exposure engine.

Provides:
- Dates, tenors and the simulation date grid
- Discount, survival, FX and forward curves (risk-factor references)
- Market volatility objects and local volatility term structures
"""

from ccr_core.market.curve import DiscountCurve
from ccr_core.market.dates import SimulationDateGrid, Tenor, parse_tenors, year_fraction
from ccr_core.market.environment import MarketEnvironment
from ccr_core.market.forward import ForwardCurve
from ccr_core.market.fx import FxRate
from ccr_core.market.survival import SurvivalCurve
from ccr_core.market.volatility import (
    BgmForwardVolatilitySurface,
    CapletVolatilityCube,
    DistributionType,
    FlatVolatility,
    MarketVolatility,
    SwaptionVolatilityCube,
    VolatilityCurve,
    local_from_term,
)

__all__ = [
    "DiscountCurve",
    "SurvivalCurve",
    "FxRate",
    "ForwardCurve",
    "MarketEnvironment",
    "Tenor",
    "SimulationDateGrid",
    "parse_tenors",
    "year_fraction",
    "DistributionType",
    "VolatilityCurve",
    "local_from_term",
    "MarketVolatility",
    "FlatVolatility",
    "CapletVolatilityCube",
    "SwaptionVolatilityCube",
    "BgmForwardVolatilitySurface",
]
