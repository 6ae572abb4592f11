"""
Configuration module for the CCR exposure engine.

Provides Pydantic-validated configuration models and YAML loading utilities
for market data, volatilities, calibration, credit, netting, portfolio and
simulation parameters.
"""

from ccr_core.config.loader import (
    create_default_scenario_config,
    load_config,
    load_simulation_config,
)
from ccr_core.config.models import (
    BermudanSwaptionConfig,
    BondConfig,
    CalibrationConfig,
    CollateralConfig,
    CreditConfig,
    DiscountCurveConfig,
    ForwardContractConfig,
    ForwardCurveConfig,
    FxForwardConfig,
    FxRateConfig,
    IRSwapConfig,
    MarketConfig,
    NettingConfig,
    NettingGroupConfig,
    PortfolioConfig,
    PrimaryVariableConfig,
    ScenarioConfig,
    SecondaryVariableConfig,
    SimulationConfig,
    SurvivalCurveConfig,
    VolatilityConfig,
)

__all__ = [
    # Models
    "DiscountCurveConfig",
    "SurvivalCurveConfig",
    "FxRateConfig",
    "ForwardCurveConfig",
    "MarketConfig",
    "VolatilityConfig",
    "PrimaryVariableConfig",
    "SecondaryVariableConfig",
    "CalibrationConfig",
    "CreditConfig",
    "CollateralConfig",
    "NettingGroupConfig",
    "NettingConfig",
    "IRSwapConfig",
    "BondConfig",
    "FxForwardConfig",
    "ForwardContractConfig",
    "BermudanSwaptionConfig",
    "PortfolioConfig",
    "SimulationConfig",
    "ScenarioConfig",
    # Loaders
    "load_config",
    "load_simulation_config",
    "create_default_scenario_config",
]
