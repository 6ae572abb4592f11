"""
CCR Exposure Engine - Core Package.

Counterparty credit risk exposure measures (CVA, DVA, FVA, EE, PFE, ...)
for derivative portfolios under a joint multi-factor simulation of rates,
credit spreads, FX rates and forwards, with least-squares American Monte
Carlo valuation and two sensitivity engines.

Example
-------
>>> from ccr_core import build_scenario, create_default_scenario_config
>>> scenario = build_scenario(create_default_scenario_config(n_paths=5000))
>>> calc = scenario.calculations().execute()
>>> calc.get_measure("CVA")
"""

__version__ = "1.0.0"

# Core types
from ccr_core._types import FloatArray, IntArray, PathArray, StateArray

# Errors
from ccr_core.errors import CalibrationError, CCRError, RegressionError, SimulationError

# Configuration
from ccr_core.config import (
    ScenarioConfig,
    SimulationConfig,
    create_default_scenario_config,
    load_config,
)

# Market
from ccr_core.market import (
    DiscountCurve,
    ForwardCurve,
    FxRate,
    MarketEnvironment,
    SimulationDateGrid,
    SurvivalCurve,
)

# Model and calibration
from ccr_core.calibration import CalibrationContext, calibrate_monte_carlo_model
from ccr_core.model import FactorLoadingCollection, MarketVariableType, VolatilityCollection
from ccr_core.rng import MultiStreamRandomGenerator

# Simulation
from ccr_core.simulation import CreditSetup, PathSet, PathSimulator

# Instruments and valuation
from ccr_core.instruments import (
    BermudanSwaption,
    FixedRateBond,
    ForwardContract,
    FxForward,
    InterestRateSwap,
    Trade,
)
from ccr_core.valuation import PortfolioValuationEngine

# Exposure
from ccr_core.exposure import ExposureAggregator, Measure, MeasureRequest, NettingGroup, NettingSet

# Calculations and sensitivities
from ccr_core.calculations import CCRCalculations
from ccr_core.scenario import Scenario, build_scenario, load_scenario
from ccr_core.sensitivity import (
    BumpDirection,
    BumpSpecification,
    FactorBumpSpecification,
    FactorLoadingTarget,
    SensitivityEngine,
)

__all__ = [
    # Version
    "__version__",
    # Types
    "FloatArray",
    "IntArray",
    "PathArray",
    "StateArray",
    # Errors
    "CCRError",
    "CalibrationError",
    "RegressionError",
    "SimulationError",
    # Config
    "ScenarioConfig",
    "SimulationConfig",
    "create_default_scenario_config",
    "load_config",
    # Market
    "DiscountCurve",
    "SurvivalCurve",
    "FxRate",
    "ForwardCurve",
    "MarketEnvironment",
    "SimulationDateGrid",
    # Model
    "CalibrationContext",
    "calibrate_monte_carlo_model",
    "FactorLoadingCollection",
    "VolatilityCollection",
    "MarketVariableType",
    "MultiStreamRandomGenerator",
    # Simulation
    "CreditSetup",
    "PathSet",
    "PathSimulator",
    # Instruments
    "Trade",
    "InterestRateSwap",
    "FixedRateBond",
    "FxForward",
    "ForwardContract",
    "BermudanSwaption",
    "PortfolioValuationEngine",
    # Exposure
    "ExposureAggregator",
    "Measure",
    "MeasureRequest",
    "NettingGroup",
    "NettingSet",
    # Calculations
    "CCRCalculations",
    "Scenario",
    "build_scenario",
    "load_scenario",
    "BumpDirection",
    "BumpSpecification",
    "FactorBumpSpecification",
    "FactorLoadingTarget",
    "SensitivityEngine",
]
