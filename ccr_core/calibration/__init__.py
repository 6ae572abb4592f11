"""
Calibration of the factor model.

Provides the calibration context, batch and incremental calibration, and
the dependency graph used to order (and parallelise) curve calibration.
"""

from ccr_core.calibration.context import (
    CalibrationContext,
    PrimaryVariable,
    SecondaryVariable,
    factorize_correlation,
)
from ccr_core.calibration.engine import (
    calibrate_monte_carlo_model,
    calibrate_reference,
    try_calibrate,
    try_calibrate_discount_curve,
    try_calibrate_forward_curve,
    try_calibrate_fx_curve,
    try_calibrate_survival_curve,
    volatility_sources,
)
from ccr_core.calibration.graph import DependencyGraph

__all__ = [
    "CalibrationContext",
    "PrimaryVariable",
    "SecondaryVariable",
    "factorize_correlation",
    "calibrate_monte_carlo_model",
    "calibrate_reference",
    "try_calibrate",
    "try_calibrate_discount_curve",
    "try_calibrate_survival_curve",
    "try_calibrate_fx_curve",
    "try_calibrate_forward_curve",
    "volatility_sources",
    "DependencyGraph",
]
