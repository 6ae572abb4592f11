"""
Sensitivity analysis of exposure measures.

Provides bump specifications of market objects and the two sensitivity
engines (bump-and-reprice on cloned calculations and in-place factor
sensitivities on stored paths).
"""

from ccr_core.sensitivity.bump import (
    PARALLEL,
    BumpDirection,
    BumpScenario,
    BumpSpecification,
    FactorBumpSpecification,
    FactorLoadingTarget,
    detach_dependents,
    set_quotes_isolated,
)
from ccr_core.sensitivity.engine import SensitivityEngine

__all__ = [
    "PARALLEL",
    "BumpDirection",
    "BumpScenario",
    "BumpSpecification",
    "FactorBumpSpecification",
    "FactorLoadingTarget",
    "detach_dependents",
    "set_quotes_isolated",
    "SensitivityEngine",
]
