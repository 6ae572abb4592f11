"""
Exposure calculation module.

Provides netting set aggregation with variation margin, the exposure
measure catalogue, the aggregator computing CVA/DVA/FVA and exposure
profiles, and the streaming path-by-path engine.
"""

from ccr_core.exposure.aggregator import ExposureAggregator
from ccr_core.exposure.collateral import VariationMargin
from ccr_core.exposure.measures import (
    Measure,
    MeasureKind,
    MeasureRequest,
    running_maximum,
    time_weighted_average,
    weighted_expectation,
    weighted_quantile,
)
from ccr_core.exposure.netting import NettingGroup, NettingSet, PathExposures
from ccr_core.exposure.pathwise import PathwiseAccumulator, run_simulation_path, value_and_net

__all__ = [
    "ExposureAggregator",
    "VariationMargin",
    "Measure",
    "MeasureKind",
    "MeasureRequest",
    "running_maximum",
    "time_weighted_average",
    "weighted_expectation",
    "weighted_quantile",
    "NettingGroup",
    "NettingSet",
    "PathExposures",
    "PathwiseAccumulator",
    "run_simulation_path",
    "value_and_net",
]
