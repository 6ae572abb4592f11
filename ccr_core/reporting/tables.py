"""
Table generation utilities for CCR reporting.

Creates pandas DataFrames for display and export.
"""

from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pandas as pd

from ccr_core.exposure.aggregator import ExposureAggregator
from ccr_core.exposure.measures import Measure
from ccr_core.instruments.base import Trade


def measure_table(aggregator: ExposureAggregator, measures: Sequence["Measure | str"]) -> pd.DataFrame:
    """
    Life-of-deal values of some measures.

    Parameters
    ----------
    aggregator : ExposureAggregator
        Measures of a run
    measures : Sequence[Measure | str]
        Measures to report

    Returns
    -------
    pd.DataFrame
        Columns ``measure, tenor, value`` (tenor "None")
    """
    rows = [(Measure.parse(m).value, "None", aggregator.get_measure(m)) for m in measures]
    return pd.DataFrame(rows, columns=["measure", "tenor", "value"])


def exposure_profile_table(aggregator: ExposureAggregator, quantile: float | None = None) -> pd.DataFrame:
    """
    Exposure profiles per simulation date.

    Parameters
    ----------
    aggregator : ExposureAggregator
        Measures of a run
    quantile : float | None
        PFE / PFNE quantile (None: the aggregator default)

    Returns
    -------
    pd.DataFrame
        One row per date with time, EE, NEE, PFE, PFNE, EEE and the
        discounted profiles
    """
    data = {
        "date": aggregator.grid.labels,
        "time": aggregator.times,
        "EE": aggregator.profile(Measure.EE),
        "NEE": aggregator.profile(Measure.NEE),
        "PFE": aggregator.profile(Measure.PFE, quantile),
        "PFNE": aggregator.profile(Measure.PFNE, quantile),
        "EEE": aggregator.profile(Measure.EEE),
        "DiscountedEE": aggregator.profile(Measure.DISCOUNTED_EE),
        "DiscountedNEE": aggregator.profile(Measure.DISCOUNTED_NEE),
    }
    if aggregator.zero_exposures is not None:
        data["EE0"] = aggregator.profile(Measure.EE0)
    return pd.DataFrame(data)


def sensitivity_table(deltas: pd.DataFrame, measure: "Measure | str" = Measure.CVA) -> pd.DataFrame:
    """
    Deltas of one measure pivoted to instrument × tenor.

    Parameters
    ----------
    deltas : pd.DataFrame
        Output of a sensitivity engine
    measure : Measure | str
        Measure to show
    """
    name = Measure.parse(measure).value
    subset = deltas[deltas["measure"] == name]
    return subset.pivot_table(index="instrument", columns="tenor", values="delta", aggfunc="sum", sort=False)


def portfolio_table(trades: Sequence[Trade]) -> pd.DataFrame:
    """Trade descriptions, one row per trade."""
    return pd.DataFrame([t.to_dict() for t in trades])


def export_to_csv(df: pd.DataFrame, path: str | Path, float_format: str = "%.4f") -> None:
    """
    Export DataFrame to CSV.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame to export
    path : str | Path
        Output file path
    float_format : str
        Format string for floats
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, float_format=float_format)


def peak_exposure(aggregator: ExposureAggregator) -> tuple[float, float]:
    """(time, value) of the peak of the EE profile."""
    ee = aggregator.profile(Measure.EE)
    k = int(np.argmax(ee))
    return float(aggregator.times[k]), float(ee[k])
