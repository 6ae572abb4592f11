"""
Plotting utilities for exposure visualization (Matplotlib).
"""

import matplotlib.pyplot as plt
import pandas as pd

from ccr_core.exposure.aggregator import ExposureAggregator
from ccr_core.exposure.measures import Measure


def create_exposure_plot(
    aggregator: ExposureAggregator,
    quantile: float | None = None,
    title: str = "Exposure Profile",
) -> plt.Figure:
    """
    Create exposure profile plot.

    Parameters
    ----------
    aggregator : ExposureAggregator
        Measures of a run
    quantile : float | None
        PFE quantile (None: the aggregator default)
    title : str
        Chart title

    Returns
    -------
    plt.Figure
        Figure with EE, NEE and PFE in millions
    """
    q = quantile if quantile is not None else aggregator.pfe_quantile
    t = aggregator.times
    fig, ax = plt.subplots(figsize=(10, 6))

    ax.plot(t, aggregator.profile(Measure.EE) / 1e6, "r-", linewidth=2, label="EE")
    ax.plot(t, aggregator.profile(Measure.NEE) / 1e6, "g-", linewidth=2, label="NEE")
    ax.plot(t, aggregator.profile(Measure.PFE, q) / 1e6, "m--", linewidth=2, label=f"PFE {q:.0%}")
    if aggregator.zero_exposures is not None:
        ax.plot(t, aggregator.profile(Measure.EE0) / 1e6, "k:", linewidth=1, label="EE0")

    ax.set_xlabel("Time (years)")
    ax.set_ylabel("Exposure ($M)")
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def create_sensitivity_chart(
    deltas: pd.DataFrame,
    measure: "Measure | str" = Measure.CVA,
    title: str = "Sensitivities",
) -> plt.Figure:
    """Horizontal bar chart of the deltas of one measure."""
    name = Measure.parse(measure).value
    subset = deltas[deltas["measure"] == name]
    labels = [f"{i} {t}" for i, t in zip(subset["instrument"], subset["tenor"])]

    fig, ax = plt.subplots(figsize=(10, max(3, 0.35 * len(labels))))
    colors = ["#FF4B4B" if v < 0 else "#00CC96" for v in subset["delta"]]
    ax.barh(labels, subset["delta"], color=colors)
    ax.axvline(0.0, color="black", linewidth=0.8)
    ax.set_xlabel(f"Δ{name}")
    ax.set_title(title)
    ax.grid(True, axis="x", alpha=0.3)

    plt.tight_layout()
    return fig
