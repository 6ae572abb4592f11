"""
Reporting module for CCR results.

Provides:
- DataFrame builders for measures, exposure profiles and sensitivities
- Matplotlib plots of exposure profiles and deltas
- CSV export
"""

from ccr_core.reporting.plots import create_exposure_plot, create_sensitivity_chart
from ccr_core.reporting.tables import (
    export_to_csv,
    exposure_profile_table,
    measure_table,
    peak_exposure,
    portfolio_table,
    sensitivity_table,
)

__all__ = [
    # Plots
    "create_exposure_plot",
    "create_sensitivity_chart",
    # Tables
    "measure_table",
    "exposure_profile_table",
    "sensitivity_table",
    "portfolio_table",
    "peak_exposure",
    # Export
    "export_to_csv",
]
