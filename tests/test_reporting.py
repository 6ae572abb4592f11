"""
Tests for report tables, CSV export and plots.
"""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from ccr_core.exposure import ExposureAggregator, NettingSet, PathExposures, value_and_net
from ccr_core.market import SimulationDateGrid
from ccr_core.reporting import (
    create_exposure_plot,
    create_sensitivity_chart,
    export_to_csv,
    exposure_profile_table,
    measure_table,
    peak_exposure,
    portfolio_table,
    sensitivity_table,
)
from ccr_core.simulation import PathSet, PathSimulator
from ccr_core.valuation import PortfolioValuationEngine


@pytest.fixture
def aggregator(
    simulator: PathSimulator,
    grid: SimulationDateGrid,
    path_set: PathSet,
    trades: list,
    netting: NettingSet,
) -> ExposureAggregator:
    """Measures of the fixture portfolio on the stored fixture paths."""
    exposures = value_and_net(path_set, PortfolioValuationEngine(200), trades, netting)
    kernels = simulator.radon_nikodym.kernels(grid.times)
    return ExposureAggregator(exposures, grid, kernels)


@pytest.fixture
def deltas() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "measure": ["CVA", "CVA", "CVA", "DVA"],
            "instrument": ["USD-OIS", "USD-OIS", "CPTY", "USD-OIS"],
            "tenor": ["1Y", "5Y", "Parallel", "1Y"],
            "delta": [-12.5, 30.0, -80.0, 4.0],
        }
    )


class TestTables:
    """Tests for DataFrame builders."""

    def test_measure_table(self, aggregator: ExposureAggregator) -> None:
        table = measure_table(aggregator, ["cva", "DVA", "EPE"])
        assert list(table["measure"]) == ["CVA", "DVA", "EPE"]
        assert (table["tenor"] == "None").all()
        assert table["value"].iloc[0] == pytest.approx(aggregator.get_measure("CVA"))

    def test_exposure_profile_table(
        self, aggregator: ExposureAggregator, grid: SimulationDateGrid
    ) -> None:
        table = exposure_profile_table(aggregator)
        assert len(table) == len(grid)
        assert table["date"].iloc[0] == grid.dates[0].isoformat()
        assert "EE0" not in table.columns
        assert (table["EEE"] >= table["EE"] - 1e-9).all()
        np.testing.assert_allclose(table["EE"], aggregator.profile("EE"))

    def test_sensitivity_table(self, deltas: pd.DataFrame) -> None:
        pivot = sensitivity_table(deltas)
        assert pivot.loc["USD-OIS", "5Y"] == 30.0
        assert pivot.loc["CPTY", "Parallel"] == -80.0
        assert np.isnan(pivot.loc["CPTY", "1Y"])
        assert sensitivity_table(deltas, "DVA").loc["USD-OIS", "1Y"] == 4.0

    def test_portfolio_table(self, trades: list) -> None:
        table = portfolio_table(trades)
        assert list(table["name"]) == ["IRS_USD_5Y", "FXF_EURUSD_2Y", "BERM_1Y_5Y"]
        assert list(table["netting_group"]) == ["A", "B", "A"]

    def test_peak_exposure(self, aggregator: ExposureAggregator) -> None:
        t_peak, ee_peak = peak_exposure(aggregator)
        assert ee_peak == pytest.approx(aggregator.profile("EE").max())
        assert t_peak in aggregator.times

    def test_export_to_csv(self, tmp_path, deltas: pd.DataFrame) -> None:
        path = tmp_path / "out" / "deltas.csv"
        export_to_csv(deltas, path)
        loaded = pd.read_csv(path)
        assert list(loaded.columns) == list(deltas.columns)
        np.testing.assert_allclose(loaded["delta"], deltas["delta"])


class TestPlots:
    """Tests for Matplotlib figures."""

    def test_exposure_plot(self, aggregator: ExposureAggregator) -> None:
        fig = create_exposure_plot(aggregator, quantile=0.99, title="Fixture")
        ax = fig.axes[0]
        assert ax.get_title() == "Fixture"
        assert [line.get_label() for line in ax.get_lines()] == ["EE", "NEE", "PFE 99%"]
        plt.close(fig)

    def test_exposure_plot_with_zero_run(self, aggregator: ExposureAggregator) -> None:
        zero = PathExposures.concatenate([aggregator.exposures])
        with_zero = ExposureAggregator(
            aggregator.exposures, aggregator.grid, aggregator.kernels, zero
        )
        fig = create_exposure_plot(with_zero)
        assert "EE0" in [line.get_label() for line in fig.axes[0].get_lines()]
        plt.close(fig)

    def test_sensitivity_chart(self, deltas: pd.DataFrame) -> None:
        fig = create_sensitivity_chart(deltas, "CVA")
        ax = fig.axes[0]
        assert len(ax.patches) == 3
        assert ax.get_xlabel() == "ΔCVA"
        plt.close(fig)
