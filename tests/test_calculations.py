"""
Tests for the calculation driver and the end-to-end scenario.
"""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from ccr_core.calculations import CCRCalculations, default_requests, exercise_dates
from ccr_core.calibration import CalibrationContext
from ccr_core.clone import deep_clone
from ccr_core.config import SimulationConfig, create_default_scenario_config
from ccr_core.exposure import Measure, MeasureKind, MeasureRequest, NettingSet
from ccr_core.market import MarketEnvironment, SimulationDateGrid
from ccr_core.scenario import build_scenario
from ccr_core.simulation import CreditSetup, DeterministicMarketState


def _settings(settings: SimulationConfig, **update) -> SimulationConfig:
    return settings.model_copy(update=update)


@pytest.fixture
def make_calc(
    market: MarketEnvironment,
    context: CalibrationContext,
    netting: NettingSet,
    credit: CreditSetup,
    settings: SimulationConfig,
    grid: SimulationDateGrid,
):
    """Factory of calculations sharing the fixture market on the 5Y grid."""

    def make(trades: list, **update) -> CCRCalculations:
        return CCRCalculations(
            market, context, trades, netting, credit, _settings(settings, **update), grid
        )

    return make


class TestHelpers:
    """Tests for grid and request helpers."""

    def test_exercise_dates(self, as_of: date, trades: list) -> None:
        assert exercise_dates(as_of, trades) == [
            date(2025, 1, 14),
            date(2026, 1, 14),
            date(2027, 1, 14),
        ]

    def test_default_grid_holds_exercise_dates(
        self,
        market: MarketEnvironment,
        context: CalibrationContext,
        trades: list,
        settings: SimulationConfig,
    ) -> None:
        calc = CCRCalculations(market, context, trades, settings=settings)
        assert date(2025, 1, 14) in calc.grid.dates
        assert date(2025, 1, 15) in calc.grid.dates
        assert calc.grid.dates[-1] == date(2029, 1, 15)

    def test_default_requests(self, grid: SimulationDateGrid) -> None:
        requests = default_requests(grid)
        life_of_deal = [r for r in requests if r.date is None]
        assert all(r.measure.kind is not MeasureKind.PROFILE for r in life_of_deal)
        assert len(life_of_deal) == 15
        assert len(requests) == 15 + 4 * len(grid)


class TestCCRCalculations:
    """Tests for the simulation driver."""

    def test_results_table(self, make_calc, trades: list, grid: SimulationDateGrid) -> None:
        calc = make_calc(trades).execute()
        assert calc.is_executed
        table = calc.results()
        assert list(table.columns) == ["measure", "tenor", "value"]
        cva = table[(table["measure"] == "CVA") & (table["tenor"] == "None")]
        assert len(cva) == 1
        assert cva["value"].iloc[0] == pytest.approx(calc.get_measure(Measure.CVA))
        assert cva["value"].iloc[0] < 0.0
        ee = table[table["measure"] == "EE"]
        assert list(ee["tenor"]) == [d.isoformat() for d in grid.dates]
        assert (ee["value"] >= 0.0).all()

    def test_custom_requests(self, make_calc, trades: list, grid: SimulationDateGrid) -> None:
        calc = make_calc(trades)
        table = calc.results([MeasureRequest(Measure.PFE, grid.dates[4], 0.99)])
        assert calc.is_executed
        assert table.iloc[0]["tenor"] == grid.dates[4].isoformat()
        assert table.iloc[0]["value"] >= 0.0

    def test_independent_of_threads_and_chunks(self, make_calc, trades: list) -> None:
        """Results do not depend on how paths are split between workers."""
        serial = make_calc(trades, threads=1, chunk_size=400).execute()
        threaded = make_calc(trades, threads=4, chunk_size=70).execute()
        np.testing.assert_array_equal(serial.exposures.positive, threaded.exposures.positive)
        np.testing.assert_array_equal(serial.exposures.negative, threaded.exposures.negative)
        pd.testing.assert_frame_equal(serial.results(), threaded.results())

    def test_seed_changes_results(self, make_calc, trades: list) -> None:
        first = make_calc(trades, seed=1).execute().get_measure(Measure.CVA)
        second = make_calc(trades, seed=2).execute().get_measure(Measure.CVA)
        assert first != second

    def test_pathwise_matches_bulk(self, make_calc, trades: list) -> None:
        bulk = make_calc(trades, threads=2).execute()
        pathwise = make_calc(trades, mode="pathwise", threads=2).execute()
        assert pathwise.path_set is None
        np.testing.assert_allclose(
            pathwise.exposures.positive, bulk.exposures.positive, rtol=1e-12, atol=1e-9
        )
        for m in ("CVA", "DVA", "FVA", "EPE"):
            assert pathwise.get_measure(m) == pytest.approx(bulk.get_measure(m), rel=1e-10)

    def test_pathwise_stored_paths(self, make_calc, trades: list) -> None:
        """Paths regenerated after a streaming run are the bulk run's paths."""
        bulk = make_calc(trades).execute()
        pathwise = make_calc(trades, mode="pathwise").execute()
        np.testing.assert_array_equal(pathwise.stored_path_set().states, bulk.path_set.states)

    def test_zero_volatility_measures(self, make_calc, trades: list) -> None:
        calc = make_calc(trades).execute()
        t0 = calc.grid.dates[0]
        assert calc.zero_exposures.n_paths == 1
        np.testing.assert_array_equal(calc.zero_exposures.rn_counterparty, 1.0)
        assert calc.get_measure("CVA0") < 0.0
        # The Bermudan has time value the deterministic path cannot see
        assert calc.get_measure("EE0", t0) <= calc.get_measure("EE", t0)
        closed_form = make_calc(trades[:2]).execute()
        assert closed_form.get_measure("EE0", t0) == pytest.approx(
            closed_form.get_measure("EE", t0), rel=1e-6
        )

    def test_zero_volatility_equals_deterministic_exposure(
        self, make_calc, trades: list, market: MarketEnvironment, netting: NettingSet
    ) -> None:
        """Zero-volatility profiles are the netted exposure of the forward values."""
        closed_form = trades[:2]
        calc = make_calc(closed_form).execute()
        times = calc.grid.times
        values = np.array(
            [
                [trade.pv(DeterministicMarketState(market, t))[0] for trade in closed_form]
                for t in times
            ]
        )[np.newaxis]
        positive, negative = netting.net(values, closed_form, times)
        np.testing.assert_allclose(calc.aggregator.profile("EE0"), positive[0], rtol=1e-6, atol=1e-6)
        np.testing.assert_allclose(
            calc.aggregator.profile("NEE0"), negative[0], rtol=1e-6, atol=1e-6
        )

    def test_marginal_repricing(self, make_calc, trades: list) -> None:
        """Adding a trade on the stored paths matches a full run of the larger portfolio."""
        full = make_calc(trades).execute()
        partial = make_calc(trades[:2]).execute()
        marginal = partial.reprice(trades)
        for m in ("CVA", "DVA", "FCA", "CVA0"):
            assert marginal.get_measure(m) == pytest.approx(full.get_measure(m), rel=1e-6)
        same = partial.reprice(trades[:2])
        assert same.get_measure("CVA") == pytest.approx(partial.get_measure("CVA"), rel=1e-10)

    def test_revalue_without_change(self, make_calc, trades: list) -> None:
        calc = make_calc(trades).execute()
        cva = calc.get_measure("CVA")
        calc.revalue()
        assert calc.get_measure("CVA") == pytest.approx(cva, rel=1e-9)

    def test_clone_reproduces_run(self, make_calc, trades: list) -> None:
        calc = make_calc(trades).execute()
        clone, _ = deep_clone(calc)
        assert not clone.is_executed
        assert clone.get_measure("CVA") == pytest.approx(calc.get_measure("CVA"), rel=1e-10)

    def test_empty_portfolio(self, make_calc) -> None:
        calc = make_calc([]).execute()
        assert calc.get_measure("CVA") == 0.0
        np.testing.assert_array_equal(calc.aggregator.profile("EE"), 0.0)


@pytest.fixture(scope="module")
def scenario_results() -> tuple[pd.DataFrame, pd.DataFrame, list[str]]:
    """Default scenario run twice from scratch."""
    scenario = build_scenario(create_default_scenario_config(5000))
    scenario.settings = scenario.settings.model_copy(update={"threads": 4})
    calc = scenario.calculations().execute()
    first = calc.results()
    rerun = build_scenario(create_default_scenario_config(5000))
    second = rerun.calculations().execute().results()
    return first, second, [d.isoformat() for d in calc.grid.dates]


class TestEndToEnd:
    """Full five-currency scenario."""

    def test_scenario_rows(self, scenario_results: tuple) -> None:
        table, _, dates = scenario_results
        cva = table[(table["measure"] == "CVA") & (table["tenor"] == "None")]
        assert len(cva) == 1
        assert cva["value"].iloc[0] < 0.0
        ee = table[table["measure"] == "EE"]
        assert list(ee["tenor"]) == dates
        assert len(dates) >= 25
        assert dates[-1] == "2036-01-15"

    def test_scenario_reproducible(self, scenario_results: tuple) -> None:
        first, second, _ = scenario_results
        pd.testing.assert_frame_equal(first, second)
