"""
Tests for netting, collateral, exposure measures and aggregation.
"""

from datetime import date
from types import SimpleNamespace

import numpy as np
import pytest

from ccr_core.errors import SimulationError
from ccr_core.exposure import (
    ExposureAggregator,
    Measure,
    MeasureKind,
    MeasureRequest,
    NettingGroup,
    NettingSet,
    PathExposures,
    PathwiseAccumulator,
    VariationMargin,
    run_simulation_path,
    running_maximum,
    time_weighted_average,
    value_and_net,
    weighted_quantile,
)
from ccr_core.market import SimulationDateGrid
from ccr_core.simulation import DefaultKernels, PathSet, PathSimulator
from ccr_core.valuation import PortfolioValuationEngine


def _trade(group: str | None) -> SimpleNamespace:
    return SimpleNamespace(netting_group=group)


class TestVariationMargin:
    """Tests for collateral terms."""

    def test_threshold(self) -> None:
        vm = VariationMargin(threshold=1e6, mpr_days=0.0)
        values = np.array([[0.0, 3e6, -3e6]])
        times = np.array([0.0, 0.5, 1.0])
        np.testing.assert_allclose(vm.collateral(values, times), [[0.0, 2e6, -2e6]])
        np.testing.assert_allclose(vm.apply(values, times), [[0.0, 1e6, -1e6]])

    def test_minimum_transfer_amount(self) -> None:
        vm = VariationMargin(threshold=1e6, mta=1e5, mpr_days=0.0)
        values = np.array([[0.0, 1.05e6, 2e6]])
        times = np.array([0.0, 0.5, 1.0])
        np.testing.assert_allclose(vm.apply(values, times), [[0.0, 1.05e6, 1e6]])

    def test_collateral_never_flips_sign(self) -> None:
        """Over-collateralised positions are worth zero."""
        vm = VariationMargin(independent_amount=5e6, mpr_days=0.0)
        values = np.array([[1e6, 2e6]])
        np.testing.assert_array_equal(vm.apply(values, np.array([0.0, 1.0])), 0.0)

    def test_margin_period_of_risk_lag(self) -> None:
        vm = VariationMargin(mpr_days=182.5)
        values = np.array([[0.0, 10.0, 20.0]])
        lagged = vm.lagged_values(values, np.array([0.0, 1.0, 2.0]))
        np.testing.assert_allclose(lagged, [[0.0, 5.0, 15.0]])

    def test_invalid_terms(self) -> None:
        with pytest.raises(ValueError):
            VariationMargin(threshold=-1.0)
        with pytest.raises(ValueError):
            VariationMargin(mta=-1.0)


class TestNettingSet:
    """Tests for netting groups."""

    def test_unknown_group_counted_gross(self) -> None:
        netting = NettingSet([NettingGroup("A")])
        trades = [_trade("A"), _trade("A"), _trade(None), _trade("Z")]
        values = np.array([[[5.0, -3.0, 2.0, -4.0]]])
        positive, negative = netting.net(values, trades, np.array([0.0]))
        assert positive[0, 0] == pytest.approx(2.0 + 2.0)
        assert negative[0, 0] == pytest.approx(4.0)

    def test_sub_groups_net_together(self) -> None:
        netting = NettingSet([NettingGroup("A", sub_group="S"), NettingGroup("B", sub_group="S")])
        values = np.array([[[5.0, -3.0]]])
        positive, negative = netting.net(values, [_trade("A"), _trade("B")], np.array([0.0]))
        assert positive[0, 0] == pytest.approx(2.0)
        assert negative[0, 0] == 0.0

    def test_separate_groups_do_not_net(self) -> None:
        netting = NettingSet([NettingGroup("A"), NettingGroup("B")])
        values = np.array([[[5.0, -3.0]]])
        positive, negative = netting.net(values, [_trade("A"), _trade("B")], np.array([0.0]))
        assert positive[0, 0] == pytest.approx(5.0)
        assert negative[0, 0] == pytest.approx(3.0)

    def test_collateral_applied_per_group(self) -> None:
        vm = VariationMargin(threshold=1.0, mpr_days=0.0)
        netting = NettingSet([NettingGroup("A", collateral=vm), NettingGroup("B")])
        values = np.array([[[0.0, 0.0], [4.0, 4.0]]])
        positive, _ = netting.net(values, [_trade("A"), _trade("B")], np.array([0.0, 1.0]))
        assert positive[0, 1] == pytest.approx(1.0 + 4.0)

    def test_duplicate_group_names(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            NettingSet([NettingGroup("A"), NettingGroup("A")])

    def test_net_to_gross_ratio(self) -> None:
        netting = NettingSet([NettingGroup("A")])
        values = np.array([[[5.0, -3.0], [0.0, 0.0]]])
        ratio = netting.net_to_gross_ratio(values, [_trade("A"), _trade("A")], np.array([0.0, 1.0]))
        np.testing.assert_allclose(ratio, [0.4, 1.0])


class TestMeasures:
    """Tests for the measure catalogue and statistics."""

    def test_parse(self) -> None:
        assert Measure.parse("cva") is Measure.CVA
        assert Measure.parse("FCANoDefault") is Measure.FCA_NO_DEFAULT
        assert Measure.parse(Measure.EE) is Measure.EE
        with pytest.raises(ValueError, match="Unknown measure"):
            Measure.parse("XVA")

    def test_properties(self) -> None:
        assert Measure.CVA0.is_zero_volatility
        assert Measure.CVA0.base is Measure.CVA
        assert Measure.FVA_NO_DEFAULT.kind is MeasureKind.INTEGRATED
        assert Measure.DVA.kind is MeasureKind.INTEGRATED
        assert Measure.EE0.kind is MeasureKind.PROFILE
        assert Measure.EEE.kind is MeasureKind.PROFILE
        assert Measure.EEPE.kind is MeasureKind.AVERAGE
        assert Measure.PFNE0.is_quantile
        assert not Measure.EPE.is_quantile

    def test_request_tenor(self) -> None:
        assert MeasureRequest(Measure.CVA).tenor == "None"
        assert MeasureRequest(Measure.EE, date(2025, 1, 15)).tenor == "2025-01-15"
        with pytest.raises(ValueError):
            MeasureRequest(Measure.PFE, quantile=1.5)

    def test_weighted_quantile(self) -> None:
        values = np.array([1.0, 2.0, 3.0, 4.0])
        assert weighted_quantile(values, np.ones(4), 0.5) == 2.0
        assert weighted_quantile(values, np.ones(4), 0.95) == 4.0
        assert weighted_quantile(values, np.array([0.0, 0.0, 1.0, 1.0]), 0.5) == 3.0
        assert weighted_quantile(values, np.zeros(4), 0.5) == 0.0
        with pytest.raises(ValueError):
            weighted_quantile(values, np.ones(4), 0.0)

    def test_time_weighted_average(self) -> None:
        profile = np.array([9.0, 1.0, 3.0])
        times = np.array([0.0, 1.0, 3.0])
        assert time_weighted_average(profile, times) == pytest.approx(7.0 / 3.0)
        assert time_weighted_average(profile, times, 1) == pytest.approx(1.0)
        assert time_weighted_average(profile, times, 0) == 9.0

    def test_running_maximum(self) -> None:
        np.testing.assert_array_equal(running_maximum(np.array([1.0, 3.0, 2.0, 4.0])), [1, 3, 3, 4])


@pytest.fixture
def short_grid() -> SimulationDateGrid:
    return SimulationDateGrid.build(date(2024, 1, 15), "1Y", "6M")


@pytest.fixture
def kernels() -> DefaultKernels:
    return DefaultKernels(
        counterparty=np.array([0.0, 0.01, 0.02]),
        own=np.array([0.0, 0.005, 0.005]),
        joint_survival=np.array([1.0, 0.98, 0.96]),
        borrowing=np.array([0.0, 0.001, 0.001]),
        lending=np.array([0.0, 0.002, 0.002]),
        counterparty_lgd=0.6,
        own_lgd=0.6,
    )


def _exposures(positive: list, negative: list) -> PathExposures:
    positive_arr = np.array(positive, dtype=float)
    n, d = positive_arr.shape
    ones = np.ones((n, d))
    return PathExposures(
        path_indices=np.arange(n),
        positive=positive_arr,
        negative=np.array(negative, dtype=float),
        numeraire=np.tile([1.0, 0.9, 0.8], (n, 1)),
        rn_survival=ones.copy(),
        rn_counterparty=ones.copy(),
        rn_own=ones.copy(),
        weights=np.full(n, 1.0 / n),
    )


@pytest.fixture
def aggregator(short_grid: SimulationDateGrid, kernels: DefaultKernels) -> ExposureAggregator:
    exposures = _exposures([[0, 10, 20], [0, 30, 0]], [[0, 0, 5], [0, 0, 15]])
    zero = _exposures([[0, 15, 12]], [[0, 0, 1]])
    return ExposureAggregator(exposures, short_grid, kernels, zero)


class TestExposureAggregator:
    """Tests for measure aggregation on hand-built exposures."""

    def test_credit_adjustments(self, aggregator: ExposureAggregator) -> None:
        assert aggregator.get_measure("CVA") == pytest.approx(-0.6 * (0.9 * 20 * 0.01 + 0.8 * 10 * 0.02))
        assert aggregator.get_measure("DVA") == pytest.approx(0.6 * 0.8 * 10 * 0.005)

    def test_funding_adjustments(self, aggregator: ExposureAggregator) -> None:
        fca = -(0.9 * 20 * 0.98 * 0.001 + 0.8 * 10 * 0.96 * 0.001)
        fba = 0.8 * 10 * 0.96 * 0.002
        assert aggregator.get_measure(Measure.FCA) == pytest.approx(fca)
        assert aggregator.get_measure(Measure.FBA) == pytest.approx(fba)
        assert aggregator.get_measure(Measure.FVA) == pytest.approx(fca + fba)
        assert aggregator.get_measure("FCANoDefault") == pytest.approx(
            -(0.9 * 20 * 0.001 + 0.8 * 10 * 0.001)
        )

    def test_sign_conventions(self, aggregator: ExposureAggregator) -> None:
        assert aggregator.get_measure("CVA") <= 0.0
        assert aggregator.get_measure("FCA") <= 0.0
        assert aggregator.get_measure("DVA") >= 0.0
        assert aggregator.get_measure("FBA") >= 0.0

    def test_cumulative_to_date(
        self, aggregator: ExposureAggregator, short_grid: SimulationDateGrid
    ) -> None:
        assert aggregator.get_measure("CVA", short_grid.dates[1]) == pytest.approx(-0.6 * 0.18)
        assert aggregator.get_measure("CVA", short_grid.dates[0]) == 0.0

    def test_profiles(self, aggregator: ExposureAggregator, short_grid: SimulationDateGrid) -> None:
        np.testing.assert_allclose(aggregator.profile("EE"), [0.0, 20.0, 10.0])
        np.testing.assert_allclose(aggregator.profile("NEE"), [0.0, 0.0, 10.0])
        np.testing.assert_allclose(aggregator.profile("DiscountedEE"), [0.0, 18.0, 8.0])
        np.testing.assert_allclose(aggregator.profile("EEE"), [0.0, 20.0, 20.0])
        assert aggregator.get_measure("EE", short_grid.dates[1]) == pytest.approx(20.0)
        assert aggregator.get_measure("EE", "2024-07-15") == pytest.approx(20.0)

    def test_quantiles(self, aggregator: ExposureAggregator, short_grid: SimulationDateGrid) -> None:
        when = short_grid.dates[1]
        assert aggregator.get_measure("PFE", when) == pytest.approx(30.0)
        assert aggregator.get_measure("PFE", when, quantile=0.5) == pytest.approx(10.0)
        assert aggregator.get_measure("PFNE", short_grid.dates[2], 0.5) == pytest.approx(5.0)

    def test_averages(self, aggregator: ExposureAggregator, short_grid: SimulationDateGrid) -> None:
        dt = np.diff(short_grid.times)
        epe = (20.0 * dt[0] + 10.0 * dt[1]) / dt.sum()
        eepe = (20.0 * dt[0] + 20.0 * dt[1]) / dt.sum()
        assert aggregator.get_measure("EPE") == pytest.approx(epe)
        assert aggregator.get_measure("EEPE") == pytest.approx(eepe)
        assert aggregator.get_measure("EPE", short_grid.dates[1]) == pytest.approx(20.0)

    def test_zero_volatility_measures(self, aggregator: ExposureAggregator) -> None:
        np.testing.assert_allclose(aggregator.profile("EE0"), [0.0, 15.0, 12.0])
        expected = -0.6 * (0.9 * 15 * 0.01 + 0.8 * 12 * 0.02)
        assert aggregator.get_measure("CVA0") == pytest.approx(expected)

    def test_zero_measure_needs_zero_run(
        self, short_grid: SimulationDateGrid, kernels: DefaultKernels
    ) -> None:
        exposures = _exposures([[0, 1, 1]], [[0, 0, 0]])
        aggregator = ExposureAggregator(exposures, short_grid, kernels)
        with pytest.raises(ValueError, match="zero-volatility"):
            aggregator.get_measure("CVA0")

    def test_evaluate_rows(self, aggregator: ExposureAggregator, short_grid: SimulationDateGrid) -> None:
        rows = aggregator.evaluate(
            [MeasureRequest(Measure.CVA), MeasureRequest(Measure.EE, short_grid.dates[1])]
        )
        assert rows[0][:2] == ("CVA", "None")
        assert rows[1] == ("EE", "2024-07-15", pytest.approx(20.0))

    def test_survival_weights_in_expectation(
        self, short_grid: SimulationDateGrid, kernels: DefaultKernels
    ) -> None:
        exposures = _exposures([[0, 10, 20], [0, 30, 0]], [[0, 0, 0], [0, 0, 0]])
        exposures.rn_survival = np.array([[1.0, 1.5, 1.0], [1.0, 0.5, 1.0]])
        aggregator = ExposureAggregator(exposures, short_grid, kernels)
        assert aggregator.profile("EE")[1] == pytest.approx(0.5 * (15.0 + 15.0))


def _single(index: int) -> PathExposures:
    exposures = _exposures([[0.0, float(index), 1.0]], [[0.0, 0.0, 0.0]])
    exposures.path_indices = np.array([index])
    return exposures


class TestPathwise:
    """Tests for the streaming engine."""

    def test_accumulator_orders_slots(self) -> None:
        acc = PathwiseAccumulator(3, 3)
        for slot in (2, 0, 1):
            acc.record(slot, _single(slot))
        result = acc.result()
        np.testing.assert_array_equal(result.path_indices, [0, 1, 2])
        np.testing.assert_array_equal(result.positive[:, 1], [0.0, 1.0, 2.0])

    def test_double_record(self) -> None:
        acc = PathwiseAccumulator(2, 3)
        acc.record(0, _single(0))
        with pytest.raises(SimulationError, match="twice"):
            acc.record(0, _single(0))

    def test_missing_slots(self) -> None:
        acc = PathwiseAccumulator(2, 3)
        acc.record(1, _single(1))
        assert acc.n_filled == 1
        with pytest.raises(SimulationError, match="not recorded"):
            acc.result()

    def test_single_path_only(self) -> None:
        acc = PathwiseAccumulator(2, 3)
        with pytest.raises(ValueError):
            acc.record(0, PathExposures.concatenate([_single(0), _single(1)]))

    def test_pathwise_matches_bulk(
        self,
        simulator: PathSimulator,
        grid: SimulationDateGrid,
        trades: list,
        netting: NettingSet,
        path_set: PathSet,
    ) -> None:
        """A path streamed on its own gives the netted values of the bulk run."""
        engine = PortfolioValuationEngine(amc_training_paths=200)
        bulk = value_and_net(path_set, engine, trades, netting)
        for p in (0, 7, 399):
            rng = simulator.create_generator(grid, seed=13)
            single = run_simulation_path(simulator, grid, rng, p, 400, engine, trades, netting)
            np.testing.assert_allclose(single.positive[0], bulk.positive[p], rtol=1e-12, atol=1e-9)
            np.testing.assert_allclose(single.negative[0], bulk.negative[p], rtol=1e-12, atol=1e-9)
            np.testing.assert_allclose(single.rn_counterparty[0], bulk.rn_counterparty[p], rtol=1e-12)
            assert single.weights[0] == pytest.approx(1.0 / 400)

    def test_zero_run_ignores_ratios(
        self, trades: list, netting: NettingSet, path_set: PathSet
    ) -> None:
        engine = PortfolioValuationEngine(amc_training_paths=200)
        exposures = value_and_net(path_set, engine, trades, netting, use_radon_nikodym=False)
        np.testing.assert_array_equal(exposures.rn_counterparty, 1.0)
        np.testing.assert_array_equal(exposures.numeraire, path_set.numeraire)
