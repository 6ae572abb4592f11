"""
Tests for the factor model and its calibration.
"""

import copy

import numpy as np
import pytest

from ccr_core.calibration import (
    CalibrationContext,
    DependencyGraph,
    PrimaryVariable,
    SecondaryVariable,
    calibrate_monte_carlo_model,
    factorize_correlation,
    try_calibrate,
    try_calibrate_discount_curve,
    try_calibrate_forward_curve,
    try_calibrate_fx_curve,
    try_calibrate_survival_curve,
    volatility_sources,
)
from ccr_core.errors import CalibrationError
from ccr_core.market import DistributionType, FlatVolatility, MarketEnvironment, VolatilityCurve
from ccr_core.model import (
    FactorLoadingCollection,
    MarketVariableType,
    VolatilityCollection,
    interpolate_factor_loadings,
)


class TestFactorize:
    """Tests for the correlation factorisation."""

    def test_full_rank_reproduces_matrix(self) -> None:
        c = np.array([[1.0, 0.5, 0.2], [0.5, 1.0, 0.3], [0.2, 0.3, 1.0]])
        b = factorize_correlation(c, 3)
        np.testing.assert_allclose(b @ b.T, c, atol=1e-12)

    def test_truncated_rows_inside_unit_ball(self) -> None:
        c = np.array([[1.0, 0.5, 0.2], [0.5, 1.0, 0.3], [0.2, 0.3, 1.0]])
        b = factorize_correlation(c, 2)
        assert b.shape == (3, 2)
        assert np.all(np.linalg.norm(b, axis=1) <= 1.0 + 1e-12)

    def test_extra_factors_are_zero(self) -> None:
        b = factorize_correlation(np.eye(2), 4)
        assert b.shape == (2, 4)
        np.testing.assert_array_equal(b[:, 2:], 0.0)

    def test_not_symmetric(self) -> None:
        with pytest.raises(CalibrationError, match="symmetric"):
            factorize_correlation(np.array([[1.0, 0.5], [0.4, 1.0]]), 2)

    def test_bad_diagonal_names_variable(self) -> None:
        with pytest.raises(CalibrationError, match="EURUSD"):
            factorize_correlation(np.array([[1.0, 0.0], [0.0, 0.9]]), 2, ["USD-OIS 5Y", "EURUSD"])

    def test_singular(self) -> None:
        with pytest.raises(CalibrationError, match="singular"):
            factorize_correlation(np.ones((2, 2)), 2)

    def test_not_positive_definite(self) -> None:
        c = np.array([[1.0, 0.9, -0.9], [0.9, 1.0, 0.9], [-0.9, 0.9, 1.0]])
        with pytest.raises(CalibrationError, match="positive definite"):
            factorize_correlation(c, 3)


class TestFactorLoadings:
    """Tests for loading and volatility collections."""

    def test_add_and_get(self, market: MarketEnvironment) -> None:
        fx = market.find("EURUSD")
        fl = FactorLoadingCollection(["F1", "F2"], ["1Y", "5Y"])
        fl.add(fx, np.array([[0.6, 0.0]]))
        assert fl.get(fx).shape == (1, 2)
        assert fx in fl
        np.testing.assert_array_equal(fl.reference_loading(market.find("CPTY")), [0.0, 0.0])

    def test_norm_above_one_rejected(self, market: MarketEnvironment) -> None:
        fl = FactorLoadingCollection(["F1", "F2"], ["1Y"])
        with pytest.raises(CalibrationError, match="EURUSD"):
            fl.add(market.find("EURUSD"), np.array([[0.9, 0.9]]))

    def test_wrong_row_count_rejected(self, market: MarketEnvironment) -> None:
        fl = FactorLoadingCollection(["F1"], ["1Y", "5Y", "10Y"])
        with pytest.raises(CalibrationError):
            fl.add(market.find("USD-OIS"), np.zeros((2, 1)))

    def test_volatility_replace_keeps_count(self, market: MarketEnvironment) -> None:
        vc = VolatilityCollection(["1Y", "5Y"])
        usd = market.find("USD-OIS")
        vc.add(usd, [VolatilityCurve.flat(0.2), VolatilityCurve.flat(0.2)])
        with pytest.raises(ValueError, match="Unexpected change of volatility count"):
            vc.replace(usd, [VolatilityCurve.flat(0.3)])

    def test_zeroed(self, market: MarketEnvironment) -> None:
        vc = VolatilityCollection(["1Y"])
        fx = market.find("EURUSD")
        vc.add(fx, [VolatilityCurve.flat(0.1)])
        assert vc.zeroed().get(fx)[0].value(1.0) == 0.0
        assert vc.get(fx)[0].value(1.0) == pytest.approx(0.1)

    def test_deepcopy_rekeys(self, market: MarketEnvironment) -> None:
        """Cloning the collection together with the market re-keys entries to the clones."""
        fx = market.find("EURUSD")
        fl = FactorLoadingCollection(["F1"], ["1Y"])
        fl.add(fx, np.array([[0.5]]))
        memo: dict = {}
        market_clone = copy.deepcopy(market, memo)
        fl_clone = copy.deepcopy(fl, memo)
        assert market_clone.find("EURUSD") in fl_clone
        assert fx not in fl_clone

    def test_interpolate_loadings(self) -> None:
        """Norms and directions are interpolated; flat outside the range."""
        loadings = np.array([[1.0, 0.0], [0.0, 0.5]])
        result = interpolate_factor_loadings([1.0, 3.0], loadings, [0.5, 2.0, 5.0])
        np.testing.assert_allclose(result[0], [1.0, 0.0])
        np.testing.assert_allclose(result[2], [0.0, 0.5])
        assert np.linalg.norm(result[1]) == pytest.approx(0.75)
        np.testing.assert_allclose(result[1] / np.linalg.norm(result[1]), [np.sqrt(0.5), np.sqrt(0.5)])


class TestCalibration:
    """Tests for batch and incremental calibration."""

    def test_batch_shapes(self, market: MarketEnvironment, context: CalibrationContext) -> None:
        fl, vc = calibrate_monte_carlo_model(context)
        assert fl.get(market.find("USD-OIS")).shape == (4, 3)
        assert fl.get(market.find("EURUSD")).shape == (1, 3)
        assert len(vc.get(market.find("USD-OIS"))) == 4
        assert len(fl) == 5

    def test_spot_loadings_match_factorisation(
        self, market: MarketEnvironment, context: CalibrationContext
    ) -> None:
        fl, _ = calibrate_monte_carlo_model(context)
        np.testing.assert_allclose(fl.get(market.find("EURUSD"))[0], context.systemic_loadings[2])

    def test_secondary_uses_betas(self, market: MarketEnvironment, context: CalibrationContext) -> None:
        fl, _ = calibrate_monte_carlo_model(context)
        cpty = fl.get(market.find("CPTY"))
        np.testing.assert_allclose(cpty, np.tile([0.3, 0.2, 0.1], (4, 1)))
        np.testing.assert_allclose(fl.reference_loading(market.find("CPTY")), [0.3, 0.2, 0.1])

    @pytest.mark.parametrize("parallel", [False, True])
    def test_incremental_matches_batch(
        self, market: MarketEnvironment, context: CalibrationContext, parallel: bool
    ) -> None:
        """Calibrating curve by curve in any order reproduces the batch result."""
        batch_fl, batch_vc = calibrate_monte_carlo_model(context, parallel=parallel, max_workers=4)
        fl = FactorLoadingCollection(context.factor_names, context.tenors)
        vc = VolatilityCollection(context.tenors)
        find = market.find
        assert try_calibrate_forward_curve(context, find("SPX"), fl, vc)
        assert try_calibrate_survival_curve(context, find("CPTY"), fl, vc)
        assert try_calibrate_fx_curve(context, find("EURUSD"), fl, vc)
        assert try_calibrate_discount_curve(context, find("EUR-OIS"), fl, vc)
        assert try_calibrate(context, find("USD-OIS"), fl, vc)
        for reference, loadings in batch_fl.items():
            np.testing.assert_array_equal(fl.get(reference), loadings)
            for a, b in zip(vc.get(reference), batch_vc.get(reference)):
                np.testing.assert_array_equal(a.values, b.values)

    def test_unknown_reference_is_skipped(
        self, market: MarketEnvironment, context: CalibrationContext
    ) -> None:
        fl = FactorLoadingCollection(context.factor_names, context.tenors)
        vc = VolatilityCollection(context.tenors)
        assert not try_calibrate_survival_curve(context, market.find("OWN"), fl, vc)
        assert len(fl) == 0

    def test_wrong_type_rejected(self, market: MarketEnvironment, context: CalibrationContext) -> None:
        fl = FactorLoadingCollection(context.factor_names, context.tenors)
        vc = VolatilityCollection(context.tenors)
        with pytest.raises(TypeError):
            try_calibrate_fx_curve(context, market.find("USD-OIS"), fl, vc)

    def test_normal_vol_for_fx_rejected(self, market: MarketEnvironment) -> None:
        fx = market.find("EURUSD")
        normal = FlatVolatility.constant("FX-N", 0.01, DistributionType.NORMAL)
        variable = PrimaryVariable(fx, MarketVariableType.SPOT_FX, normal)
        context = CalibrationContext(market.as_of, ["1Y"], ["F1"], [variable], np.eye(1))
        with pytest.raises(CalibrationError, match="EURUSD"):
            calibrate_monte_carlo_model(context)

    def test_requested_distribution_must_match(self, market: MarketEnvironment) -> None:
        usd = market.find("USD-OIS")
        variable = PrimaryVariable(
            usd,
            MarketVariableType.SWAP_RATE,
            market.find("USD-SWVOL"),
            "5Y",
            distribution=DistributionType.NORMAL,
        )
        context = CalibrationContext(market.as_of, ["1Y", "5Y"], ["F1"], [variable], np.eye(1))
        with pytest.raises(CalibrationError, match="USD-OIS 5Y"):
            calibrate_monte_carlo_model(context)

    def test_variable_validation(self, market: MarketEnvironment) -> None:
        with pytest.raises(CalibrationError, match="reference tenor"):
            PrimaryVariable(market.find("USD-OIS"), MarketVariableType.SWAP_RATE)
        with pytest.raises(CalibrationError, match="DiscountCurve"):
            PrimaryVariable(market.find("EURUSD"), MarketVariableType.SWAP_RATE, tenor="5Y")
        with pytest.raises(CalibrationError, match="below 1"):
            SecondaryVariable(market.find("CPTY"), np.array([0.8, 0.8]))

    def test_correlation_size_checked(self, market: MarketEnvironment) -> None:
        variable = PrimaryVariable(market.find("EURUSD"), MarketVariableType.SPOT_FX)
        with pytest.raises(CalibrationError, match="expected"):
            CalibrationContext(market.as_of, ["1Y"], ["F1"], [variable], np.eye(2))

    def test_no_volatility_gives_zero_vol(self, market: MarketEnvironment) -> None:
        variable = PrimaryVariable(market.find("EURUSD"), MarketVariableType.SPOT_FX)
        context = CalibrationContext(market.as_of, ["1Y"], ["F1"], [variable], np.eye(1))
        _, vc = calibrate_monte_carlo_model(context)
        assert vc.get(market.find("EURUSD"))[0].value(2.0) == 0.0

    def test_volatility_sources(self, market: MarketEnvironment, context: CalibrationContext) -> None:
        usd_vol = market.find("USD-SWVOL")
        assert volatility_sources(context, market.find("USD-OIS")) == [usd_vol] * 4
        assert volatility_sources(context, market.find("EURUSD")) == [market.find("EURUSD-VOL")]
        assert volatility_sources(context, market.find("OWN")) == []

    def test_loading_override_replaces_calibration(
        self, market: MarketEnvironment, context: CalibrationContext
    ) -> None:
        cpty = market.find("CPTY")
        shifted = np.tile([0.35, 0.15, 0.1], (4, 1))
        context.override_loadings(cpty, shifted)
        fl, _ = calibrate_monte_carlo_model(context)
        np.testing.assert_array_equal(fl.get(cpty), shifted)
        # Other references keep their calibrated loadings
        np.testing.assert_allclose(fl.get(market.find("EURUSD"))[0], context.systemic_loadings[2])
        context.override_loadings(cpty, None)
        assert context.loading_override(cpty) is None
        fl, _ = calibrate_monte_carlo_model(context)
        np.testing.assert_allclose(fl.get(cpty), np.tile([0.3, 0.2, 0.1], (4, 1)))

    def test_loading_override_shape_checked(
        self, market: MarketEnvironment, context: CalibrationContext
    ) -> None:
        context.override_loadings(market.find("EURUSD"), np.zeros((4, 3)))
        with pytest.raises(CalibrationError, match="loading override"):
            calibrate_monte_carlo_model(context)

    def test_loading_override_follows_clone(
        self, market: MarketEnvironment, context: CalibrationContext
    ) -> None:
        cpty = market.find("CPTY")
        context.override_loadings(cpty, np.tile([0.1, 0.1, 0.1], (4, 1)))
        clone = copy.deepcopy(context)
        cloned_cpty = clone.secondaries[0].reference
        assert cloned_cpty is not cpty
        np.testing.assert_array_equal(clone.loading_override(cloned_cpty), 0.1)
        assert clone.loading_override(cpty) is None


class TestDependencyGraph:
    """Tests for dependency ordering."""

    def test_parents_first(self, market: MarketEnvironment) -> None:
        fx, usd, eur = market.find("EURUSD"), market.find("USD-OIS"), market.find("EUR-OIS")
        graph = DependencyGraph([fx, usd, eur], lambda c: c.parent_curves)
        assert [c.name for c in graph.order] == ["USD-OIS", "EUR-OIS", "EURUSD"]
        assert graph.parents_of(fx) == [usd, eur]

    def test_parallel_visits_parents_first(self, market: MarketEnvironment) -> None:
        objects = [market.find(n) for n in ("SPX", "EURUSD", "USD-OIS", "EUR-OIS")]
        graph = DependencyGraph(objects, lambda c: c.parent_curves)
        seen: list[str] = []
        graph.parallel_for_each(lambda c: seen.append(c.name), max_workers=4)
        assert sorted(seen) == sorted(o.name for o in objects)
        assert seen.index("USD-OIS") < seen.index("SPX")
        assert seen.index("EUR-OIS") < seen.index("EURUSD")

    def test_cycle_detected(self) -> None:
        class Node:
            def __init__(self, name: str) -> None:
                self.name = name
                self.parents: list = []

        a, b = Node("a"), Node("b")
        a.parents, b.parents = [b], [a]
        with pytest.raises(ValueError, match="cycle"):
            DependencyGraph([a, b], lambda n: n.parents)

    def test_parallel_propagates_errors(self, market: MarketEnvironment) -> None:
        graph = DependencyGraph([market.find("USD-OIS")], lambda c: c.parent_curves)

        def fail(_: object) -> None:
            raise CalibrationError("boom", variable="USD-OIS")

        with pytest.raises(CalibrationError, match="boom"):
            graph.parallel_for_each(fail)
