"""
Tests for deep cloning of calculation graphs.
"""

import numpy as np
import pytest

from ccr_core.calculations import CCRCalculations
from ccr_core.calibration import CalibrationContext, calibrate_monte_carlo_model
from ccr_core.clone import counterpart, deep_clone
from ccr_core.config import SimulationConfig
from ccr_core.exposure import NettingSet
from ccr_core.market import MarketEnvironment
from ccr_core.simulation import CreditSetup


@pytest.fixture
def calc(
    market: MarketEnvironment,
    context: CalibrationContext,
    trades: list,
    netting: NettingSet,
    credit: CreditSetup,
    settings: SimulationConfig,
) -> CCRCalculations:
    return CCRCalculations(market, context, trades, netting, credit, settings)


class TestDeepClone:
    """Tests for identity-preserving clones."""

    def test_shared_objects_stay_shared(self, calc: CCRCalculations) -> None:
        """Two trades on one curve point to one cloned curve, owned by the cloned market."""
        clone, memo = deep_clone(calc)
        usd = clone.environment.find("USD-OIS")
        assert usd is not calc.environment.find("USD-OIS")
        assert clone.trades[0].discount_curve is usd
        assert clone.trades[2].underlying.discount_curve is usd
        assert clone.trades[1].fx_rate is clone.environment.find("EURUSD")
        assert clone.context.primaries[0].reference is usd
        assert clone.credit.counterparty is clone.environment.find("CPTY")

    def test_dependent_curves_follow(self, calc: CCRCalculations) -> None:
        clone, _ = deep_clone(calc)
        usd = clone.environment.find("USD-OIS")
        spx = clone.environment.find("SPX")
        assert spx.discount_curve is usd
        assert any(c is spx for c in usd.dependent_curves)

    def test_counterpart(self, calc: CCRCalculations) -> None:
        clone, memo = deep_clone(calc)
        original = calc.environment.find("EUR-OIS")
        assert counterpart(memo, original) is clone.environment.find("EUR-OIS")
        with pytest.raises(KeyError, match="not part of the cloned graph"):
            counterpart(memo, object())

    def test_clone_is_independent(self, calc: CCRCalculations) -> None:
        """Bumping the clone leaves the original untouched."""
        clone, _ = deep_clone(calc)
        usd = clone.environment.find("USD-OIS")
        usd.set_quotes(usd.quotes + 0.01)
        np.testing.assert_allclose(calc.environment.find("USD-OIS").rates[0], 0.030)

    def test_run_state_is_reset(self, calc: CCRCalculations) -> None:
        calc.factor_loadings, calc.volatilities = calibrate_monte_carlo_model(calc.context)
        _ = calc.context.systemic_loadings
        clone, _ = deep_clone(calc)
        assert clone.factor_loadings is None
        assert clone.volatilities is None
        assert not clone.is_executed
        assert clone.context._systemic is None
        assert clone.settings == calc.settings

    def test_factor_loadings_rekeyed(self, calc: CCRCalculations) -> None:
        """A factor loading collection cloned with its market is keyed by the cloned objects."""
        fl, vc = calibrate_monte_carlo_model(calc.context)
        (env_clone, fl_clone, vc_clone), memo = deep_clone((calc.environment, fl, vc))
        usd = env_clone.find("USD-OIS")
        np.testing.assert_array_equal(fl_clone.get(usd), fl.get(calc.environment.find("USD-OIS")))
        assert len(vc_clone.get(usd)) == 4
        assert calc.environment.find("USD-OIS") not in fl_clone
