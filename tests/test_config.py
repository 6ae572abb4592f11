"""
Tests for configuration models, YAML loading and scenario construction.
"""

from pathlib import Path

import numpy as np
import pytest
import yaml
from pydantic import ValidationError

from ccr_core.config import (
    CalibrationConfig,
    CollateralConfig,
    DiscountCurveConfig,
    FxRateConfig,
    MarketConfig,
    NettingConfig,
    NettingGroupConfig,
    IRSwapConfig,
    PortfolioConfig,
    PrimaryVariableConfig,
    SecondaryVariableConfig,
    SimulationConfig,
    VolatilityConfig,
    create_default_scenario_config,
    load_config,
    load_simulation_config,
)
from ccr_core.instruments import BermudanSwaption, FxForward, InterestRateSwap
from ccr_core.market import DistributionType, FlatVolatility, SwaptionVolatilityCube
from ccr_core.scenario import build_scenario, build_volatility, load_scenario
from ccr_core.simulation import DeterministicMarketState

EXAMPLE = Path(__file__).resolve().parent.parent / "examples" / "scenario.yaml"


class TestModels:
    """Tests for pydantic validators."""

    def test_discount_curve_needs_rates(self) -> None:
        DiscountCurveConfig(name="USD-OIS", currency="USD", rate=0.03)
        with pytest.raises(ValidationError, match="give either"):
            DiscountCurveConfig(name="USD-OIS", currency="USD")
        with pytest.raises(ValidationError, match="same length"):
            DiscountCurveConfig(name="USD-OIS", currency="USD", tenors=[1.0, 2.0], rates=[0.03])

    def test_market_references(self) -> None:
        usd = DiscountCurveConfig(name="USD-OIS", currency="USD", rate=0.03)
        with pytest.raises(ValidationError, match="unknown discount curve"):
            MarketConfig(
                discount_curves=[usd],
                fx_rates=[
                    FxRateConfig(name="EURUSD", spot=1.1, from_curve="EUR-OIS", to_curve="USD-OIS")
                ],
            )
        with pytest.raises(ValidationError, match="base currency"):
            MarketConfig(base_currency="EUR", discount_curves=[usd])
        with pytest.raises(ValidationError, match="Duplicate"):
            MarketConfig(discount_curves=[usd, usd])

    def test_volatility_axes(self) -> None:
        with pytest.raises(ValidationError, match="needs"):
            VolatilityConfig(name="V", kind="swaption_cube", expiries=[1.0], vols=[[0.2]])
        with pytest.raises(ValidationError, match="non-negative"):
            VolatilityConfig(name="V", times=[1.0], vols=[-0.1])

    def test_primary_tenor_required(self) -> None:
        with pytest.raises(ValidationError, match="reference tenor"):
            PrimaryVariableConfig(reference="USD-OIS", type="SwapRate")
        PrimaryVariableConfig(reference="EURUSD", type="SpotFx")

    def test_secondary_beta_norm(self) -> None:
        with pytest.raises(ValidationError, match="below 1"):
            SecondaryVariableConfig(reference="CPTY", betas=[0.8, 0.6])

    def test_calibration_correlation(self) -> None:
        primaries = [
            PrimaryVariableConfig(reference="USD-OIS", type="SwapRate", tenor="5Y"),
            PrimaryVariableConfig(reference="EURUSD", type="SpotFx"),
        ]
        base = {"tenors": ["5Y"], "factors": ["F1", "F2"], "primaries": primaries}
        CalibrationConfig(correlation=[[1.0, 0.5], [0.5, 1.0]], **base)
        with pytest.raises(ValidationError, match="expected"):
            CalibrationConfig(correlation=[[1.0]], **base)
        with pytest.raises(ValidationError, match="symmetric"):
            CalibrationConfig(correlation=[[1.0, 0.5], [0.4, 1.0]], **base)
        with pytest.raises(ValidationError, match="unit diagonal"):
            CalibrationConfig(correlation=[[2.0, 0.5], [0.5, 1.0]], **base)
        with pytest.raises(ValidationError, match="betas"):
            CalibrationConfig(
                correlation=[[1.0, 0.5], [0.5, 1.0]],
                secondaries=[SecondaryVariableConfig(reference="CPTY", betas=[0.3])],
                **base,
            )

    def test_collateral_terms(self) -> None:
        assert CollateralConfig().mpr_days == 10
        with pytest.raises(ValidationError, match="cannot exceed"):
            CollateralConfig(threshold=1e5, mta=1e6)
        with pytest.raises(ValidationError):
            CollateralConfig(threshold=-1.0)

    def test_unique_names(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate netting group"):
            NettingConfig(groups=[NettingGroupConfig(name="A"), NettingGroupConfig(name="A")])
        swap = IRSwapConfig(name="S", curve="USD-OIS", notional=1e6, maturity=5.0)
        with pytest.raises(ValidationError, match="Duplicate trade"):
            PortfolioConfig(trades=[swap, swap])

    def test_trade_discriminator(self) -> None:
        portfolio = PortfolioConfig(
            trades=[
                {"type": "irs", "name": "S", "curve": "USD-OIS", "notional": 1e6, "maturity": 5},
                {
                    "type": "fx_forward",
                    "name": "F",
                    "fx_rate": "EURUSD",
                    "notional_foreign": 1e6,
                    "maturity": 1,
                },
            ]
        )
        assert [type(t).__name__ for t in portfolio.trades] == ["IRSwapConfig", "FxForwardConfig"]
        assert portfolio.n_trades == 2

    def test_simulation_defaults(self) -> None:
        config = SimulationConfig()
        assert config.mode == "bulk"
        assert config.training_paths == 2000
        assert SimulationConfig(n_paths=500).training_paths == 500
        with pytest.raises(ValidationError):
            SimulationConfig(pfe_quantile=1.0)
        with pytest.raises(ValidationError):
            SimulationConfig(mode="streaming")


class TestLoading:
    """Tests for YAML loading."""

    def test_load_example(self) -> None:
        config = load_config(EXAMPLE)
        assert config.portfolio.n_trades == 4
        assert config.simulation.step == "3M"
        assert [g.name for g in config.netting.groups] == ["A", "B"]

    def test_load_without_wrapper(self, tmp_path: Path) -> None:
        data = yaml.safe_load(EXAMPLE.read_text(encoding="utf-8"))["scenario"]
        path = tmp_path / "flat.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        config = load_config(path)
        assert config.as_of.isoformat() == "2024-01-15"

    def test_load_simulation_config(self, tmp_path: Path) -> None:
        path = tmp_path / "sim.yaml"
        path.write_text("simulation:\n  n_paths: 1234\n  mode: pathwise\n", encoding="utf-8")
        config = load_simulation_config(path)
        assert config.n_paths == 1234
        assert config.mode == "pathwise"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")


class TestScenario:
    """Tests for objects built from configurations."""

    def test_example_scenario(self) -> None:
        scenario = load_scenario(EXAMPLE)
        env = scenario.environment
        assert env.find("USD-OIS").currency == "USD"
        irs = scenario.trade("IRS_USD_10Y")
        assert isinstance(irs, InterestRateSwap)
        assert irs.pv(DeterministicMarketState(env, 0.0))[0] == pytest.approx(0.0, abs=1e-6)
        fxf = scenario.trade("FXF_EURUSD_2Y")
        assert isinstance(fxf, FxForward)
        assert fxf.strike == pytest.approx(env.find("EURUSD").forward(2.0))
        berm = scenario.trade("BERM_USD_2Y_7Y")
        assert isinstance(berm, BermudanSwaption)
        assert berm.underlying.discount_curve is env.find("USD-OIS")
        assert scenario.netting.group("B").collateral.threshold == 1e6
        assert scenario.credit.counterparty is env.find("CPTY")
        with pytest.raises(KeyError):
            scenario.trade("missing")

    def test_context_resolves_references(self) -> None:
        scenario = load_scenario(EXAMPLE)
        context = scenario.context
        assert context.primaries[0].reference is scenario.environment.find("USD-OIS")
        assert context.primaries[2].volatility is scenario.environment.find("EURUSD-VOL")
        np.testing.assert_allclose(context.secondaries[0].betas, [0.3, 0.2, 0.1])

    def test_calculation_grid(self) -> None:
        calc = load_scenario(EXAMPLE).calculations()
        assert calc.grid.labels[0] == "2024-01-15"
        assert calc.grid.labels[-1] == "2034-01-15"
        assert not calc.is_executed

    def test_default_scenario(self) -> None:
        config = create_default_scenario_config(n_paths=100)
        scenario = build_scenario(config)
        assert len(scenario.trades) == 12
        groups = [t.netting_group for t in scenario.trades]
        assert groups[:4] == ["A", "B", "A", "B"]
        assert len(scenario.context.primaries) == 10
        assert scenario.settings.n_paths == 100

    def test_build_volatility(self) -> None:
        flat = build_volatility(VolatilityConfig(name="V", times=[1.0, 5.0], vols=[0.2, 0.25]))
        assert isinstance(flat, FlatVolatility)
        cube = build_volatility(
            VolatilityConfig(
                name="C",
                kind="swaption_cube",
                distribution="normal",
                expiries=[1.0, 5.0],
                swap_tenors=[2.0, 10.0],
                vols=[[0.006, 0.007], [0.0065, 0.0072]],
            )
        )
        assert isinstance(cube, SwaptionVolatilityCube)
        assert cube.distribution is DistributionType.NORMAL
