"""
Pytest fixtures for CCR exposure testing.

Provides a small two-currency market, its calibration context, a portfolio
and fast simulation settings.
"""

from datetime import date

import numpy as np
import pytest

from ccr_core.calibration import (
    CalibrationContext,
    PrimaryVariable,
    SecondaryVariable,
    calibrate_monte_carlo_model,
)
from ccr_core.config import SimulationConfig
from ccr_core.exposure import NettingGroup, NettingSet, VariationMargin
from ccr_core.instruments import BermudanSwaption, FxForward, InterestRateSwap
from ccr_core.market import (
    DiscountCurve,
    FlatVolatility,
    ForwardCurve,
    FxRate,
    MarketEnvironment,
    SimulationDateGrid,
    SurvivalCurve,
)
from ccr_core.model.factors import MarketVariableType
from ccr_core.simulation import CreditSetup, PathSet, PathSimulator

AS_OF = date(2024, 1, 15)


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def usd_curve() -> DiscountCurve:
    """Upward sloping USD curve."""
    return DiscountCurve(
        "USD-OIS",
        "USD",
        tenors=np.array([1.0, 2.0, 5.0, 10.0]),
        rates=np.array([0.030, 0.032, 0.035, 0.037]),
    )


@pytest.fixture
def eur_curve() -> DiscountCurve:
    """Flat 2% EUR curve."""
    return DiscountCurve.flat("EUR-OIS", "EUR", 0.02)


@pytest.fixture
def market(usd_curve: DiscountCurve, eur_curve: DiscountCurve) -> MarketEnvironment:
    """USD base market with EURUSD, an equity forward and three credit curves."""
    return MarketEnvironment(
        as_of=AS_OF,
        base_currency="USD",
        discount_curves=[usd_curve, eur_curve],
        survival_curves=[
            SurvivalCurve(
                "CPTY",
                tenors=np.array([1.0, 5.0]),
                spreads=np.array([0.010, 0.015]),
                recovery_rate=0.4,
            ),
            SurvivalCurve.from_cds_spread("OWN", 0.008),
            SurvivalCurve.from_cds_spread("FUNDING", 0.005, recovery_rate=0.0),
        ],
        fx_rates=[FxRate("EURUSD", 1.10, eur_curve, usd_curve)],
        forward_curves=[ForwardCurve("SPX", 4800.0, usd_curve, carry_rate=0.015)],
        volatilities=[
            FlatVolatility("USD-SWVOL", np.array([1.0, 5.0]), np.array([0.30, 0.25])),
            FlatVolatility("EUR-SWVOL", np.array([1.0, 5.0]), np.array([0.32, 0.27])),
            FlatVolatility("EURUSD-VOL", np.array([1.0, 5.0]), np.array([0.10, 0.11])),
            FlatVolatility.constant("SPX-VOL", 0.20),
            FlatVolatility.constant("CPTY-VOL", 0.40),
        ],
    )


@pytest.fixture
def context(market: MarketEnvironment) -> CalibrationContext:
    """Four primaries on three factors plus a counterparty credit driver."""
    find = market.find
    primaries = [
        PrimaryVariable(find("USD-OIS"), MarketVariableType.SWAP_RATE, find("USD-SWVOL"), "5Y"),
        PrimaryVariable(find("EUR-OIS"), MarketVariableType.SWAP_RATE, find("EUR-SWVOL"), "5Y"),
        PrimaryVariable(find("EURUSD"), MarketVariableType.SPOT_FX, find("EURUSD-VOL")),
        PrimaryVariable(find("SPX"), MarketVariableType.SPOT_PRICE, find("SPX-VOL")),
    ]
    correlation = np.array(
        [
            [1.0, 0.6, 0.3, 0.2],
            [0.6, 1.0, 0.4, 0.1],
            [0.3, 0.4, 1.0, 0.2],
            [0.2, 0.1, 0.2, 1.0],
        ]
    )
    secondaries = [
        SecondaryVariable(find("CPTY"), np.array([0.3, 0.2, 0.1]), find("CPTY-VOL"), "5Y")
    ]
    return CalibrationContext(
        AS_OF, ["1Y", "2Y", "5Y", "10Y"], ["F1", "F2", "F3"], primaries, correlation, secondaries
    )


@pytest.fixture
def credit(market: MarketEnvironment) -> CreditSetup:
    find = market.find
    return CreditSetup(
        counterparty=find("CPTY"),
        own=find("OWN"),
        borrowing=find("FUNDING"),
        lending=find("FUNDING"),
    )


@pytest.fixture
def sample_swap(usd_curve: DiscountCurve) -> InterestRateSwap:
    """5Y USD payer swap at 3.5%."""
    return InterestRateSwap(
        "IRS_USD_5Y",
        notional=10_000_000,
        fixed_rate=0.035,
        maturity=5.0,
        discount_curve=usd_curve,
        pay_fixed=True,
        netting_group="A",
    )


@pytest.fixture
def sample_fx_forward(market: MarketEnvironment) -> FxForward:
    """2Y EURUSD forward buying EUR at 1.12."""
    return FxForward(
        "FXF_EURUSD_2Y",
        notional_foreign=5_000_000,
        strike=1.12,
        maturity=2.0,
        fx_rate=market.find("EURUSD"),
        buy_foreign=True,
        netting_group="B",
    )


@pytest.fixture
def sample_swaption(usd_curve: DiscountCurve) -> BermudanSwaption:
    """Long Bermudan payer swaption into a 1Y x 4Y swap."""
    underlying = InterestRateSwap(
        "BERM_UND",
        notional=10_000_000,
        fixed_rate=0.036,
        maturity=5.0,
        discount_curve=usd_curve,
        start=1.0,
    )
    return BermudanSwaption("BERM_1Y_5Y", underlying, [1.0, 2.0, 3.0], netting_group="A")


@pytest.fixture
def trades(
    sample_swap: InterestRateSwap, sample_fx_forward: FxForward, sample_swaption: BermudanSwaption
) -> list:
    return [sample_swap, sample_fx_forward, sample_swaption]


@pytest.fixture
def netting() -> NettingSet:
    """Uncollateralised group A and margined group B."""
    return NettingSet(
        [NettingGroup("A"), NettingGroup("B", collateral=VariationMargin(threshold=1e5, mta=1e4))]
    )


@pytest.fixture
def settings() -> SimulationConfig:
    """Small, fast run."""
    return SimulationConfig(
        n_paths=400, seed=7, chunk_size=100, amc_training_paths=200, horizon="5Y", step="6M"
    )


@pytest.fixture
def grid() -> SimulationDateGrid:
    return SimulationDateGrid.build(AS_OF, "5Y", "6M")


@pytest.fixture
def simulator(
    market: MarketEnvironment, context: CalibrationContext, credit: CreditSetup
) -> PathSimulator:
    """Simulator of the calibrated fixture model."""
    fl, vc = calibrate_monte_carlo_model(context)
    return PathSimulator(market, fl, vc, credit)


@pytest.fixture
def path_set(simulator: PathSimulator, grid: SimulationDateGrid) -> PathSet:
    """400 simulated paths on the 5Y semi-annual grid."""
    rng = simulator.create_generator(grid, seed=13)
    return simulator.simulate(grid, rng, range(400))
