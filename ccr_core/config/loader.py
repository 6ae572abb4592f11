"""
YAML configuration loading utilities.

Provides functions to load and validate scenario configuration from YAML
files, returning properly typed Pydantic model instances.
"""

from datetime import date
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from ccr_core.config.models import (
    BermudanSwaptionConfig,
    BondConfig,
    CalibrationConfig,
    CollateralConfig,
    CreditConfig,
    DiscountCurveConfig,
    ForwardContractConfig,
    ForwardCurveConfig,
    FxForwardConfig,
    FxRateConfig,
    IRSwapConfig,
    MarketConfig,
    NettingConfig,
    NettingGroupConfig,
    PortfolioConfig,
    PrimaryVariableConfig,
    ScenarioConfig,
    SecondaryVariableConfig,
    SimulationConfig,
    SurvivalCurveConfig,
    VolatilityConfig,
)


def _load_yaml(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dictionary.

    Parameters
    ----------
    path : Path
        Path to the YAML file

    Returns
    -------
    dict[str, Any]
        Parsed YAML contents

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    yaml.YAMLError
        If the file contains invalid YAML
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_config(path: Path | str) -> ScenarioConfig:
    """
    Load a complete scenario configuration from a YAML file.

    Parameters
    ----------
    path : Path | str
        Path to the scenario YAML file

    Returns
    -------
    ScenarioConfig
        Validated scenario configuration

    Example
    -------
    >>> config = load_config("examples/scenario.yaml")
    >>> print(f"Loaded {config.portfolio.n_trades} trades")
    """
    path = Path(path)
    data = _load_yaml(path)

    # Handle nested 'scenario' key if present
    if "scenario" in data:
        data = data["scenario"]

    return ScenarioConfig(**data)


def load_simulation_config(path: Path | str) -> SimulationConfig:
    """Load only the simulation settings of a YAML file."""
    data = _load_yaml(Path(path))
    if "simulation" in data:
        data = data["simulation"]
    return SimulationConfig(**data)


_CURRENCIES = ("USD", "EUR", "GBP", "JPY", "CHF")
_ZERO_RATES = {
    "USD": [0.045, 0.042, 0.039, 0.038, 0.037],
    "EUR": [0.033, 0.030, 0.027, 0.027, 0.028],
    "GBP": [0.046, 0.043, 0.040, 0.039, 0.039],
    "JPY": [0.002, 0.003, 0.006, 0.009, 0.014],
    "CHF": [0.014, 0.013, 0.012, 0.013, 0.014],
}
_FX_SPOTS = {"EUR": 1.09, "GBP": 1.27, "JPY": 0.0068, "CHF": 1.16}
_CURVE_TENORS = [1.0, 2.0, 5.0, 10.0, 20.0]


def create_default_scenario_config(n_paths: int = 5000) -> ScenarioConfig:
    """
    Create a default five-currency scenario with typical values.

    The portfolio holds one swap and one FX forward per currency, an equity
    forward and a Bermudan swaption, assigned alternately to netting groups
    A and B.

    Parameters
    ----------
    n_paths : int
        Monte Carlo paths

    Returns
    -------
    ScenarioConfig
        Default scenario suitable for testing
    """
    market = MarketConfig(
        base_currency="USD",
        discount_curves=[
            DiscountCurveConfig(
                name=f"{ccy}-OIS", currency=ccy, tenors=_CURVE_TENORS, rates=_ZERO_RATES[ccy]
            )
            for ccy in _CURRENCIES
        ],
        survival_curves=[
            SurvivalCurveConfig(name="CPTY", tenors=[1.0, 5.0, 10.0], spreads=[0.010, 0.012, 0.014]),
            SurvivalCurveConfig(name="OWN", spread=0.008, recovery_rate=0.4),
            SurvivalCurveConfig(name="FUNDING", spread=0.005, recovery_rate=0.0),
        ],
        fx_rates=[
            FxRateConfig(name=f"{ccy}USD", spot=spot, from_curve=f"{ccy}-OIS", to_curve="USD-OIS")
            for ccy, spot in _FX_SPOTS.items()
        ],
        forward_curves=[
            ForwardCurveConfig(name="SPX", spot=4800.0, discount_curve="USD-OIS", carry_rate=0.015)
        ],
    )

    volatilities = [
        VolatilityConfig(
            name=f"{ccy}-SWVOL", kind="flat", times=[1.0, 5.0, 10.0], vols=[0.30, 0.28, 0.25]
        )
        for ccy in _CURRENCIES
        if ccy != "JPY"
    ]
    volatilities.append(
        VolatilityConfig(
            name="JPY-SWVOL", kind="flat", distribution="normal", times=[1.0, 10.0], vols=[0.004, 0.005]
        )
    )
    volatilities.extend(
        VolatilityConfig(name=f"{ccy}USD-VOL", kind="flat", times=[1.0, 5.0], vols=[0.10, 0.11])
        for ccy in _FX_SPOTS
    )
    volatilities.append(
        VolatilityConfig(name="SPX-VOL", kind="flat", times=[1.0, 5.0], vols=[0.20, 0.22])
    )
    volatilities.append(
        VolatilityConfig(name="CPTY-VOL", kind="flat", times=[1.0, 10.0], vols=[0.40, 0.35])
    )

    primaries = [
        PrimaryVariableConfig(
            reference=f"{ccy}-OIS", type="SwapRate", tenor="5Y", volatility=f"{ccy}-SWVOL"
        )
        for ccy in _CURRENCIES
    ]
    primaries.extend(
        PrimaryVariableConfig(reference=f"{ccy}USD", type="SpotFx", volatility=f"{ccy}USD-VOL")
        for ccy in _FX_SPOTS
    )
    primaries.append(PrimaryVariableConfig(reference="SPX", type="SpotPrice", volatility="SPX-VOL"))
    n = len(primaries)
    idx = np.arange(n)
    correlation = (0.6 ** np.abs(idx[:, None] - idx[None, :])).tolist()

    calibration = CalibrationConfig(
        tenors=["1Y", "2Y", "5Y", "10Y", "20Y"],
        factors=["F1", "F2", "F3", "F4"],
        primaries=primaries,
        correlation=correlation,
        secondaries=[
            SecondaryVariableConfig(reference="CPTY", betas=[0.3, 0.2, 0.1, 0.0], volatility="CPTY-VOL"),
        ],
    )

    trades: list[Any] = []
    for k, ccy in enumerate(_CURRENCIES):
        trades.append(
            IRSwapConfig(
                name=f"IRS_{ccy}_10Y",
                curve=f"{ccy}-OIS",
                notional=10_000_000 if ccy != "JPY" else 1_500_000_000,
                maturity=10.0,
                pay_fixed=k % 2 == 0,
            )
        )
    for ccy in _FX_SPOTS:
        trades.append(
            FxForwardConfig(
                name=f"FXF_{ccy}USD_2Y",
                fx_rate=f"{ccy}USD",
                notional_foreign=5_000_000 if ccy != "JPY" else 750_000_000,
                maturity=2.0,
                buy_foreign=len(trades) % 2 == 0,
            )
        )
    trades.append(
        ForwardContractConfig(name="FWD_SPX_3Y", curve="SPX", quantity=1000.0, maturity=3.0)
    )
    trades.append(
        BondConfig(name="BOND_EUR_7Y", curve="EUR-OIS", notional=5_000_000, coupon=0.03, maturity=7.0)
    )
    trades.append(
        BermudanSwaptionConfig(
            name="BERM_USD_2Y_10Y",
            underlying=IRSwapConfig(
                name="BERM_USD_2Y_10Y_UND",
                curve="USD-OIS",
                notional=10_000_000,
                fixed_rate=0.04,
                maturity=10.0,
                start=2.0,
            ),
            exercise_times=[2.0, 3.0, 4.0, 5.0],
        )
    )
    for k, trade in enumerate(trades):
        trade.netting_group = "A" if k % 2 == 0 else "B"

    return ScenarioConfig(
        as_of=date(2024, 1, 15),
        market=market,
        volatilities=volatilities,
        calibration=calibration,
        credit=CreditConfig(counterparty="CPTY", own="OWN", borrowing="FUNDING", lending="FUNDING"),
        netting=NettingConfig(
            groups=[
                NettingGroupConfig(name="A"),
                NettingGroupConfig(
                    name="B", collateral=CollateralConfig(threshold=2e6, mta=1e5, mpr_days=10)
                ),
            ]
        ),
        portfolio=PortfolioConfig(trades=trades),
        simulation=SimulationConfig(n_paths=n_paths, horizon="12Y", step="6M"),
    )
