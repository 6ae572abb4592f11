"""
Construction of ready-to-run objects from a scenario configuration.

    scenario = load_scenario("examples/scenario.yaml")
    calc = scenario.calculations().execute()
    print(calc.results())
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from ccr_core.calculations import CCRCalculations
from ccr_core.calibration.context import CalibrationContext, PrimaryVariable, SecondaryVariable
from ccr_core.config.loader import load_config
from ccr_core.config.models import (
    BermudanSwaptionConfig,
    BondConfig,
    CalibrationConfig,
    ForwardContractConfig,
    FxForwardConfig,
    IRSwapConfig,
    MarketConfig,
    NettingConfig,
    ScenarioConfig,
    SimulationConfig,
    VolatilityConfig,
)
from ccr_core.exposure.collateral import VariationMargin
from ccr_core.exposure.netting import NettingGroup, NettingSet
from ccr_core.instruments import (
    BermudanSwaption,
    FixedRateBond,
    ForwardContract,
    FxForward,
    InterestRateSwap,
    Trade,
)
from ccr_core.market import (
    BgmForwardVolatilitySurface,
    CapletVolatilityCube,
    DiscountCurve,
    DistributionType,
    FlatVolatility,
    ForwardCurve,
    FxRate,
    MarketEnvironment,
    MarketVolatility,
    SimulationDateGrid,
    SurvivalCurve,
    SwaptionVolatilityCube,
)
from ccr_core.market.dates import Tenor
from ccr_core.model.factors import MarketVariableType
from ccr_core.simulation.credit import CreditSetup

logger = logging.getLogger("CCR.Calculations")


@dataclass
class Scenario:
    """
    Market, model, portfolio and settings of one run.

    Attributes
    ----------
    environment : MarketEnvironment
        Market objects
    context : CalibrationContext
        Calibration inputs
    trades : list[Trade]
        Portfolio
    netting : NettingSet
        Netting groups and collateral
    credit : CreditSetup
        Credit curves
    settings : SimulationConfig
        Monte Carlo parameters
    """

    environment: MarketEnvironment
    context: CalibrationContext
    trades: list[Trade]
    netting: NettingSet
    credit: CreditSetup
    settings: SimulationConfig

    def calculations(self, grid: SimulationDateGrid | None = None) -> CCRCalculations:
        """Calculation of the whole portfolio (not yet executed)."""
        return CCRCalculations(
            self.environment,
            self.context,
            self.trades,
            self.netting,
            self.credit,
            self.settings,
            grid,
        )

    def trade(self, name: str) -> Trade:
        for t in self.trades:
            if t.name == name:
                return t
        raise KeyError(f"No trade named '{name}'")


def build_environment(as_of: Any, market: MarketConfig, vols: list[VolatilityConfig]) -> MarketEnvironment:
    """Market objects of a configuration, in declaration order."""
    curves: dict[str, DiscountCurve] = {}
    for c in market.discount_curves:
        if c.rate is not None:
            curves[c.name] = DiscountCurve.flat(c.name, c.currency, c.rate)
        else:
            curves[c.name] = DiscountCurve(c.name, c.currency, np.array(c.tenors), np.array(c.rates))

    survival = []
    for s in market.survival_curves:
        if s.spread is not None:
            survival.append(SurvivalCurve.from_cds_spread(s.name, s.spread, s.recovery_rate))
        else:
            survival.append(
                SurvivalCurve(s.name, np.array(s.tenors), np.array(s.spreads), s.recovery_rate)
            )

    fx_rates = [
        FxRate(f.name, f.spot, curves[f.from_curve], curves[f.to_curve]) for f in market.fx_rates
    ]
    forwards = [
        ForwardCurve(f.name, f.spot, curves[f.discount_curve], f.carry_rate, f.kind)
        for f in market.forward_curves
    ]

    return MarketEnvironment(
        as_of=as_of,
        base_currency=market.base_currency,
        discount_curves=list(curves.values()),
        survival_curves=survival,
        fx_rates=fx_rates,
        forward_curves=forwards,
        volatilities=[build_volatility(v) for v in vols],
    )


def build_volatility(config: VolatilityConfig) -> MarketVolatility:
    """Volatility object of a configuration."""
    distribution = DistributionType(config.distribution)
    vols = np.asarray(config.vols, dtype=float)
    if config.kind == "flat":
        return FlatVolatility(config.name, np.array(config.times), vols, distribution)
    if config.kind == "caplet_cube":
        return CapletVolatilityCube(
            config.name, np.array(config.expiries), np.array(config.strikes), vols, distribution
        )
    if config.kind == "swaption_cube":
        return SwaptionVolatilityCube(
            config.name, np.array(config.expiries), np.array(config.swap_tenors), vols, distribution
        )
    return BgmForwardVolatilitySurface(
        config.name, np.array(config.times), np.array(config.tenors), vols, distribution
    )


def build_context(as_of: Any, env: MarketEnvironment, config: CalibrationConfig) -> CalibrationContext:
    """Calibration context with references resolved against ``env``."""

    def volatility(name: str | None) -> MarketVolatility | None:
        return env.find(name) if name is not None else None

    primaries = [
        PrimaryVariable(
            reference=env.find(p.reference),
            variable_type=MarketVariableType(p.type),
            volatility=volatility(p.volatility),
            tenor=Tenor.parse(p.tenor) if p.tenor is not None else None,
            distribution=DistributionType(p.distribution) if p.distribution else None,
            strike=p.strike,
        )
        for p in config.primaries
    ]
    secondaries = [
        SecondaryVariable(
            reference=env.find(s.reference),
            betas=np.array(s.betas),
            volatility=volatility(s.volatility),
            tenor=Tenor.parse(s.tenor),
        )
        for s in config.secondaries
    ]
    return CalibrationContext(
        as_of,
        config.tenors,
        config.factors,
        primaries,
        np.array(config.correlation),
        secondaries,
    )


def _swap(config: IRSwapConfig, env: MarketEnvironment) -> InterestRateSwap:
    swap = InterestRateSwap(
        name=config.name,
        notional=config.notional,
        fixed_rate=config.fixed_rate if config.fixed_rate is not None else 0.0,
        maturity=config.maturity,
        discount_curve=env.find(config.curve),
        pay_fixed=config.pay_fixed,
        payment_freq=config.payment_freq,
        start=config.start,
        netting_group=config.netting_group,
    )
    if config.fixed_rate is None:
        swap.fixed_rate = swap.par_rate()
    return swap


def build_trade(config: Any, env: MarketEnvironment) -> Trade:
    """Trade of a configuration; missing strikes are set at the money."""
    if isinstance(config, IRSwapConfig):
        return _swap(config, env)
    if isinstance(config, BondConfig):
        return FixedRateBond(
            name=config.name,
            notional=config.notional,
            coupon=config.coupon,
            maturity=config.maturity,
            discount_curve=env.find(config.curve),
            payment_freq=config.payment_freq,
            long=config.long,
            netting_group=config.netting_group,
        )
    if isinstance(config, FxForwardConfig):
        fx = env.find(config.fx_rate)
        strike = config.strike if config.strike is not None else float(fx.forward(config.maturity))
        return FxForward(
            name=config.name,
            notional_foreign=config.notional_foreign,
            strike=strike,
            maturity=config.maturity,
            fx_rate=fx,
            buy_foreign=config.buy_foreign,
            netting_group=config.netting_group,
        )
    if isinstance(config, ForwardContractConfig):
        curve = env.find(config.curve)
        strike = config.strike if config.strike is not None else float(curve.forward_price(config.maturity))
        return ForwardContract(
            name=config.name,
            curve=curve,
            quantity=config.quantity,
            strike=strike,
            maturity=config.maturity,
            long=config.long,
            netting_group=config.netting_group,
        )
    if isinstance(config, BermudanSwaptionConfig):
        return BermudanSwaption(
            name=config.name,
            underlying=_swap(config.underlying, env),
            exercise_schedule=config.exercise_times,
            long=config.long,
            physical_settlement=config.physical_settlement,
            netting_group=config.netting_group,
        )
    raise TypeError(f"Unsupported trade configuration {type(config).__name__}")


def build_netting(config: NettingConfig) -> NettingSet:
    groups = []
    for g in config.groups:
        collateral = None
        if g.collateral is not None:
            c = g.collateral
            collateral = VariationMargin(c.threshold, c.mta, c.independent_amount, c.mpr_days)
        groups.append(NettingGroup(g.name, g.sub_group, collateral))
    return NettingSet(groups, config.name)


def build_scenario(config: ScenarioConfig) -> Scenario:
    """
    Build market, model, portfolio and netting objects from a configuration.

    Parameters
    ----------
    config : ScenarioConfig
        Validated scenario configuration

    Returns
    -------
    Scenario
        Objects ready for :meth:`Scenario.calculations`

    Raises
    ------
    KeyError
        If a configuration refers to an unknown market object
    """
    env = build_environment(config.as_of, config.market, config.volatilities)
    context = build_context(config.as_of, env, config.calibration)

    def survival(name: str | None) -> SurvivalCurve | None:
        return env.find(name) if name is not None else None

    credit = CreditSetup(
        counterparty=survival(config.credit.counterparty),
        own=survival(config.credit.own),
        borrowing=survival(config.credit.borrowing),
        lending=survival(config.credit.lending),
        unilateral=config.credit.unilateral,
    )
    trades = [build_trade(t, env) for t in config.portfolio.trades]
    logger.info(
        "Built scenario: %d market objects, %d trades",
        sum(1 for _ in env.objects()),
        len(trades),
    )
    return Scenario(env, context, trades, build_netting(config.netting), credit, config.simulation)


def load_scenario(path: Path | str) -> Scenario:
    """Load a YAML scenario and build its objects."""
    return build_scenario(load_config(path))
