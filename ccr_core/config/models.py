"""
Pydantic configuration models for the CCR exposure engine.

These models provide validation and type-safe configuration for:
- Market data (discount, survival, FX and forward curves)
- Market volatility objects
- Factor model calibration (variables, correlation)
- Credit curves, netting groups and collateral
- Portfolio specifications (trade definitions)
- Simulation parameters (Monte Carlo settings)
"""

from datetime import date
from typing import Annotated, Literal, Union

import numpy as np
from pydantic import BaseModel, Field, field_validator, model_validator


class DiscountCurveConfig(BaseModel):
    """
    Discount curve from continuously compounded zero rates.

    Either ``rate`` (flat curve) or ``tenors`` with ``rates`` is required.

    Example
    -------
    >>> DiscountCurveConfig(name="USD-OIS", currency="USD", rate=0.03)
    """

    name: str
    currency: str = Field(min_length=3, max_length=3)
    tenors: list[float] | None = None
    rates: list[float] | None = None
    rate: float | None = Field(default=None, ge=-0.05, le=0.30)

    @model_validator(mode="after")
    def rates_given(self) -> "DiscountCurveConfig":
        """Validate that exactly one rate specification is given."""
        if self.rate is None and (self.tenors is None or self.rates is None):
            raise ValueError(f"{self.name}: give either 'rate' or 'tenors' and 'rates'")
        if self.tenors is not None and self.rates is not None and len(self.tenors) != len(self.rates):
            raise ValueError(f"{self.name}: tenors and rates must have the same length")
        return self


class SurvivalCurveConfig(BaseModel):
    """
    Credit curve from CDS-style spreads (decimal, e.g. 0.012 for 120bps).
    """

    name: str
    tenors: list[float] | None = None
    spreads: list[float] | None = None
    spread: float | None = Field(default=None, ge=0, le=0.5)
    recovery_rate: float = Field(ge=0, lt=1, default=0.4)

    @model_validator(mode="after")
    def spreads_given(self) -> "SurvivalCurveConfig":
        if self.spread is None and (self.tenors is None or self.spreads is None):
            raise ValueError(f"{self.name}: give either 'spread' or 'tenors' and 'spreads'")
        if (
            self.tenors is not None
            and self.spreads is not None
            and len(self.tenors) != len(self.spreads)
        ):
            raise ValueError(f"{self.name}: tenors and spreads must have the same length")
        return self


class FxRateConfig(BaseModel):
    """
    FX rate quoting ``from_curve``'s currency in ``to_curve``'s currency.
    """

    name: str
    spot: float = Field(gt=0, description="Initial FX spot rate")
    from_curve: str
    to_curve: str


class ForwardCurveConfig(BaseModel):
    """Equity, commodity or inflation forward curve."""

    name: str
    spot: float = Field(gt=0)
    discount_curve: str
    carry_rate: float = Field(ge=-0.5, le=0.5, default=0.0)
    kind: Literal["stock", "commodity", "inflation"] = "stock"


class MarketConfig(BaseModel):
    """
    Complete market configuration.

    Attributes
    ----------
    base_currency : str
        Currency of the numeraire and of reported values
    discount_curves : list[DiscountCurveConfig]
        One curve per currency
    survival_curves : list[SurvivalCurveConfig]
        Counterparty, own and funding curves
    fx_rates : list[FxRateConfig]
        FX rates into the base currency
    forward_curves : list[ForwardCurveConfig]
        Forward curves
    """

    base_currency: str = Field(min_length=3, max_length=3, default="USD")
    discount_curves: list[DiscountCurveConfig]
    survival_curves: list[SurvivalCurveConfig] = Field(default_factory=list)
    fx_rates: list[FxRateConfig] = Field(default_factory=list)
    forward_curves: list[ForwardCurveConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def references_exist(self) -> "MarketConfig":
        """Validate curve names are unique and references resolve."""
        curves = {c.name for c in self.discount_curves}
        names = [
            o.name
            for o in [*self.discount_curves, *self.survival_curves, *self.fx_rates, *self.forward_curves]
        ]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate market object names in {names}")
        for fx in self.fx_rates:
            for ref in (fx.from_curve, fx.to_curve):
                if ref not in curves:
                    raise ValueError(f"{fx.name}: unknown discount curve '{ref}'")
        for fwd in self.forward_curves:
            if fwd.discount_curve not in curves:
                raise ValueError(f"{fwd.name}: unknown discount curve '{fwd.discount_curve}'")
        if self.base_currency not in {c.currency for c in self.discount_curves}:
            raise ValueError(f"No discount curve for base currency {self.base_currency}")
        return self


class VolatilityConfig(BaseModel):
    """
    Market volatility object.

    Attributes
    ----------
    name : str
        Object name referenced by calibration variables
    kind : str
        ``flat`` (times, vols), ``caplet_cube`` (expiries, strikes, vols
        matrix), ``swaption_cube`` (expiries, swap_tenors, vols matrix) or
        ``bgm`` (times, tenors, vols matrix)
    distribution : str
        ``lognormal`` or ``normal``
    """

    name: str
    kind: Literal["flat", "caplet_cube", "swaption_cube", "bgm"] = "flat"
    distribution: Literal["lognormal", "normal"] = "lognormal"
    times: list[float] | None = None
    expiries: list[float] | None = None
    strikes: list[float] | None = None
    swap_tenors: list[float] | None = None
    tenors: list[float] | None = None
    vols: list[float] | list[list[float]]

    @model_validator(mode="after")
    def axes_given(self) -> "VolatilityConfig":
        """Validate that the axes of the chosen kind are present."""
        required = {
            "flat": ("times",),
            "caplet_cube": ("expiries", "strikes"),
            "swaption_cube": ("expiries", "swap_tenors"),
            "bgm": ("times", "tenors"),
        }[self.kind]
        missing = [axis for axis in required if getattr(self, axis) is None]
        if missing:
            raise ValueError(f"{self.name}: {self.kind} volatility needs {missing}")
        if np.any(np.asarray(self.vols, dtype=float) < 0):
            raise ValueError(f"{self.name}: volatilities must be non-negative")
        return self


class PrimaryVariableConfig(BaseModel):
    """Primary calibration variable."""

    reference: str
    type: Literal["SwapRate", "SpotFx", "ForwardPrice", "SpotPrice"]
    tenor: str | None = None
    volatility: str | None = None
    distribution: Literal["lognormal", "normal"] | None = None
    strike: float | None = None

    @model_validator(mode="after")
    def tenor_for_curves(self) -> "PrimaryVariableConfig":
        if self.type in ("SwapRate", "ForwardPrice") and self.tenor is None:
            raise ValueError(f"{self.reference}: {self.type} needs a reference tenor")
        return self


class SecondaryVariableConfig(BaseModel):
    """Beta-driven calibration variable (credit spreads)."""

    reference: str
    betas: list[float]
    tenor: str = "5Y"
    volatility: str | None = None

    @field_validator("betas")
    @classmethod
    def norm_below_one(cls, v: list[float]) -> list[float]:
        if float(np.linalg.norm(v)) >= 1.0:
            raise ValueError(f"Beta vector norm must be below 1, got {np.linalg.norm(v):.6f}")
        return v


class CalibrationConfig(BaseModel):
    """
    Factor model calibration inputs.

    Attributes
    ----------
    tenors : list[str]
        Tenor grid of curve entries (e.g. ``["1Y", "5Y", "10Y"]``)
    factors : list[str]
        Systemic factor names
    primaries : list[PrimaryVariableConfig]
        Primary variables, in correlation-matrix order
    correlation : list[list[float]]
        Correlation of the primary variables
    secondaries : list[SecondaryVariableConfig]
        Beta-driven variables
    """

    tenors: list[str]
    factors: list[str]
    primaries: list[PrimaryVariableConfig]
    correlation: list[list[float]]
    secondaries: list[SecondaryVariableConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def correlation_shape(self) -> "CalibrationConfig":
        """Validate the correlation matrix is square, symmetric and unit-diagonal."""
        n = len(self.primaries)
        c = np.asarray(self.correlation, dtype=float)
        if c.shape != (n, n):
            raise ValueError(f"Correlation matrix is {c.shape}, expected ({n}, {n})")
        if not np.allclose(c, c.T):
            raise ValueError("Correlation matrix is not symmetric")
        if not np.allclose(np.diag(c), 1.0):
            raise ValueError("Correlation matrix must have a unit diagonal")
        for s in self.secondaries:
            if len(s.betas) != len(self.factors):
                raise ValueError(
                    f"{s.reference}: expected {len(self.factors)} betas, got {len(s.betas)}"
                )
        return self


class CreditConfig(BaseModel):
    """
    Credit curves used by CVA/DVA/FVA, by survival curve name.

    Attributes
    ----------
    counterparty : str | None
        Counterparty default curve
    own : str | None
        Own default curve
    borrowing : str | None
        Funding curve for borrowing
    lending : str | None
        Funding curve for lending
    unilateral : bool
        Ignore first-to-default effects
    """

    counterparty: str | None = None
    own: str | None = None
    borrowing: str | None = None
    lending: str | None = None
    unilateral: bool = False


class CollateralConfig(BaseModel):
    """
    Variation margin terms of a netting group.

    Attributes
    ----------
    threshold : float
        Collateral threshold in base currency (e.g., 1e6 for $1M)
    mta : float
        Minimum transfer amount (e.g., 1e5 for $100K)
    independent_amount : float
        Independent amount held by us
    mpr_days : float
        Margin period of risk in calendar days
    """

    threshold: float = Field(ge=0, default=0.0)
    mta: float = Field(ge=0, default=0.0)
    independent_amount: float = 0.0
    mpr_days: float = Field(ge=0, le=60, default=10)

    @model_validator(mode="after")
    def mta_less_than_threshold(self) -> "CollateralConfig":
        """Validate MTA is less than threshold."""
        if self.mta > self.threshold > 0:
            raise ValueError(
                f"MTA ({self.mta:,.0f}) cannot exceed threshold ({self.threshold:,.0f})"
            )
        return self


class NettingGroupConfig(BaseModel):
    """Netting group with optional sub group and collateral."""

    name: str
    sub_group: str | None = None
    collateral: CollateralConfig | None = None


class NettingConfig(BaseModel):
    """Netting set of the counterparty."""

    name: str = "Default"
    groups: list[NettingGroupConfig] = Field(default_factory=list)

    @field_validator("groups")
    @classmethod
    def unique_names(cls, v: list[NettingGroupConfig]) -> list[NettingGroupConfig]:
        names = [g.name for g in v]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate netting group names in {names}")
        return v


class IRSwapConfig(BaseModel):
    """
    Interest rate swap configuration.

    Attributes
    ----------
    name : str
        Trade identifier
    curve : str
        Discount curve name
    notional : float
        Notional amount
    fixed_rate : float | None
        Fixed rate (None: par rate on today's curve)
    maturity : float
        Maturity in years
    pay_fixed : bool
        True for payer swap
    """

    type: Literal["irs"] = "irs"
    name: str
    curve: str
    notional: float = Field(gt=0)
    fixed_rate: float | None = Field(default=None, ge=-0.05, le=0.30)
    maturity: float = Field(gt=0, le=50)
    pay_fixed: bool = True
    payment_freq: float = Field(gt=0, le=1, default=0.5)
    start: float = Field(ge=0, default=0.0)
    netting_group: str | None = None


class BondConfig(BaseModel):
    """Fixed rate bond configuration."""

    type: Literal["bond"] = "bond"
    name: str
    curve: str
    notional: float = Field(gt=0)
    coupon: float = Field(ge=0, le=0.30)
    maturity: float = Field(gt=0, le=50)
    payment_freq: float = Field(gt=0, le=1, default=1.0)
    long: bool = True
    netting_group: str | None = None


class FxForwardConfig(BaseModel):
    """
    FX forward configuration.

    Attributes
    ----------
    fx_rate : str
        FX rate name (foreign = from, domestic = to)
    strike : float | None
        Strike (None: today's forward rate)
    """

    type: Literal["fx_forward"] = "fx_forward"
    name: str
    fx_rate: str
    notional_foreign: float = Field(gt=0)
    strike: float | None = Field(default=None, gt=0)
    maturity: float = Field(gt=0, le=50)
    buy_foreign: bool = True
    netting_group: str | None = None


class ForwardContractConfig(BaseModel):
    """Forward contract on a forward curve."""

    type: Literal["forward"] = "forward"
    name: str
    curve: str
    quantity: float = Field(gt=0)
    strike: float | None = Field(default=None, gt=0)
    maturity: float = Field(gt=0, le=50)
    long: bool = True
    netting_group: str | None = None


class BermudanSwaptionConfig(BaseModel):
    """Bermudan swaption on a swap."""

    type: Literal["bermudan_swaption"] = "bermudan_swaption"
    name: str
    underlying: IRSwapConfig
    exercise_times: list[float] = Field(min_length=1)
    long: bool = True
    physical_settlement: bool = True
    netting_group: str | None = None


TradeConfig = Annotated[
    Union[IRSwapConfig, BondConfig, FxForwardConfig, ForwardContractConfig, BermudanSwaptionConfig],
    Field(discriminator="type"),
]


class PortfolioConfig(BaseModel):
    """
    Portfolio of trades.

    Attributes
    ----------
    trades : list[TradeConfig]
        Trade definitions, discriminated by ``type``
    """

    trades: list[TradeConfig] = Field(default_factory=list)

    @field_validator("trades")
    @classmethod
    def unique_names(cls, v: list[TradeConfig]) -> list[TradeConfig]:
        names = [t.name for t in v]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate trade names in {names}")
        return v

    @property
    def n_trades(self) -> int:
        return len(self.trades)


class SimulationConfig(BaseModel):
    """
    Monte Carlo simulation parameters.

    Attributes
    ----------
    n_paths : int
        Number of Monte Carlo paths
    seed : int
        Seed of the serial random stream
    rng_kind : str
        Bit generator family
    mode : str
        ``bulk`` (chunks valued on stored paths) or ``pathwise``
        (streaming, one path at a time)
    threads : int
        Worker threads
    chunk_size : int
        Paths per work item
    amc_training_paths : int
        Leading paths used to fit least-squares regressions
    regression_degree : int
        Polynomial degree of the regression basis
    parallel_calibration : bool
        Calibrate independent curves concurrently
    pfe_quantile : float
        Default PFE / PFNE quantile
    horizon : str
        Simulation horizon tenor
    step : str
        Simulation step tenor
    """

    n_paths: int = Field(ge=1, le=1_000_000, default=5000)
    seed: int = Field(ge=0, default=42)
    rng_kind: Literal["pcg64", "pcg64dxsm"] = "pcg64"
    mode: Literal["bulk", "pathwise"] = "bulk"
    threads: int = Field(ge=1, le=256, default=1)
    chunk_size: int = Field(ge=1, default=500)
    amc_training_paths: int = Field(ge=1, default=2000)
    regression_degree: int = Field(ge=0, le=6, default=2)
    parallel_calibration: bool = False
    pfe_quantile: float = Field(gt=0, lt=1, default=0.95)
    horizon: str = "12Y"
    step: str = "6M"

    @property
    def training_paths(self) -> int:
        """Training paths actually available."""
        return min(self.amc_training_paths, self.n_paths)


class ScenarioConfig(BaseModel):
    """
    Complete scenario: market, model, credit, netting, portfolio and
    simulation settings.
    """

    as_of: date
    market: MarketConfig
    volatilities: list[VolatilityConfig] = Field(default_factory=list)
    calibration: CalibrationConfig
    credit: CreditConfig = Field(default_factory=CreditConfig)
    netting: NettingConfig = Field(default_factory=NettingConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
