"""
Market environment: the set of market objects of one calculation.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ccr_core.clone import DeepCloneable
from ccr_core.market.curve import DiscountCurve
from ccr_core.market.forward import ForwardCurve
from ccr_core.market.fx import FxRate
from ccr_core.market.survival import SurvivalCurve
from ccr_core.market.volatility import MarketVolatility


@dataclass(eq=False)
class MarketEnvironment(DeepCloneable):
    """
    Container of all market objects, keyed by name.

    Attributes
    ----------
    as_of : date
        Valuation date
    base_currency : str
        Currency of the numeraire and of all reported values
    discount_curves : list[DiscountCurve]
        One discount curve per currency
    survival_curves : list[SurvivalCurve]
        Counterparty, own and funding credit curves
    fx_rates : list[FxRate]
        FX rates into the base currency
    forward_curves : list[ForwardCurve]
        Stock, commodity and inflation curves
    volatilities : list[MarketVolatility]
        Market volatility objects used by calibration
    """

    as_of: date
    base_currency: str
    discount_curves: list[DiscountCurve] = field(default_factory=list)
    survival_curves: list[SurvivalCurve] = field(default_factory=list)
    fx_rates: list[FxRate] = field(default_factory=list)
    forward_curves: list[ForwardCurve] = field(default_factory=list)
    volatilities: list[MarketVolatility] = field(default_factory=list)

    def __post_init__(self) -> None:
        names = [obj.name for obj in self.objects()]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate market object names: {sorted(duplicates)}")
        currencies = [c.currency for c in self.discount_curves]
        if len(set(currencies)) != len(currencies):
            raise ValueError("Only one discount curve per currency is supported")
        if self.discount_curves and self.base_currency not in currencies:
            raise ValueError(f"No discount curve for base currency {self.base_currency}")

    def objects(self) -> Iterator[Any]:
        """All market objects in declaration order."""
        yield from self.discount_curves
        yield from self.survival_curves
        yield from self.fx_rates
        yield from self.forward_curves
        yield from self.volatilities

    def find(self, name: str) -> Any:
        """Market object by name."""
        for obj in self.objects():
            if obj.name == name:
                return obj
        raise KeyError(f"No market object named '{name}'")

    def discount_curve(self, currency: str) -> DiscountCurve:
        """Discount curve of a currency."""
        for curve in self.discount_curves:
            if curve.currency == currency:
                return curve
        raise KeyError(f"No discount curve for currency {currency}")

    @property
    def numeraire_curve(self) -> DiscountCurve:
        """Discount curve of the base currency."""
        return self.discount_curve(self.base_currency)

    def fx_rate(self, from_currency: str, to_currency: str | None = None) -> FxRate:
        """FX rate converting ``from_currency`` into ``to_currency`` (base by default)."""
        to_currency = to_currency or self.base_currency
        for fx in self.fx_rates:
            if fx.from_currency == from_currency and fx.to_currency == to_currency:
                return fx
        raise KeyError(f"No FX rate {from_currency}/{to_currency}")
