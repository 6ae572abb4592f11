"""
Market volatility objects and local volatility term structures.

Market objects (flat curves, caplet cubes, swaption cubes, BGM forward
volatility surfaces) are consumed by calibration only through
``local_volatility(tenor, strike)``, which returns the piecewise-constant
local volatility term structure driving one simulated quantity.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from ccr_core._types import FloatArray, Year
from ccr_core.clone import DeepCloneable
from ccr_core.errors import CalibrationError
from ccr_core.market.curve import _tenor_label


class DistributionType(Enum):
    """Distribution assumed by a volatility quote."""

    LOG_NORMAL = "lognormal"
    NORMAL = "normal"


@dataclass
class VolatilityCurve:
    """
    Piecewise constant local volatility σ(t).

    ``values[i]`` applies on (times[i-1], times[i]] (from 0 for i = 0),
    and the last value applies beyond the last time.

    Attributes
    ----------
    times : FloatArray
        Interval end points in years, strictly increasing and positive
    values : FloatArray
        Non-negative volatilities
    distribution : DistributionType
        Lognormal (relative) or normal (absolute) volatility

    Example
    -------
    >>> vc = VolatilityCurve.flat(0.2)
    >>> vc.integrated_variance(0.0, 2.0)
    0.08000000000000002
    """

    times: FloatArray
    values: FloatArray
    distribution: DistributionType = DistributionType.LOG_NORMAL

    def __post_init__(self) -> None:
        """Validate term structure."""
        self.times = np.asarray(self.times, dtype=float)
        self.values = np.asarray(self.values, dtype=float)
        if self.times.shape != self.values.shape or self.times.size == 0:
            raise ValueError("Volatility times and values must be non-empty and aligned")
        if self.times[0] <= 0 or np.any(np.diff(self.times) <= 0):
            raise ValueError("Volatility times must be positive and strictly increasing")
        if np.any(self.values < 0):
            raise ValueError(f"Volatilities must be non-negative, got {self.values.min()}")

    @classmethod
    def flat(
        cls, vol: float, distribution: DistributionType = DistributionType.LOG_NORMAL
    ) -> "VolatilityCurve":
        """Constant volatility."""
        return cls(np.array([1.0]), np.array([vol]), distribution)

    def value(self, t: Year | FloatArray) -> float | FloatArray:
        """Local volatility at time t."""
        idx = np.searchsorted(self.times[:-1], np.asarray(t, dtype=float), side="left")
        result = self.values[idx]
        if np.ndim(result) == 0:
            return float(result)
        return result

    def _cumulative_variance(self, t: FloatArray) -> FloatArray:
        starts = np.concatenate([[0.0], self.times[:-1]])
        widths = self.times - starts
        var2 = self.values**2
        node = np.concatenate([[0.0], np.cumsum(var2[:-1] * widths[:-1])])
        idx = np.searchsorted(self.times[:-1], t, side="left")
        return node[idx] + var2[idx] * (t - starts[idx])

    def integrated_variance(self, t0: Year | FloatArray, t1: Year | FloatArray) -> float | FloatArray:
        """∫ σ(u)² du over [t0, t1]."""
        t0_arr = np.maximum(np.asarray(t0, dtype=float), 0.0)
        t1_arr = np.maximum(np.asarray(t1, dtype=float), t0_arr)
        result = self._cumulative_variance(t1_arr) - self._cumulative_variance(t0_arr)
        if np.ndim(result) == 0:
            return float(result)
        return result

    def scaled(self, factor: float) -> "VolatilityCurve":
        """Copy with all volatilities multiplied by ``factor``."""
        return VolatilityCurve(self.times.copy(), self.values * factor, self.distribution)

    def shifted(self, offset: Year) -> "VolatilityCurve":
        """Curve g with g(t) = σ(t + offset)."""
        if offset <= 0:
            return VolatilityCurve(self.times.copy(), self.values.copy(), self.distribution)
        keep = self.times > offset
        if not np.any(keep):
            return VolatilityCurve.flat(float(self.values[-1]), self.distribution)
        return VolatilityCurve(self.times[keep] - offset, self.values[keep], self.distribution)


def local_from_term(
    times: FloatArray,
    term_vols: FloatArray,
    distribution: DistributionType = DistributionType.LOG_NORMAL,
) -> VolatilityCurve:
    """
    Bootstrap forward (local) volatilities from term (implied) volatilities.

    Notes
    -----
    σ_loc,i² = (σ_i² t_i - σ_{i-1}² t_{i-1}) / (t_i - t_{i-1}), floored at
    zero when the implied variance is not increasing.
    """
    times = np.asarray(times, dtype=float)
    term_vols = np.asarray(term_vols, dtype=float)
    total_var = term_vols**2 * times
    dvar = np.diff(np.concatenate([[0.0], total_var]))
    dt = np.diff(np.concatenate([[0.0], times]))
    return VolatilityCurve(times, np.sqrt(np.maximum(dvar / dt, 0.0)), distribution)


def _interp_columns(x: float, grid: FloatArray, matrix: FloatArray) -> FloatArray:
    """Interpolate the columns of ``matrix`` (shape (n, len(grid))) at x."""
    return np.array([np.interp(x, grid, row) for row in matrix])


class MarketVolatility(DeepCloneable, ABC):
    """
    Base of market volatility objects.

    Subclasses store a quote matrix ``vols`` and implement
    :meth:`local_volatility`.
    """

    name: str
    distribution: DistributionType
    vols: FloatArray

    bump_unit = 0.01

    @abstractmethod
    def local_volatility(self, tenor: Year, strike: float | None = None) -> VolatilityCurve:
        """
        Local volatility term structure for one tenor.

        Parameters
        ----------
        tenor : float
            Tenor of the simulated quantity in years (ignored by spot vols)
        strike : float | None
            Strike or moneyness; None for at-the-money
        """

    def require(self, distribution: DistributionType, variable: str) -> None:
        """Fail unless this object is quoted in ``distribution``."""
        if distribution is not self.distribution:
            raise CalibrationError(
                f"{variable}: volatility object '{self.name}' has no "
                f"{distribution.value} volatilities (quoted {self.distribution.value})",
                variable=variable,
            )

    def _validate(self) -> None:
        self.vols = np.asarray(self.vols, dtype=float)
        if np.any(self.vols < 0):
            raise ValueError(f"{self.name}: volatilities must be non-negative")

    @property
    def parent_curves(self) -> list[Any]:
        return []

    @property
    def quote_labels(self) -> list[str]:
        return [f"{self.name}[{i}]" for i in range(self.vols.size)]

    @property
    def quotes(self) -> FloatArray:
        return self.vols.ravel().copy()

    def set_quotes(self, values: FloatArray) -> None:
        values = np.asarray(values, dtype=float)
        if values.size != self.vols.size:
            raise ValueError(
                f"{self.name}: unexpected change of volatility count "
                f"({self.vols.size} -> {values.size})"
            )
        if np.any(values < 0):
            raise ValueError(f"{self.name}: volatilities must be non-negative")
        self.vols = values.reshape(self.vols.shape).copy()


@dataclass(eq=False)
class FlatVolatility(MarketVolatility):
    """
    Term structure of implied volatilities for a spot quantity.

    Example
    -------
    >>> fv = FlatVolatility("EURUSD-VOL", times=[1.0, 2.0], vols=[0.10, 0.12])
    >>> fv.local_volatility(0.0).values.round(4)
    array([0.1   , 0.1371])
    """

    name: str
    times: FloatArray
    vols: FloatArray
    distribution: DistributionType = DistributionType.LOG_NORMAL
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.times = np.asarray(self.times, dtype=float)
        self._validate()
        if self.times.shape != self.vols.shape:
            raise ValueError(f"{self.name}: times and vols must be aligned")

    @classmethod
    def constant(
        cls, name: str, vol: float, distribution: DistributionType = DistributionType.LOG_NORMAL
    ) -> "FlatVolatility":
        return cls(name, np.array([1.0]), np.array([vol]), distribution)

    @property
    def quote_labels(self) -> list[str]:
        return [_tenor_label(t) for t in self.times]

    def local_volatility(self, tenor: Year, strike: float | None = None) -> VolatilityCurve:
        return local_from_term(self.times, self.vols, self.distribution)


@dataclass(eq=False)
class CapletVolatilityCube(MarketVolatility):
    """
    Caplet volatilities by expiry and strike.

    Strikes are moneyness offsets from the at-the-money forward (0.0 is
    ATM). The local volatility of a rate of tenor τ at simulation time t is
    the bootstrapped caplet vol at expiry t + τ.
    """

    name: str
    expiries: FloatArray
    strikes: FloatArray
    vols: FloatArray
    distribution: DistributionType = DistributionType.LOG_NORMAL
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.expiries = np.asarray(self.expiries, dtype=float)
        self.strikes = np.asarray(self.strikes, dtype=float)
        self._validate()
        if self.vols.shape != (len(self.expiries), len(self.strikes)):
            raise ValueError(
                f"{self.name}: vols shape {self.vols.shape} does not match "
                f"({len(self.expiries)}, {len(self.strikes)})"
            )

    def local_volatility(self, tenor: Year, strike: float | None = None) -> VolatilityCurve:
        k = 0.0 if strike is None else strike
        term = _interp_columns(k, self.strikes, self.vols)
        return local_from_term(self.expiries, term, self.distribution).shifted(tenor)


@dataclass(eq=False)
class SwaptionVolatilityCube(MarketVolatility):
    """
    At-the-money swaption volatilities by expiry and underlying swap tenor.
    """

    name: str
    expiries: FloatArray
    swap_tenors: FloatArray
    vols: FloatArray
    distribution: DistributionType = DistributionType.LOG_NORMAL
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.expiries = np.asarray(self.expiries, dtype=float)
        self.swap_tenors = np.asarray(self.swap_tenors, dtype=float)
        self._validate()
        if self.vols.shape != (len(self.expiries), len(self.swap_tenors)):
            raise ValueError(
                f"{self.name}: vols shape {self.vols.shape} does not match "
                f"({len(self.expiries)}, {len(self.swap_tenors)})"
            )

    def local_volatility(self, tenor: Year, strike: float | None = None) -> VolatilityCurve:
        term = _interp_columns(tenor, self.swap_tenors, self.vols)
        return local_from_term(self.expiries, term, self.distribution)


@dataclass(eq=False)
class BgmForwardVolatilitySurface(MarketVolatility):
    """
    Instantaneous forward-rate volatilities (BGM/LMM calibration output).

    ``vols[i, j]`` is the volatility on (times[i-1], times[i]] of the
    forward rate with tenor ``tenors[j]``; no bootstrapping is needed.
    """

    name: str
    times: FloatArray
    tenors: FloatArray
    vols: FloatArray
    distribution: DistributionType = DistributionType.LOG_NORMAL
    dependent_curves: list[Any] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.times = np.asarray(self.times, dtype=float)
        self.tenors = np.asarray(self.tenors, dtype=float)
        self._validate()
        if self.vols.shape != (len(self.times), len(self.tenors)):
            raise ValueError(
                f"{self.name}: vols shape {self.vols.shape} does not match "
                f"({len(self.times)}, {len(self.tenors)})"
            )

    def local_volatility(self, tenor: Year, strike: float | None = None) -> VolatilityCurve:
        return VolatilityCurve(
            self.times.copy(), _interp_columns(tenor, self.tenors, self.vols), self.distribution
        )
