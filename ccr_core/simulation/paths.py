"""
Simulated paths and the market states read by trade pricers.

A :class:`PathSet` stores, per path and simulation date, the Gaussian factor
states of every calibrated row, the systemic Brownian state, the numeraire
and the three Radon-Nikodym ratios. Market states rebuild curves, FX rates
and forwards from the stored states and the live market objects, so a market
object bumped in place is picked up by simply re-reading the states.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from ccr_core._types import FloatArray, IntArray, PathArray, StateArray, Year
from ccr_core.market.curve import DiscountCurve
from ccr_core.market.dates import SimulationDateGrid
from ccr_core.market.environment import MarketEnvironment
from ccr_core.market.forward import ForwardCurve
from ccr_core.market.fx import FxRate
from ccr_core.market.survival import SurvivalCurve
from ccr_core.market.volatility import DistributionType, VolatilityCurve
from ccr_core.model.factors import FactorLoadingCollection, VolatilityCollection

# Shortest horizon used when reading a level (forward rate, hazard) off a curve
_MIN_TAU = 1e-8


@dataclass
class LayoutEntry:
    """Rows of one market object in the simulated state vector."""

    reference: Any
    start: int
    loadings: FloatArray
    volatilities: list[VolatilityCurve]

    @property
    def row_count(self) -> int:
        return self.loadings.shape[0]

    @property
    def rows(self) -> slice:
        return slice(self.start, self.start + self.row_count)

    @property
    def distribution(self) -> DistributionType:
        return self.volatilities[0].distribution

    @property
    def is_spot(self) -> bool:
        return self.row_count == 1


class FactorLayout:
    """
    Placement of calibrated market objects in the simulated state vector.

    Entries follow the declaration order of the market environment, so the
    layout (and with it the assignment of random draws to rows) does not
    depend on the order in which curves were calibrated.

    Parameters
    ----------
    environment : MarketEnvironment
        Market objects of the run
    factor_loadings : FactorLoadingCollection
        Calibrated loadings
    volatilities : VolatilityCollection
        Calibrated volatilities
    """

    def __init__(
        self,
        environment: MarketEnvironment,
        factor_loadings: FactorLoadingCollection,
        volatilities: VolatilityCollection,
    ) -> None:
        self.factor_count = factor_loadings.factor_count
        self.tenor_times = factor_loadings.tenor_times
        self.entries: list[LayoutEntry] = []
        self._by_id: dict[int, LayoutEntry] = {}
        start = 0
        for obj in environment.objects():
            if obj not in factor_loadings:
                continue
            loadings = factor_loadings.get(obj)
            curves = volatilities.get(obj) if obj in volatilities else [VolatilityCurve.flat(0.0)]
            if len(curves) == 1 and loadings.shape[0] > 1:
                curves = curves * loadings.shape[0]
            if len(curves) != loadings.shape[0]:
                raise ValueError(
                    f"{obj.name}: {loadings.shape[0]} loading rows but {len(curves)} volatilities"
                )
            entry = LayoutEntry(obj, start, loadings, list(curves))
            self.entries.append(entry)
            self._by_id[id(obj)] = entry
            start += entry.row_count
        self.row_count = start

    def entry(self, reference: Any) -> LayoutEntry | None:
        """Layout entry of a market object, None if it is not simulated."""
        return self._by_id.get(id(reference))

    @property
    def loadings(self) -> FloatArray:
        """Stacked loadings, shape (row_count, factor_count)."""
        if not self.entries:
            return np.zeros((0, self.factor_count))
        return np.vstack([e.loadings for e in self.entries])

    @property
    def residuals(self) -> FloatArray:
        """Idiosyncratic weights sqrt(1 - |L|²) per row."""
        norms_sq = np.sum(self.loadings**2, axis=1)
        return np.sqrt(np.maximum(1.0 - norms_sq, 0.0))

    def step_variances(self, times: FloatArray) -> FloatArray:
        """Integrated variance per step and row, shape (n_steps, row_count)."""
        result = np.zeros((len(times) - 1, self.row_count))
        for entry in self.entries:
            for k, curve in enumerate(entry.volatilities):
                result[:, entry.start + k] = curve.integrated_variance(times[:-1], times[1:])
        return result


def tenor_weights(
    tenor_times: FloatArray, taus: FloatArray
) -> tuple[IntArray, IntArray, FloatArray]:
    """
    Linear interpolation weights on the tenor grid (flat extrapolation).

    Returns
    -------
    tuple
        (lower index, upper index, weight of the upper node)
    """
    taus = np.asarray(taus, dtype=float)
    if len(tenor_times) == 1:
        zeros = np.zeros(taus.shape, dtype=np.int64)
        return zeros, zeros, np.zeros(taus.shape)
    clipped = np.clip(taus, tenor_times[0], tenor_times[-1])
    hi = np.clip(np.searchsorted(tenor_times, clipped, side="left"), 1, len(tenor_times) - 1)
    lo = hi - 1
    w = (clipped - tenor_times[lo]) / (tenor_times[hi] - tenor_times[lo])
    return lo, hi, w


class MarketState(ABC):
    """
    Market at one simulation date across a set of paths.

    Every method returns per-path values: shape (n_paths,) for a scalar
    maturity and (n_paths, n_maturities) for an array of maturities.
    """

    environment: MarketEnvironment

    @property
    @abstractmethod
    def t(self) -> Year:
        """Simulation time in years."""

    @property
    @abstractmethod
    def n_paths(self) -> int:
        """Number of paths."""

    @property
    @abstractmethod
    def numeraire(self) -> FloatArray:
        """Deflator D(t) per path."""

    @abstractmethod
    def _row_states(self, reference: Any) -> tuple[FloatArray, FloatArray, LayoutEntry] | None:
        """(Y, V, entry) of a simulated object; None when it is deterministic."""

    @abstractmethod
    def _tenor_times(self) -> FloatArray:
        """Tenor grid of curve rows."""

    # Shock helpers

    def _interpolate_rows(self, values: FloatArray, entry: LayoutEntry, taus: FloatArray) -> FloatArray:
        """Row values interpolated on the tenor grid, (n_paths, len(taus))."""
        if entry.is_spot:
            return np.repeat(values[:, :1], len(taus), axis=1)
        lo, hi, w = tenor_weights(self._tenor_times(), taus)
        return values[:, lo] * (1.0 - w) + values[:, hi] * w

    def _curve_shift(self, reference: Any, taus: FloatArray, levels: FloatArray) -> FloatArray | None:
        """Additive shift s(τ) of the forward level of a curve, (n_paths, len(taus))."""
        states = self._row_states(reference)
        if states is None:
            return None
        y, v, entry = states
        if entry.distribution is DistributionType.NORMAL:
            return self._interpolate_rows(y, entry, taus)
        shocks = np.expm1(y - 0.5 * v[None, :])
        return self._interpolate_rows(shocks, entry, taus) * levels[None, :]

    def _log_factor(self, reference: Any, taus: FloatArray) -> FloatArray | None:
        """Lognormal martingale exponent Y - V/2, (n_paths, len(taus))."""
        states = self._row_states(reference)
        if states is None:
            return None
        y, v, entry = states
        return self._interpolate_rows(y - 0.5 * v[None, :], entry, taus)

    def _shape(self, maturities: Year | FloatArray) -> tuple[FloatArray, bool]:
        arr = np.asarray(maturities, dtype=float)
        return np.atleast_1d(arr), arr.ndim == 0

    def _finish(self, values: FloatArray, scalar: bool) -> FloatArray:
        return values[:, 0] if scalar else values

    # Curves

    def discount_factor(self, curve: DiscountCurve, maturities: Year | FloatArray) -> FloatArray:
        """
        Discount factor P_t(t, T) from the simulation date to each maturity.

        Notes
        -----
        P_t(t, T) = P_0(T) / P_0(t) × exp(-τ s(τ)), τ = T - t; maturities
        before t give 1.
        """
        mats, scalar = self._shape(maturities)
        taus = np.maximum(mats - self.t, 0.0)
        base = np.asarray(curve.discount_factor(self.t + taus, self.t), dtype=float)
        levels = curve.forward_zero_rates(self.t, np.maximum(taus, _MIN_TAU))
        shift = self._curve_shift(curve, taus, levels)
        result = np.broadcast_to(base, (self.n_paths, len(mats))).copy()
        if shift is not None:
            result *= np.exp(-taus[None, :] * shift)
        return self._finish(result, scalar)

    def survival_probability(
        self, curve: SurvivalCurve, maturities: Year | FloatArray
    ) -> FloatArray:
        """Survival probability from t to each maturity (hazard shocks)."""
        mats, scalar = self._shape(maturities)
        taus = np.maximum(mats - self.t, 0.0)
        s_t = float(curve.survival_probability(self.t))
        base = np.asarray(curve.survival_probability(self.t + taus), dtype=float) / s_t
        levels = curve.forward_hazard_rates(self.t, np.maximum(taus, _MIN_TAU))
        shift = self._curve_shift(curve, taus, levels)
        result = np.broadcast_to(base, (self.n_paths, len(mats))).copy()
        if shift is not None:
            result *= np.exp(-taus[None, :] * shift)
        return self._finish(result, scalar)

    def forward_price(self, curve: ForwardCurve, maturities: Year | FloatArray) -> FloatArray:
        """Forward price F_t(T) = F_0(T) × exp(Y - V/2)."""
        mats, scalar = self._shape(maturities)
        mats = np.maximum(mats, self.t)
        base = np.asarray(curve.forward_price(mats), dtype=float)
        result = np.broadcast_to(base, (self.n_paths, len(mats))).copy()
        exponent = self._log_factor(curve, mats - self.t)
        if exponent is not None:
            result *= np.exp(exponent)
        return self._finish(result, scalar)

    def fx_spot(self, fx: FxRate) -> FloatArray:
        """Spot FX rate at t: X_0 P_from(t) / P_to(t) × exp(Y - V/2)."""
        base = float(fx.forward(self.t))
        result = np.full(self.n_paths, base)
        exponent = self._log_factor(fx, np.zeros(1))
        if exponent is not None:
            result *= np.exp(exponent[:, 0])
        return result

    def to_base(self, currency: str) -> FloatArray:
        """Value of one unit of ``currency`` in the base currency."""
        base_ccy = self.environment.base_currency
        if currency == base_ccy:
            return np.ones(self.n_paths)
        for fx in self.environment.fx_rates:
            if fx.from_currency == currency and fx.to_currency == base_ccy:
                return self.fx_spot(fx)
        for fx in self.environment.fx_rates:
            if fx.from_currency == base_ccy and fx.to_currency == currency:
                return 1.0 / self.fx_spot(fx)
        raise KeyError(f"No FX rate converting {currency} into {base_ccy}")


class SimulatedMarketState(MarketState):
    """
    Market state of a :class:`PathSet` at one simulation date.

    Parameters
    ----------
    path_set : PathSet
        Simulated paths
    date_index : int
        Index into the simulation grid
    """

    def __init__(self, path_set: "PathSet", date_index: int) -> None:
        self.path_set = path_set
        self.date_index = date_index
        self.environment = path_set.environment

    @property
    def t(self) -> Year:
        return float(self.path_set.times[self.date_index])

    @property
    def n_paths(self) -> int:
        return self.path_set.n_paths

    @property
    def numeraire(self) -> FloatArray:
        return self.path_set.numeraire[:, self.date_index]

    @property
    def explanatory_states(self) -> FloatArray:
        """Factor states at this date, shape (n_paths, row_count)."""
        return self.path_set.states[:, self.date_index, :]

    def _row_states(self, reference: Any) -> tuple[FloatArray, FloatArray, LayoutEntry] | None:
        entry = self.path_set.layout.entry(reference)
        if entry is None:
            return None
        rows = entry.rows
        return (
            self.path_set.states[:, self.date_index, rows],
            self.path_set.variance[self.date_index, rows],
            entry,
        )

    def _tenor_times(self) -> FloatArray:
        return self.path_set.layout.tenor_times


class DeterministicMarketState(MarketState):
    """
    Deterministic forward market seen from the as-of date.

    Curves at time t are the forwards implied by today's curves; this is
    what a zero-volatility simulation reproduces.
    """

    def __init__(self, environment: MarketEnvironment, t: Year, n_paths: int = 1) -> None:
        self.environment = environment
        self._t = float(t)
        self._n_paths = n_paths

    @property
    def t(self) -> Year:
        return self._t

    @property
    def n_paths(self) -> int:
        return self._n_paths

    @property
    def numeraire(self) -> FloatArray:
        return np.full(self._n_paths, float(self.environment.numeraire_curve.discount_factor(self._t)))

    def _row_states(self, reference: Any) -> None:
        return None

    def _tenor_times(self) -> FloatArray:
        return np.zeros(1)


class PathSet:
    """
    Factor states of a set of simulated paths.

    Parameters
    ----------
    environment : MarketEnvironment
        Market objects the states refer to
    layout : FactorLayout
        Row layout of the states
    grid : SimulationDateGrid
        Simulation dates
    path_indices : IntArray
        Global index of every stored path
    path_count : int
        Number of paths of the whole run (path weight 1 / path_count)
    states : StateArray
        Gaussian states Y, shape (n_paths, n_dates, row_count)
    variance : FloatArray
        Accumulated variance V, shape (n_dates, row_count)
    systemic : StateArray
        Systemic Brownian state W, shape (n_paths, n_dates, factor_count)
    radon_nikodym : Any
        Calculator of the measure-change ratios (see
        :class:`ccr_core.simulation.credit.RadonNikodymCalculator`)

    Notes
    -----
    :meth:`refresh` recomputes the numeraire and the Radon-Nikodym ratios
    from the stored states and the current market objects.
    """

    def __init__(
        self,
        environment: MarketEnvironment,
        layout: FactorLayout,
        grid: SimulationDateGrid,
        path_indices: Sequence[int],
        path_count: int,
        states: StateArray,
        variance: FloatArray,
        systemic: StateArray,
        radon_nikodym: Any = None,
    ) -> None:
        self.environment = environment
        self.layout = layout
        self.grid = grid
        self.times = grid.times
        self.path_indices = np.asarray(path_indices, dtype=np.int64)
        self.path_count = path_count
        self.states = states
        self.variance = variance
        self.systemic = systemic
        self.radon_nikodym = radon_nikodym
        n, d = len(self.path_indices), len(self.times)
        self.numeraire: PathArray = np.ones((n, d))
        self.rn_survival: PathArray = np.ones((n, d))
        self.rn_counterparty: PathArray = np.ones((n, d))
        self.rn_own: PathArray = np.ones((n, d))

    @property
    def n_paths(self) -> int:
        return len(self.path_indices)

    @property
    def n_dates(self) -> int:
        return len(self.times)

    @property
    def weights(self) -> FloatArray:
        """Path weights (1 / path_count)."""
        return np.full(self.n_paths, 1.0 / self.path_count)

    def state(self, date_index: int) -> SimulatedMarketState:
        return SimulatedMarketState(self, date_index)

    def refresh(self) -> None:
        """Recompute numeraire and Radon-Nikodym ratios from the stored states."""
        base_curve = self.environment.numeraire_curve
        numeraire = np.ones((self.n_paths, self.n_dates))
        for i in range(self.n_dates - 1):
            step_df = self.state(i).discount_factor(base_curve, self.times[i + 1])
            numeraire[:, i + 1] = numeraire[:, i] * step_df
        self.numeraire = numeraire
        if self.radon_nikodym is not None:
            self.rn_survival, self.rn_counterparty, self.rn_own = self.radon_nikodym.ratios(self)

    def rescale_rows(
        self, reference: Any, factor: float, rows: Sequence[bool] | None = None
    ) -> None:
        """
        Scale the states of one object by ``factor`` and its variance by ``factor**2``.

        ``rows`` masks the rows of the object to scale (default all). New
        arrays are allocated, so a :meth:`snapshot` taken before stays
        valid.
        """
        entry = self.layout.entry(reference)
        if entry is None:
            return
        selected = np.arange(entry.start, entry.start + entry.row_count)
        if rows is not None:
            mask = np.asarray(rows, dtype=bool)
            if mask.shape != (entry.row_count,):
                raise ValueError(
                    f"{reference.name}: row mask has {mask.size} entries, expected {entry.row_count}"
                )
            selected = selected[mask]
        self.states = self.states.copy()
        self.variance = self.variance.copy()
        self.states[:, :, selected] *= factor
        self.variance[:, selected] *= factor**2

    def snapshot(self) -> tuple[FloatArray, ...]:
        """References to the mutable arrays, for :meth:`restore`."""
        return (
            self.states,
            self.variance,
            self.numeraire,
            self.rn_survival,
            self.rn_counterparty,
            self.rn_own,
        )

    def restore(self, snapshot: tuple[FloatArray, ...]) -> None:
        (
            self.states,
            self.variance,
            self.numeraire,
            self.rn_survival,
            self.rn_counterparty,
            self.rn_own,
        ) = snapshot

    def select(self, positions: Sequence[int] | slice) -> "PathSet":
        """Path set restricted to some stored paths (by position)."""
        subset = PathSet(
            self.environment,
            self.layout,
            self.grid,
            self.path_indices[positions],
            self.path_count,
            self.states[positions],
            self.variance,
            self.systemic[positions],
            self.radon_nikodym,
        )
        subset.numeraire = self.numeraire[positions]
        subset.rn_survival = self.rn_survival[positions]
        subset.rn_counterparty = self.rn_counterparty[positions]
        subset.rn_own = self.rn_own[positions]
        return subset

    def first_paths(self, count: int) -> "PathSet":
        """Paths whose global index is below ``count``."""
        return self.select(np.flatnonzero(self.path_indices < count))

    @classmethod
    def concatenate(cls, parts: Sequence["PathSet"]) -> "PathSet":
        """Join path sets of one run in the given order."""
        if not parts:
            raise ValueError("Nothing to concatenate")
        first = parts[0]
        joined = cls(
            first.environment,
            first.layout,
            first.grid,
            np.concatenate([p.path_indices for p in parts]),
            first.path_count,
            np.concatenate([p.states for p in parts]),
            first.variance,
            np.concatenate([p.systemic for p in parts]),
            first.radon_nikodym,
        )
        joined.numeraire = np.concatenate([p.numeraire for p in parts])
        joined.rn_survival = np.concatenate([p.rn_survival for p in parts])
        joined.rn_counterparty = np.concatenate([p.rn_counterparty for p in parts])
        joined.rn_own = np.concatenate([p.rn_own for p in parts])
        return joined

    def __repr__(self) -> str:
        return (
            f"PathSet(paths={self.n_paths}/{self.path_count}, dates={self.n_dates}, "
            f"rows={self.layout.row_count})"
        )
