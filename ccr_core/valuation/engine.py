"""
Path-wise valuation of a portfolio on simulated paths.

Closed-form trades are valued date by date from the market state; trades
with an early-exercise adapter are valued by least-squares Monte Carlo,
fitted once on the training paths of the run.
"""

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

import numpy as np

from ccr_core._types import PathArray, StateArray
from ccr_core.clone import DeepCloneable
from ccr_core.errors import RegressionError
from ccr_core.instruments.base import Trade
from ccr_core.simulation.paths import PathSet
from ccr_core.valuation.amc import LeastSquaresMonteCarlo

logger = logging.getLogger("CCR.Valuation")


@dataclass
class TradeValues:
    """
    Trade values per path and simulation date.

    Attributes
    ----------
    trades : list[Trade]
        Valued trades, in column order
    values : StateArray
        Values in base currency, shape (n_paths, n_dates, n_trades)
    """

    trades: list[Trade]
    values: StateArray

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.trades]

    @property
    def n_paths(self) -> int:
        return self.values.shape[0]

    def of(self, name: str) -> PathArray:
        """Values of one trade, shape (n_paths, n_dates)."""
        return self.values[:, :, self.names.index(name)]

    def total(self) -> PathArray:
        """Portfolio value (no netting), shape (n_paths, n_dates)."""
        return self.values.sum(axis=2)


class PortfolioValuationEngine(DeepCloneable):
    """
    Values trades on path sets.

    Parameters
    ----------
    amc_training_paths : int
        Number of leading paths (by global index) used to fit the
        least-squares regressions
    regression_degree : int
        Polynomial degree of the regression basis

    Example
    -------
    >>> engine = PortfolioValuationEngine(amc_training_paths=2000)
    >>> engine.fit(path_set.first_paths(2000), trades)
    >>> values = engine.value(path_set, trades)
    >>> values.values.shape
    (5000, 25, 3)
    """

    _clone_reset = frozenset({"_regressions"})

    def __init__(self, amc_training_paths: int = 2000, regression_degree: int = 2) -> None:
        if amc_training_paths < 1:
            raise ValueError(f"amc_training_paths must be positive, got {amc_training_paths}")
        self.amc_training_paths = amc_training_paths
        self.regression_degree = regression_degree
        self._regressions: dict[int, LeastSquaresMonteCarlo] | None = {}

    @property
    def regressions(self) -> dict[int, LeastSquaresMonteCarlo]:
        """Fitted regressions keyed by trade identity."""
        if self._regressions is None:
            self._regressions = {}
        return self._regressions

    def reset(self) -> None:
        """Drop all fitted regressions (needed after the market changed)."""
        self._regressions = {}

    def fit(self, training: PathSet, trades: Iterable[Trade]) -> None:
        """
        Fit the regressions of all early-exercise trades.

        Parameters
        ----------
        training : PathSet
            Training paths
        trades : Iterable[Trade]
            Trades; those without an adapter are ignored
        """
        count = 0
        for trade in trades:
            adapter = trade.american_monte_carlo()
            if adapter is None:
                continue
            lsmc = LeastSquaresMonteCarlo(adapter, self.regression_degree, trade.name)
            lsmc.fit(training)
            self.regressions[id(trade)] = lsmc
            count += 1
        if count:
            logger.info("Fitted %d early-exercise trade(s) on %d paths", count, training.n_paths)

    def value(self, path_set: PathSet, trades: Sequence[Trade]) -> TradeValues:
        """
        Value trades on every path and date of a path set.

        Unfitted early-exercise trades are fitted on the training paths
        contained in ``path_set``.

        Raises
        ------
        RegressionError
            If a regression is ill-posed or no training paths are available
        """
        trades = list(trades)
        missing = [
            t for t in trades if t.american_monte_carlo() is not None and id(t) not in self.regressions
        ]
        if missing:
            training = path_set.first_paths(self.amc_training_paths)
            if training.n_paths == 0:
                raise RegressionError(
                    f"{missing[0].name}: path set holds no training paths for the regression"
                )
            self.fit(training, missing)

        values = np.zeros((path_set.n_paths, path_set.n_dates, len(trades)))
        closed_form = [(k, t) for k, t in enumerate(trades) if t.american_monte_carlo() is None]
        for j in range(path_set.n_dates):
            state = path_set.state(j)
            for k, trade in closed_form:
                if not trade.is_expired(state.t):
                    values[:, j, k] = trade.pv(state)
        for k, trade in enumerate(trades):
            if trade.american_monte_carlo() is not None:
                values[:, :, k] = self.regressions[id(trade)].values(path_set)
        logger.debug("Valued %d trades on %r", len(trades), path_set)
        return TradeValues(trades, values)

    def value_paths(
        self, path_sets: Iterable[PathSet], trades: Sequence[Trade]
    ) -> Iterator[TradeValues]:
        """Value a stream of path sets lazily."""
        for path_set in path_sets:
            yield self.value(path_set, trades)
