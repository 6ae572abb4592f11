"""
Streaming (path-by-path) exposure engine.

Each path is simulated, valued and netted on its own, and only its netted
quantities are kept; trade value grids are never stored for the whole run.
"""

import logging
from collections.abc import Sequence

import numpy as np

from ccr_core.errors import SimulationError
from ccr_core.exposure.netting import NettingSet, PathExposures
from ccr_core.instruments.base import Trade
from ccr_core.market.dates import SimulationDateGrid
from ccr_core.rng import MultiStreamRandomGenerator
from ccr_core.simulation.paths import PathSet
from ccr_core.simulation.simulator import PathSimulator
from ccr_core.valuation.engine import PortfolioValuationEngine

logger = logging.getLogger("CCR.Exposure")


def value_and_net(
    path_set: PathSet,
    valuation: PortfolioValuationEngine,
    trades: Sequence[Trade],
    netting: NettingSet,
    use_radon_nikodym: bool = True,
) -> PathExposures:
    """
    Value the trades on a path set and net them.

    Parameters
    ----------
    path_set : PathSet
        Simulated paths
    valuation : PortfolioValuationEngine
        Valuation engine (regressions fitted or fittable on ``path_set``)
    trades : Sequence[Trade]
        Portfolio
    netting : NettingSet
        Netting groups and collateral
    use_radon_nikodym : bool
        Attach the path set's ratios (False: ratios of one)

    Returns
    -------
    PathExposures
        Netted quantities of the paths
    """
    values = valuation.value(path_set, trades)
    positive, negative = netting.net(values.values, values.trades, path_set.times)
    return PathExposures.from_path_set(path_set, positive, negative, use_radon_nikodym)


def run_simulation_path(
    simulator: PathSimulator,
    grid: SimulationDateGrid,
    rng: MultiStreamRandomGenerator,
    path_index: int,
    path_count: int,
    valuation: PortfolioValuationEngine,
    trades: Sequence[Trade],
    netting: NettingSet,
    use_radon_nikodym: bool = True,
) -> PathExposures:
    """Simulate, value and net a single path."""
    path_set = simulator.simulate(grid, rng, [path_index], path_count)
    return value_and_net(path_set, valuation, trades, netting, use_radon_nikodym)


class PathwiseAccumulator:
    """
    Per-path netted quantities of a run, filled slot by slot.

    Workers write disjoint slots of preallocated arrays, so the final
    arrays are in slot order whatever the completion order.

    Parameters
    ----------
    n_paths : int
        Number of slots
    n_dates : int
        Number of simulation dates

    Example
    -------
    >>> acc = PathwiseAccumulator(5000, len(grid))
    >>> acc.record(17, run_simulation_path(sim, grid, rng, 17, 5000, engine, trades, netting))
    """

    def __init__(self, n_paths: int, n_dates: int) -> None:
        self._exposures = PathExposures.allocate(n_paths, n_dates)
        self._filled = np.zeros(n_paths, dtype=bool)

    @property
    def n_filled(self) -> int:
        return int(self._filled.sum())

    def record(self, slot: int, exposures: PathExposures) -> None:
        """Store the quantities of one path (``exposures`` holds one path)."""
        if exposures.n_paths != 1:
            raise ValueError(f"Expected one path, got {exposures.n_paths}")
        if self._filled[slot]:
            raise SimulationError(f"Path slot {slot} recorded twice")
        self._exposures.assign(slice(slot, slot + 1), exposures)
        self._filled[slot] = True

    def result(self) -> PathExposures:
        """
        Netted quantities of all paths.

        Raises
        ------
        SimulationError
            If some slot was never recorded
        """
        missing = int((~self._filled).sum())
        if missing:
            raise SimulationError(f"{missing} path(s) were not recorded")
        logger.debug("Accumulated %d paths", len(self._filled))
        return self._exposures
