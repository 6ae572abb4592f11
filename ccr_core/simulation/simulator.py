"""
Joint Monte Carlo simulation of all calibrated market objects.

Every calibrated row (a curve tenor or a spot) carries a Gaussian state
driven by the systemic factors through its loadings and by its own
idiosyncratic draw. Each path consumes one block of the multi-stream
generator, so any subset of paths can be simulated on any thread with
bit-identical results.
"""

import logging
from collections.abc import Sequence

import numpy as np

from ccr_core.errors import SimulationError
from ccr_core.market.dates import SimulationDateGrid
from ccr_core.market.environment import MarketEnvironment
from ccr_core.model.factors import FactorLoadingCollection, VolatilityCollection
from ccr_core.rng import MultiStreamRandomGenerator, RandomKind
from ccr_core.simulation.credit import CreditSetup, RadonNikodymCalculator
from ccr_core.simulation.paths import FactorLayout, PathSet

logger = logging.getLogger("CCR.Simulation")


class PathSimulator:
    """
    Monte Carlo engine for the calibrated factor model.

    Parameters
    ----------
    environment : MarketEnvironment
        Market objects of the run
    factor_loadings : FactorLoadingCollection
        Calibrated loadings
    volatilities : VolatilityCollection
        Calibrated volatilities
    credit : CreditSetup | None
        Credit curves used for the Radon-Nikodym ratios

    Example
    -------
    >>> simulator = PathSimulator(env, fl, vc, credit)
    >>> grid = SimulationDateGrid.build(env.as_of, "12Y", "6M")
    >>> rng = simulator.create_generator(grid, seed=42)
    >>> paths = simulator.simulate(grid, rng, range(1000))
    >>> paths.states.shape[:2]
    (1000, 25)
    """

    def __init__(
        self,
        environment: MarketEnvironment,
        factor_loadings: FactorLoadingCollection,
        volatilities: VolatilityCollection,
        credit: CreditSetup | None = None,
    ) -> None:
        self.environment = environment
        self.factor_loadings = factor_loadings
        self.volatilities = volatilities
        self.credit = credit if credit is not None else CreditSetup()
        self.layout = FactorLayout(environment, factor_loadings, volatilities)
        self._loadings = self.layout.loadings
        self._residuals = self.layout.residuals
        self.radon_nikodym = RadonNikodymCalculator(self.credit, self.layout)

    @property
    def factor_count(self) -> int:
        return self.layout.factor_count

    @property
    def draws_per_step(self) -> int:
        """Systemic plus idiosyncratic draws per step."""
        return self.layout.factor_count + self.layout.row_count

    def create_generator(
        self,
        grid: SimulationDateGrid,
        seed: int = 42,
        kind: "RandomKind | str" = RandomKind.PCG64,
    ) -> MultiStreamRandomGenerator:
        """Random generator with the block layout this simulator consumes."""
        return MultiStreamRandomGenerator.create(kind, self.draws_per_step, grid.steps, seed)

    def simulate(
        self,
        grid: SimulationDateGrid,
        rng: MultiStreamRandomGenerator,
        path_indices: Sequence[int],
        path_count: int | None = None,
    ) -> PathSet:
        """
        Simulate a set of paths.

        Parameters
        ----------
        grid : SimulationDateGrid
            Simulation dates
        rng : MultiStreamRandomGenerator
            Generator (not shared across threads; use ``rng.clone()``)
        path_indices : Sequence[int]
            Global path indices to simulate
        path_count : int | None
            Paths of the whole run (default ``len(path_indices)``)

        Returns
        -------
        PathSet
            States, numeraire and Radon-Nikodym ratios of the paths

        Raises
        ------
        SimulationError
            If the generator layout does not match the model and grid
        """
        indices = np.asarray(list(path_indices), dtype=np.int64)
        n_steps = len(grid) - 1
        if rng.factor_count != self.draws_per_step or rng.date_count != n_steps:
            raise SimulationError(
                f"Generator layout {rng.factor_count}x{rng.date_count} does not match "
                f"{self.draws_per_step} draws per step over {n_steps} steps"
            )
        path_count = path_count if path_count is not None else len(indices)
        n = len(indices)
        n_f = self.layout.factor_count
        n_rows = self.layout.row_count
        times = grid.times

        draws = np.empty((n, rng.block_size))
        for k, p in enumerate(indices):
            rng.normal(int(p), out=draws[k])
        z = draws.reshape(n, n_steps, self.draws_per_step)
        z_sys = z[:, :, :n_f]
        z_idio = z[:, :, n_f:]

        step_variance = self.layout.step_variances(times)
        step_vol = np.sqrt(step_variance)
        increments = z_idio * self._residuals[None, None, :]
        # Explicit loop keeps every path's result independent of the batch size
        for f in range(n_f):
            increments += z_sys[:, :, f, None] * self._loadings[None, None, :, f]
        increments *= step_vol[None, :, :]

        states = np.zeros((n, n_steps + 1, n_rows))
        states[:, 1:, :] = np.cumsum(increments, axis=1)
        variance = np.zeros((n_steps + 1, n_rows))
        variance[1:] = np.cumsum(step_variance, axis=0)

        systemic = np.zeros((n, n_steps + 1, n_f))
        systemic[:, 1:, :] = np.cumsum(z_sys * np.sqrt(grid.steps)[None, :, None], axis=1)

        path_set = PathSet(
            self.environment,
            self.layout,
            grid,
            indices,
            path_count,
            states,
            variance,
            systemic,
            self.radon_nikodym,
        )
        path_set.refresh()
        logger.debug("Simulated %d paths over %d dates", n, n_steps + 1)
        return path_set

    def with_volatilities(self, volatilities: VolatilityCollection) -> "PathSimulator":
        """Simulator of the same model with other volatilities (e.g. zeroed)."""
        return PathSimulator(self.environment, self.factor_loadings, volatilities, self.credit)
