"""
Top-level driver of a counterparty credit risk run.

Chains calibration, path simulation, portfolio valuation, netting and
exposure aggregation:

    CCRCalculations(env, context, trades, netting, credit, settings)
        .execute()       # calibrate, simulate, value, net, aggregate
        .get_measure()   # CVA, DVA, FVA, EE, PFE, ...
        .results()       # pandas table (measure, tenor, value)

Paths are simulated in chunks on a thread pool. Every chunk clones the
random generator and fills its own rows, and chunks are joined in path
order, so the results do not depend on the thread count or the chunk size.
"""

import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pandas as pd

from ccr_core.calibration.context import CalibrationContext
from ccr_core.calibration.engine import calibrate_monte_carlo_model
from ccr_core.clone import DeepCloneable
from ccr_core.config.models import SimulationConfig
from ccr_core.exposure.aggregator import ExposureAggregator
from ccr_core.exposure.measures import Measure, MeasureKind, MeasureRequest
from ccr_core.exposure.netting import NettingSet, PathExposures
from ccr_core.exposure.pathwise import PathwiseAccumulator, run_simulation_path, value_and_net
from ccr_core.instruments.base import Trade
from ccr_core.market.dates import DAYS_PER_YEAR, SimulationDateGrid
from ccr_core.market.environment import MarketEnvironment
from ccr_core.simulation.credit import CreditSetup, DefaultKernels
from ccr_core.simulation.paths import PathSet
from ccr_core.simulation.simulator import PathSimulator
from ccr_core.valuation.engine import PortfolioValuationEngine

logger = logging.getLogger("CCR.Calculations")

# Profile measures reported per simulation date by default
_PROFILE_MEASURES = (Measure.EE, Measure.EE0, Measure.NEE, Measure.PFE)


def exercise_dates(as_of: date, trades: Iterable[Trade]) -> list[date]:
    """Exercise dates of the early-exercise trades, rounded to whole days."""
    dates = set()
    for trade in trades:
        adapter = trade.american_monte_carlo()
        if adapter is None:
            continue
        for t in adapter.exercise_times:
            dates.add(as_of + timedelta(days=int(round(float(t) * DAYS_PER_YEAR))))
    return sorted(dates)


def default_requests(grid: SimulationDateGrid) -> list[MeasureRequest]:
    """Life-of-deal values of every integrated and average measure, plus profiles per date."""
    requests = [
        MeasureRequest(m) for m in Measure if m.kind is not MeasureKind.PROFILE
    ]
    for m in _PROFILE_MEASURES:
        requests.extend(MeasureRequest(m, d) for d in grid.dates)
    return requests


class CCRCalculations(DeepCloneable):
    """
    Counterparty credit risk calculation for one portfolio.

    Parameters
    ----------
    environment : MarketEnvironment
        Market objects of the run
    context : CalibrationContext
        Factor model calibration inputs
    trades : Sequence[Trade]
        Portfolio
    netting : NettingSet | None
        Netting groups and collateral (None: every trade gross)
    credit : CreditSetup | None
        Counterparty, own and funding curves
    settings : SimulationConfig | None
        Monte Carlo parameters
    grid : SimulationDateGrid | None
        Simulation dates (default: regular grid from ``settings`` merged
        with the exercise dates of early-exercise trades)
    requests : Sequence[MeasureRequest] | None
        Rows of :meth:`results` (default: :func:`default_requests`)

    Example
    -------
    >>> calc = CCRCalculations(env, context, trades, netting, credit, SimulationConfig(n_paths=5000))
    >>> calc.execute()
    >>> calc.get_measure(Measure.CVA)
    -12345.6
    """

    _clone_reset = frozenset(
        {
            "factor_loadings",
            "volatilities",
            "simulator",
            "rng",
            "valuation",
            "zero_valuation",
            "path_set",
            "zero_path_set",
            "exposures",
            "zero_exposures",
            "_aggregator",
        }
    )

    def __init__(
        self,
        environment: MarketEnvironment,
        context: CalibrationContext,
        trades: Sequence[Trade],
        netting: NettingSet | None = None,
        credit: CreditSetup | None = None,
        settings: SimulationConfig | None = None,
        grid: SimulationDateGrid | None = None,
        requests: Sequence[MeasureRequest] | None = None,
    ) -> None:
        self.environment = environment
        self.context = context
        self.trades = list(trades)
        self.netting = netting if netting is not None else NettingSet()
        self.credit = credit if credit is not None else CreditSetup()
        self.settings = settings if settings is not None else SimulationConfig()
        if grid is None:
            grid = SimulationDateGrid.build(
                environment.as_of,
                self.settings.horizon,
                self.settings.step,
                exercise_dates(environment.as_of, self.trades),
            )
        self.grid = grid
        self.requests = list(requests) if requests is not None else None

        self.factor_loadings = None
        self.volatilities = None
        self.simulator: PathSimulator | None = None
        self.rng = None
        self.valuation: PortfolioValuationEngine | None = None
        self.zero_valuation: PortfolioValuationEngine | None = None
        self.path_set: PathSet | None = None
        self.zero_path_set: PathSet | None = None
        self.exposures: PathExposures | None = None
        self.zero_exposures: PathExposures | None = None
        self._aggregator: ExposureAggregator | None = None

    @property
    def is_executed(self) -> bool:
        return self._aggregator is not None

    @property
    def aggregator(self) -> ExposureAggregator:
        """Exposure aggregator of the run (executes on first use)."""
        if self._aggregator is None:
            self.execute()
        return self._aggregator

    def _chunks(self) -> list[range]:
        n, size = self.settings.n_paths, self.settings.chunk_size
        return [range(start, min(start + size, n)) for start in range(0, n, size)]

    def _simulate_chunk(self, paths: range) -> PathSet:
        return self.simulator.simulate(self.grid, self.rng.clone(), paths, self.settings.n_paths)

    def _bulk_chunk(self, paths: range) -> tuple[PathSet, PathExposures]:
        path_set = self._simulate_chunk(paths)
        exposures = value_and_net(path_set, self.valuation, self.trades, self.netting)
        logger.debug("Valued paths %d-%d", paths.start, paths.stop - 1)
        return path_set, exposures

    def _pathwise_chunk(self, paths: range, accumulator: PathwiseAccumulator) -> None:
        rng = self.rng.clone()
        for p in paths:
            accumulator.record(
                p,
                run_simulation_path(
                    self.simulator,
                    self.grid,
                    rng,
                    p,
                    self.settings.n_paths,
                    self.valuation,
                    self.trades,
                    self.netting,
                ),
            )
        logger.debug("Streamed paths %d-%d", paths.start, paths.stop - 1)

    def _zero_volatility_run(self) -> None:
        """Single deterministic path of the model with all volatilities zeroed."""
        zero_simulator = self.simulator.with_volatilities(self.volatilities.zeroed())
        rng = zero_simulator.create_generator(self.grid, self.settings.seed, self.settings.rng_kind)
        self.zero_valuation = PortfolioValuationEngine(1, self.settings.regression_degree)
        self.zero_path_set = zero_simulator.simulate(self.grid, rng, [0], 1)
        self.zero_exposures = value_and_net(
            self.zero_path_set,
            self.zero_valuation,
            self.trades,
            self.netting,
            use_radon_nikodym=False,
        )

    def _kernels(self) -> DefaultKernels:
        """Default kernels consistent with the stored paths' variance."""
        variance = self.path_set.variance if self.path_set is not None else None
        return self.simulator.radon_nikodym.kernels(self.grid.times, variance)

    def _aggregate(self) -> None:
        kernels = self._kernels()
        self._aggregator = ExposureAggregator(
            self.exposures,
            self.grid,
            kernels,
            self.zero_exposures,
            self.settings.pfe_quantile,
        )

    def _build_model(self) -> None:
        s = self.settings
        self.factor_loadings, self.volatilities = calibrate_monte_carlo_model(
            self.context, parallel=s.parallel_calibration, max_workers=s.threads
        )
        self.simulator = PathSimulator(
            self.environment, self.factor_loadings, self.volatilities, self.credit
        )
        self.rng = self.simulator.create_generator(self.grid, s.seed, s.rng_kind)

    def execute(self) -> "CCRCalculations":
        """
        Run the whole calculation.

        Returns
        -------
        CCRCalculations
            self, for chaining

        Raises
        ------
        CalibrationError
            If the factor model cannot be calibrated
        RegressionError
            If an early-exercise regression is ill-posed
        """
        s = self.settings
        logger.info(
            "Running %d trades on %d paths over %d dates (%s mode, %d thread(s))",
            len(self.trades),
            s.n_paths,
            len(self.grid),
            s.mode,
            s.threads,
        )
        self._build_model()
        self.valuation = PortfolioValuationEngine(s.amc_training_paths, s.regression_degree)
        if any(t.american_monte_carlo() is not None for t in self.trades):
            training = self.simulator.simulate(
                self.grid, self.rng.clone(), range(s.training_paths), s.n_paths
            )
            self.valuation.fit(training, self.trades)

        chunks = self._chunks()
        self.path_set = None
        if s.mode == "bulk":
            with ThreadPoolExecutor(max_workers=s.threads) as pool:
                parts = list(pool.map(self._bulk_chunk, chunks))
            self.path_set = PathSet.concatenate([p for p, _ in parts])
            self.exposures = PathExposures.concatenate([e for _, e in parts])
        else:
            accumulator = PathwiseAccumulator(s.n_paths, len(self.grid))
            with ThreadPoolExecutor(max_workers=s.threads) as pool:
                list(pool.map(lambda c: self._pathwise_chunk(c, accumulator), chunks))
            self.exposures = accumulator.result()

        self._zero_volatility_run()
        self._aggregate()
        logger.info("Run complete: CVA %.2f", self._aggregator.get_measure(Measure.CVA))
        return self

    def get_measure(
        self,
        measure: "Measure | str",
        when: "date | str | None" = None,
        quantile: float | None = None,
    ) -> float:
        """Value of one measure (see :meth:`ExposureAggregator.get_measure`)."""
        return self.aggregator.get_measure(measure, when, quantile)

    def results(self, requests: Sequence[MeasureRequest] | None = None) -> pd.DataFrame:
        """
        Requested measures as a table.

        Returns
        -------
        pd.DataFrame
            Columns ``measure, tenor, value``; tenor is ``"None"`` for
            life-of-deal values and the ISO date otherwise
        """
        if requests is None:
            requests = self.requests if self.requests is not None else default_requests(self.grid)
        rows = self.aggregator.evaluate(requests)
        return pd.DataFrame(rows, columns=["measure", "tenor", "value"])

    def stored_path_set(self) -> PathSet:
        """
        Simulated paths of the run.

        In pathwise mode paths are not kept during :meth:`execute`; they are
        simulated here with the run's generator (identical draws).
        """
        if self.simulator is None:
            self.execute()
        if self.path_set is None:
            with ThreadPoolExecutor(max_workers=self.settings.threads) as pool:
                parts = list(pool.map(self._simulate_chunk, self._chunks()))
            self.path_set = PathSet.concatenate(parts)
        return self.path_set

    def resimulate(self) -> None:
        """
        Recalibrate the model and simulate the stored paths again.

        The run's seed is reused, so every path consumes the same draws.
        Exposures are left unchanged until :meth:`revalue`.
        """
        if self.simulator is None:
            self.execute()
        self._build_model()
        self.path_set = None
        self.stored_path_set()

    def model_snapshot(self) -> tuple:
        """Calibrated model and stored paths, for :meth:`restore_model`."""
        return (self.factor_loadings, self.volatilities, self.simulator, self.rng, self.path_set)

    def restore_model(self, snapshot: tuple) -> None:
        (
            self.factor_loadings,
            self.volatilities,
            self.simulator,
            self.rng,
            self.path_set,
        ) = snapshot

    def revalue(self) -> None:
        """
        Recompute the measures on the stored paths after an in-place market change.

        Numeraire and Radon-Nikodym ratios are re-derived from the stored
        states, regressions are refitted on the same training paths and no
        new random numbers are drawn.
        """
        path_set = self.stored_path_set()
        path_set.refresh()
        self.zero_path_set.refresh()
        self.valuation.reset()
        self.zero_valuation.reset()
        self.exposures = value_and_net(path_set, self.valuation, self.trades, self.netting)
        self.zero_exposures = value_and_net(
            self.zero_path_set,
            self.zero_valuation,
            self.trades,
            self.netting,
            use_radon_nikodym=False,
        )
        self._aggregate()

    def reprice(self, trades: Sequence[Trade]) -> ExposureAggregator:
        """
        Measures of another trade list on the stored paths (marginal runs).

        Paths are reused without new draws. Early-exercise trades already
        fitted keep their regressions; new ones are fitted on the run's
        training paths. Exercise dates of new trades are snapped to the
        existing grid.
        """
        path_set = self.stored_path_set()
        exposures = value_and_net(path_set, self.valuation, trades, self.netting)
        zero_exposures = value_and_net(
            self.zero_path_set, self.zero_valuation, trades, self.netting, use_radon_nikodym=False
        )
        kernels = self._kernels()
        return ExposureAggregator(
            exposures, self.grid, kernels, zero_exposures, self.settings.pfe_quantile
        )

    def __repr__(self) -> str:
        return (
            f"CCRCalculations(trades={len(self.trades)}, paths={self.settings.n_paths}, "
            f"dates={len(self.grid)}, executed={self.is_executed})"
        )
