"""
Least-squares American Monte Carlo (Longstaff-Schwartz).

The backward pass runs on a fixed set of training paths and fits, per
simulation date, polynomial coefficients of the continuation value in the
trade's explanatory variable. The forward pass applies the coefficients to
any path set, path by path, and tracks exercise decisions through time.
"""

import logging
from dataclasses import dataclass

import numpy as np

from ccr_core._types import FloatArray, PathArray
from ccr_core.errors import RegressionError
from ccr_core.instruments.base import AmericanMonteCarloAdapter
from ccr_core.simulation.paths import PathSet

logger = logging.getLogger("CCR.Valuation")

# Relative spread below which a sample is treated as constant
_CONSTANT_TOL = 1e-12


@dataclass
class RegressionFit:
    """Continuation-value regression at one simulation date."""

    coefficients: FloatArray
    mean: float
    std: float

    def predict(self, x: FloatArray) -> FloatArray:
        """Evaluate the fitted polynomial path by path."""
        z = (x - self.mean) / self.std if self.std > 0 else np.zeros_like(x)
        result = np.full(x.shape, self.coefficients[0])
        power = np.ones_like(z)
        for c in self.coefficients[1:]:
            power = power * z
            result = result + c * power
        return result


def _is_constant(values: FloatArray) -> bool:
    scale = max(1.0, float(np.max(np.abs(values)))) if values.size else 1.0
    return values.size == 0 or float(np.ptp(values)) <= _CONSTANT_TOL * scale


class LeastSquaresMonteCarlo:
    """
    Regression-based valuation of one early-exercise trade.

    Parameters
    ----------
    adapter : AmericanMonteCarloAdapter
        Exercise description of the trade
    degree : int
        Polynomial degree of the regression basis (default 2)
    name : str
        Trade name used in log and error messages

    Example
    -------
    >>> lsmc = LeastSquaresMonteCarlo(swaption.american_monte_carlo(), degree=2)
    >>> lsmc.fit(path_set.first_paths(2000))
    >>> values = lsmc.values(path_set)
    """

    def __init__(
        self, adapter: AmericanMonteCarloAdapter, degree: int = 2, name: str = "trade"
    ) -> None:
        if degree < 0:
            raise ValueError(f"Regression degree must be non-negative, got {degree}")
        self.adapter = adapter
        self.degree = degree
        self.name = name
        self.fits: dict[int, RegressionFit] = {}
        self._times: FloatArray | None = None
        self._exercise_indices: list[int] = []

    @property
    def is_fitted(self) -> bool:
        return self._times is not None

    def exercise_indices(self, times: FloatArray) -> list[int]:
        """Grid indices of the exercise dates (each snapped to the next grid date)."""
        indices = np.searchsorted(times, self.adapter.exercise_times, side="left")
        dropped = int(np.sum(indices >= len(times)))
        if dropped:
            logger.warning(
                "%s: %d exercise date(s) beyond the simulation horizon ignored", self.name, dropped
            )
        return sorted({int(i) for i in indices if i < len(times)})

    def _fit_date(self, x: FloatArray, y: FloatArray, date_index: int) -> RegressionFit:
        """Fit continuation values y (already scaled by notional) at one date."""
        if y.size == 0:
            raise RegressionError(f"{self.name}: no training paths for the regression")
        mean = float(np.mean(x))
        std = float(np.std(x))
        constant_x = std <= _CONSTANT_TOL * max(1.0, abs(mean))
        if self.degree == 0 or date_index == 0 or constant_x:
            if constant_x and date_index > 0 and self.degree > 0 and not _is_constant(y):
                raise RegressionError(
                    f"{self.name}: explanatory variable is constant at date index "
                    f"{date_index} while continuation values vary"
                )
            return RegressionFit(np.array([float(np.mean(y))]), mean, 0.0)
        z = (x - mean) / std
        basis = np.vander(z, self.degree + 1, increasing=True)
        coefficients, _, rank, _ = np.linalg.lstsq(basis, y, rcond=None)
        if rank < basis.shape[1]:
            raise RegressionError(
                f"{self.name}: rank-deficient regression basis at date index {date_index} "
                f"(rank {rank} < {basis.shape[1]})"
            )
        return RegressionFit(coefficients, mean, std)

    def fit(self, training: PathSet) -> None:
        """
        Backward pass on the training paths.

        Parameters
        ----------
        training : PathSet
            Training paths (fixed across runs so that results reproduce)

        Raises
        ------
        RegressionError
            If a regression at some date is ill-posed
        """
        times = training.times
        exercise = self.exercise_indices(times)
        self.fits = {}
        self._times = times
        self._exercise_indices = exercise
        if not exercise:
            return
        evaluator = self.adapter.evaluator
        scale = self.adapter.notional
        numeraire = training.numeraire
        # Deflated value of the realised exercise strategy
        deflated = np.zeros(training.n_paths)
        for j in range(exercise[-1], -1, -1):
            state = training.state(j)
            target = deflated / numeraire[:, j]
            fit = self._fit_date(self.adapter.explanatory_variable(state), target / scale, j)
            self.fits[j] = fit
            if j in exercise:
                continuation = fit.predict(self.adapter.explanatory_variable(state)) * scale
                exercise_value = evaluator.exercise_value(state)
                decision = evaluator.should_exercise(exercise_value, continuation)
                deflated = np.where(decision, exercise_value * numeraire[:, j], deflated)
        logger.debug(
            "%s: fitted %d regressions on %d training paths",
            self.name,
            len(self.fits),
            training.n_paths,
        )

    def values(self, path_set: PathSet) -> PathArray:
        """
        Forward pass: trade value per path and simulation date.

        Parameters
        ----------
        path_set : PathSet
            Paths on the grid used for fitting

        Returns
        -------
        PathArray
            Values in base currency, shape (n_paths, n_dates)
        """
        if self._times is None:
            raise RegressionError(f"{self.name}: regression used before fitting")
        if len(path_set.times) != len(self._times) or not np.allclose(path_set.times, self._times):
            raise ValueError(f"{self.name}: path set grid differs from the fitting grid")
        n, d = path_set.n_paths, path_set.n_dates
        result = np.zeros((n, d))
        if not self._exercise_indices:
            return result
        evaluator = self.adapter.evaluator
        physical = self.adapter.physical_settlement
        last = self._exercise_indices[-1]
        exercised = np.zeros(n, dtype=bool)
        for j in range(d):
            state = path_set.state(j)
            if j > last:
                if physical and np.any(exercised):
                    result[:, j] = np.where(exercised, self.adapter.post_exercise_value(state), 0.0)
                continue
            fit = self.fits[j]
            value = fit.predict(self.adapter.explanatory_variable(state)) * self.adapter.notional
            if j in self._exercise_indices:
                exercise_value = evaluator.exercise_value(state)
                now = ~exercised & evaluator.should_exercise(exercise_value, value)
                if physical:
                    exercised |= now
                    value = np.where(exercised, self.adapter.post_exercise_value(state), value)
                else:
                    value = np.where(exercised, 0.0, np.where(now, exercise_value, value))
                    exercised |= now
            elif np.any(exercised):
                if physical:
                    value = np.where(exercised, self.adapter.post_exercise_value(state), value)
                else:
                    value = np.where(exercised, 0.0, value)
            result[:, j] = value
        return result
