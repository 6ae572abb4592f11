"""
Bump specifications of market objects.

A bump moves the quotes of one market object (discount curve, survival
curve, FX rate, forward curve or volatility object), either all quotes at
once ("Parallel") or one quote at a time (bucketed). Sizes are in units of
the object's ``bump_unit`` (1bp for rates and spreads, 0.01 for spots,
volatilities and factor loadings) or in percent of the quote for relative
bumps. Factor bumps move the calibrated loadings of one object, one size
per systemic factor.
"""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.calibration.context import CalibrationContext
from ccr_core.calibration.engine import calibrate_reference
from ccr_core.clone import counterpart
from ccr_core.market.volatility import MarketVolatility

logger = logging.getLogger("CCR.Sensitivity")

PARALLEL = "Parallel"


class BumpDirection(Enum):
    """Direction of a bump; BOTH computes the central difference."""

    UP = "up"
    DOWN = "down"
    BOTH = "both"

    @property
    def signs(self) -> tuple[int, ...]:
        if self is BumpDirection.UP:
            return (1,)
        if self is BumpDirection.DOWN:
            return (-1,)
        return (1, -1)


@dataclass(frozen=True)
class BumpScenario:
    """
    One bumped quote set of a target.

    Attributes
    ----------
    tenor : str
        Quote label, or "Parallel"
    mask : FloatArray
        1.0 for the quotes moved by the scenario
    """

    tenor: str
    mask: FloatArray


class FactorLoadingTarget:
    """
    Calibrated factor loadings of one market object as bumpable quotes.

    Quotes are the loading rows flattened tenor by tenor (a single row for
    spot objects). Setting quotes overrides the loadings of ``reference``
    in the calibration context, so the next calibration and simulation use
    them. Rows with a norm above 1 are scaled back to unit norm.

    Parameters
    ----------
    context : CalibrationContext
        Context calibrating ``reference``
    reference : Any
        Market object with calibrated loadings

    Example
    -------
    >>> target = FactorLoadingTarget(context, cpty_curve)
    >>> target.quote_labels[:2]
    ['1Y/F1', '1Y/F2']
    """

    bump_unit = 0.01

    def __init__(self, context: CalibrationContext, reference: Any) -> None:
        if not any(r is reference for r in context.references):
            raise ValueError(f"{reference.name}: no calibrated variable in the context")
        self.context = context
        self.reference = reference

    @property
    def name(self) -> str:
        return f"{self.reference.name}-Factors"

    @property
    def factor_count(self) -> int:
        return len(self.context.factor_names)

    @property
    def loadings(self) -> FloatArray:
        """Loadings the next calibration produces, shape (n_rows, n_factors)."""
        return calibrate_reference(self.context, self.reference)[0]

    @property
    def row_labels(self) -> list[str]:
        if self.loadings.shape[0] == 1:
            return ["Spot"]
        return [str(t) for t in self.context.tenors]

    @property
    def quote_labels(self) -> list[str]:
        return [f"{row}/{factor}" for row in self.row_labels for factor in self.context.factor_names]

    @property
    def quotes(self) -> FloatArray:
        return self.loadings.ravel().copy()

    @property
    def override(self) -> FloatArray | None:
        return self.context.loading_override(self.reference)

    def set_quotes(self, values: FloatArray) -> None:
        shape = self.loadings.shape
        values = np.asarray(values, dtype=float)
        if values.size != shape[0] * shape[1]:
            raise ValueError(
                f"{self.name}: unexpected change of loading count "
                f"({shape[0] * shape[1]} -> {values.size})"
            )
        matrix = values.reshape(shape).copy()
        norms = np.linalg.norm(matrix, axis=1)
        above = norms > 1.0
        if np.any(above):
            logger.warning(
                "%s: factor loading norm above 1 after bump, rescaled %d row(s) to unit norm",
                self.name,
                int(above.sum()),
            )
            matrix[above] /= norms[above, None]
        self.context.override_loadings(self.reference, matrix)

    def restore(self, override: FloatArray | None) -> None:
        """Reinstate an earlier :attr:`override` (None: calibrated loadings)."""
        self.context.override_loadings(self.reference, override)

    def counterpart(self, memo: dict[int, Any]) -> "FactorLoadingTarget":
        """Same target on a cloned calculation (see :func:`deep_clone`)."""
        return FactorLoadingTarget(counterpart(memo, self.context), counterpart(memo, self.reference))


@dataclass(eq=False)
class BumpSpecification:
    """
    Bump of one market object.

    Attributes
    ----------
    target : Any
        Market object exposing ``quotes``, ``quote_labels``, ``set_quotes``
        and ``bump_unit``
    size : float
        Bump size in ``bump_unit`` (absolute) or percent (relative)
    relative : bool
        Relative bump (quote × (1 + size / 100))
    direction : BumpDirection
        Up, down or both
    bucketed : bool
        One scenario per quote instead of a parallel shift

    Example
    -------
    >>> BumpSpecification(usd_curve, size=1.0)  # +1bp parallel
    >>> BumpSpecification(vol, size=1.0, relative=True, direction=BumpDirection.BOTH)
    """

    target: Any
    size: float = 1.0
    relative: bool = False
    direction: BumpDirection = BumpDirection.UP
    bucketed: bool = False

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError(f"Bump size must be positive, got {self.size}")
        if not hasattr(self.target, "set_quotes"):
            raise TypeError(f"{type(self.target).__name__} has no bumpable quotes")
        if isinstance(self.direction, str):
            self.direction = BumpDirection(self.direction)

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def is_volatility(self) -> bool:
        return isinstance(self.target, MarketVolatility)

    @property
    def is_factor_loading(self) -> bool:
        return isinstance(self.target, FactorLoadingTarget)

    def scenarios(self) -> Iterator[BumpScenario]:
        """Quote sets moved by this specification."""
        n = len(self.target.quotes)
        if not self.bucketed:
            yield BumpScenario(PARALLEL, np.ones(n))
            return
        for i, label in enumerate(self.target.quote_labels):
            mask = np.zeros(n)
            mask[i] = 1.0
            yield BumpScenario(label, mask)

    def is_skipped(self, base: FloatArray, scenario: BumpScenario) -> bool:
        """True when every quote the scenario moves is zero."""
        return bool(np.all(base[scenario.mask > 0] == 0.0))

    def bumped_quotes(self, base: FloatArray, scenario: BumpScenario, sign: int) -> FloatArray:
        """
        Quotes after the bump.

        Volatilities that would turn negative are set to half their level.
        """
        if self.relative:
            shift = base * (self.size / 100.0)
        else:
            shift = np.full(base.shape, self.size * self.target.bump_unit)
        bumped = base + sign * scenario.mask * shift
        if self.is_volatility and np.any(bumped < 0):
            logger.warning(
                "%s %s: negative volatility after bump, using half the current level",
                self.name,
                scenario.tenor,
            )
            bumped = np.where(bumped < 0, 0.5 * base, bumped)
        return bumped

    def scale_factor(self, sign: int) -> float:
        """Volatility multiplier of a parallel relative bump."""
        if not (self.is_volatility and self.relative and not self.bucketed):
            raise ValueError(
                f"{self.name}: only parallel relative volatility bumps rescale paths"
            )
        factor = 1.0 + sign * self.size / 100.0
        if factor < 0:
            logger.warning(
                "%s: negative volatility after bump, using half the current level", self.name
            )
            factor = 0.5
        return factor


@dataclass(eq=False)
class FactorBumpSpecification(BumpSpecification):
    """
    Shift of the factor loadings of one calibrated object.

    Attributes
    ----------
    factor_sizes : Sequence[float] | None
        One size per systemic factor, in ``bump_unit`` (absolute) or
        percent (relative); signs may differ. None moves every factor by
        ``size``.

    Bucketed scenarios move one tenor row at a time. A down bump applies
    the negated sizes.

    Example
    -------
    >>> target = FactorLoadingTarget(context, usd_curve)
    >>> FactorBumpSpecification(target, factor_sizes=[5.0, -5.0, 5.0], bucketed=True)
    """

    factor_sizes: Sequence[float] | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.is_factor_loading:
            raise TypeError(f"{type(self.target).__name__} is not a factor loading target")
        n = self.target.factor_count
        if self.factor_sizes is None:
            sizes = np.full(n, float(self.size))
        else:
            sizes = np.asarray(self.factor_sizes, dtype=float)
        if sizes.shape != (n,):
            raise ValueError(f"{self.name}: expected {n} factor sizes, got {sizes.size}")
        if not np.any(sizes):
            raise ValueError(f"{self.name}: all factor sizes are zero")
        self.factor_sizes = sizes

    def scenarios(self) -> Iterator[BumpScenario]:
        rows = self.target.row_labels
        n_f = self.target.factor_count
        if not self.bucketed:
            yield BumpScenario(PARALLEL, np.ones(len(rows) * n_f))
            return
        for i, label in enumerate(rows):
            mask = np.zeros((len(rows), n_f))
            mask[i] = 1.0
            yield BumpScenario(label, mask.ravel())

    def is_skipped(self, base: FloatArray, scenario: BumpScenario) -> bool:
        """Only relative bumps of zero loadings are skipped."""
        return self.relative and super().is_skipped(base, scenario)

    def bumped_quotes(self, base: FloatArray, scenario: BumpScenario, sign: int) -> FloatArray:
        matrix = base.reshape(-1, self.target.factor_count)
        if self.relative:
            shift = matrix * (self.factor_sizes / 100.0)
        else:
            shift = np.broadcast_to(self.factor_sizes * self.target.bump_unit, matrix.shape)
        return base + sign * scenario.mask * shift.ravel()


def detach_dependents(target: Any) -> list[Any]:
    """Remove and return the dependent curves of ``target``."""
    dependents = list(getattr(target, "dependent_curves", []))
    if dependents:
        target.dependent_curves.clear()
    return dependents


def set_quotes_isolated(target: Any, quotes: FloatArray) -> None:
    """Set quotes of ``target`` without refitting the curves built on it."""
    dependents = detach_dependents(target)
    try:
        target.set_quotes(quotes)
    finally:
        if dependents:
            target.dependent_curves.extend(dependents)
