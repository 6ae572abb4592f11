"""
Factor model: systemic factor loadings and volatilities per risk factor.

Each risk-factor reference (a market object, compared by identity) owns a
matrix of loadings on the systemic factors and one volatility term
structure per row. Curves have one row per tenor of the collection's tenor
grid; spot objects (FX rates, spot-driven forward curves) have one row.
The part of a row's variance not explained by the systemic factors,
1 - |L|², is idiosyncratic.
"""

import copy
from collections.abc import Iterator, Sequence
from enum import Enum
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.errors import CalibrationError
from ccr_core.market.dates import Tenor, parse_tenors
from ccr_core.market.volatility import VolatilityCurve

_NORM_TOLERANCE = 1e-9


class MarketVariableType(Enum):
    """Kind of simulated market variable."""

    SWAP_RATE = "SwapRate"
    SPOT_FX = "SpotFx"
    FORWARD_PRICE = "ForwardPrice"
    SPOT_PRICE = "SpotPrice"
    CREDIT_SPREAD = "CreditSpread"

    @property
    def is_spot(self) -> bool:
        """True for variables simulated with a single row."""
        return self in (MarketVariableType.SPOT_FX, MarketVariableType.SPOT_PRICE)


def _name_of(reference: Any) -> str:
    return getattr(reference, "name", repr(reference))


class FactorLoadingCollection:
    """
    Factor loadings keyed by risk-factor reference.

    Parameters
    ----------
    factor_names : Sequence[str]
        Names of the systemic factors
    tenors : Sequence[str | Tenor]
        Tenor grid shared by all curve entries

    Example
    -------
    >>> fl = FactorLoadingCollection(["F1", "F2"], ["1Y", "5Y"])
    >>> fl.add(eurusd, np.array([[0.6, 0.0]]))
    >>> fl.get(eurusd).shape
    (1, 2)
    """

    def __init__(self, factor_names: Sequence[str], tenors: Sequence["str | Tenor"]) -> None:
        if len(factor_names) == 0:
            raise ValueError("At least one systemic factor is required")
        self.factor_names = list(factor_names)
        self.tenors = parse_tenors(tenors)
        self._loadings: dict[int, FloatArray] = {}
        self._references: dict[int, Any] = {}
        self._reference_rows: dict[int, int] = {}

    @property
    def factor_count(self) -> int:
        return len(self.factor_names)

    @property
    def tenor_times(self) -> FloatArray:
        return np.array([t.years for t in self.tenors])

    def add(self, reference: Any, loadings: FloatArray, reference_row: int = 0) -> None:
        """
        Add or replace the loadings of a reference.

        Parameters
        ----------
        reference : Any
            Market object
        loadings : FloatArray
            Shape (1, n_factors) or (n_tenors, n_factors)
        reference_row : int
            Row used when a single loading vector represents the object
            (credit drivers)
        """
        loadings = np.atleast_2d(np.asarray(loadings, dtype=float))
        name = _name_of(reference)
        if loadings.shape[1] != self.factor_count:
            raise CalibrationError(
                f"{name}: expected {self.factor_count} factor loadings per row, "
                f"got {loadings.shape[1]}",
                variable=name,
            )
        if loadings.shape[0] not in (1, len(self.tenors)):
            raise CalibrationError(
                f"{name}: expected 1 or {len(self.tenors)} loading rows, got {loadings.shape[0]}",
                variable=name,
            )
        norms = np.linalg.norm(loadings, axis=1)
        if np.any(norms > 1.0 + _NORM_TOLERANCE):
            row = int(np.argmax(norms))
            raise CalibrationError(
                f"{name}: factor loading norm {norms[row]:.6f} exceeds 1 at row {row}",
                variable=name,
            )
        if not 0 <= reference_row < loadings.shape[0]:
            raise ValueError(f"{name}: reference row {reference_row} out of range")
        key = id(reference)
        self._loadings[key] = loadings
        self._references[key] = reference
        self._reference_rows[key] = reference_row

    def get(self, reference: Any) -> FloatArray:
        """Loadings of a reference."""
        try:
            return self._loadings[id(reference)]
        except KeyError:
            raise KeyError(f"No factor loadings for {_name_of(reference)}") from None

    def reference_loading(self, reference: Any) -> FloatArray:
        """Single loading vector of a reference (zeros if absent)."""
        key = id(reference)
        if key not in self._loadings:
            return np.zeros(self.factor_count)
        return self._loadings[key][self._reference_rows[key]]

    def __contains__(self, reference: Any) -> bool:
        return id(reference) in self._loadings

    def __len__(self) -> int:
        return len(self._loadings)

    @property
    def references(self) -> list[Any]:
        """References in insertion order."""
        return list(self._references.values())

    def items(self) -> Iterator[tuple[Any, FloatArray]]:
        for key, ref in self._references.items():
            yield ref, self._loadings[key]

    def correlation(self, ref_a: Any, row_a: int, ref_b: Any, row_b: int) -> float:
        """Correlation L_a · L_b between two rows."""
        return float(self.get(ref_a)[row_a] @ self.get(ref_b)[row_b])

    def copy(self) -> "FactorLoadingCollection":
        """Copy of the loadings sharing the same reference keys."""
        new = FactorLoadingCollection(self.factor_names, self.tenors)
        new._loadings = {k: v.copy() for k, v in self._loadings.items()}
        new._references = dict(self._references)
        new._reference_rows = dict(self._reference_rows)
        return new

    def __deepcopy__(self, memo: dict[int, Any]) -> "FactorLoadingCollection":
        new = FactorLoadingCollection(self.factor_names, self.tenors)
        memo[id(self)] = new
        for key, ref in self._references.items():
            clone_ref = copy.deepcopy(ref, memo)
            new._loadings[id(clone_ref)] = self._loadings[key].copy()
            new._references[id(clone_ref)] = clone_ref
            new._reference_rows[id(clone_ref)] = self._reference_rows[key]
        return new

    def __repr__(self) -> str:
        return (
            f"FactorLoadingCollection(factors={self.factor_names}, "
            f"references={[_name_of(r) for r in self.references]})"
        )


class VolatilityCollection:
    """
    Volatility term structures keyed by risk-factor reference.

    Each entry is a list of :class:`VolatilityCurve`, one per loading row.

    Parameters
    ----------
    tenors : Sequence[str | Tenor]
        Tenor grid shared with the factor loadings
    """

    def __init__(self, tenors: Sequence["str | Tenor"]) -> None:
        self.tenors = parse_tenors(tenors)
        self._curves: dict[int, list[VolatilityCurve]] = {}
        self._references: dict[int, Any] = {}

    def add(self, reference: Any, curves: Sequence[VolatilityCurve]) -> None:
        """Add or replace the volatilities of a reference."""
        curves = list(curves)
        name = _name_of(reference)
        if len(curves) not in (1, len(self.tenors)):
            raise CalibrationError(
                f"{name}: expected 1 or {len(self.tenors)} volatility curves, got {len(curves)}",
                variable=name,
            )
        self._curves[id(reference)] = curves
        self._references[id(reference)] = reference

    def replace(self, reference: Any, curves: Sequence[VolatilityCurve]) -> None:
        """
        Replace the volatilities of an existing reference (bump/restore).

        Raises
        ------
        ValueError
            If the number of term structures changes
        """
        curves = list(curves)
        existing = self.get(reference)
        if len(curves) != len(existing):
            raise ValueError(
                f"Unexpected change of volatility count for {_name_of(reference)}: "
                f"{len(existing)} -> {len(curves)}"
            )
        self._curves[id(reference)] = curves

    def get(self, reference: Any) -> list[VolatilityCurve]:
        try:
            return self._curves[id(reference)]
        except KeyError:
            raise KeyError(f"No volatilities for {_name_of(reference)}") from None

    def __contains__(self, reference: Any) -> bool:
        return id(reference) in self._curves

    def __len__(self) -> int:
        return len(self._curves)

    @property
    def references(self) -> list[Any]:
        return list(self._references.values())

    def items(self) -> Iterator[tuple[Any, list[VolatilityCurve]]]:
        for key, ref in self._references.items():
            yield ref, self._curves[key]

    def copy(self) -> "VolatilityCollection":
        new = VolatilityCollection(self.tenors)
        new._curves = {k: list(v) for k, v in self._curves.items()}
        new._references = dict(self._references)
        return new

    def scaled(self, factors: dict[int, float]) -> "VolatilityCollection":
        """Copy with the curves of the given reference ids multiplied by a factor."""
        new = self.copy()
        for key, factor in factors.items():
            if key in new._curves:
                new._curves[key] = [c.scaled(factor) for c in new._curves[key]]
        return new

    def zeroed(self) -> "VolatilityCollection":
        """Copy with every volatility set to zero (deterministic simulation)."""
        return self.scaled({key: 0.0 for key in self._curves})

    def __deepcopy__(self, memo: dict[int, Any]) -> "VolatilityCollection":
        new = VolatilityCollection(self.tenors)
        memo[id(self)] = new
        for key, ref in self._references.items():
            clone_ref = copy.deepcopy(ref, memo)
            new._curves[id(clone_ref)] = copy.deepcopy(self._curves[key], memo)
            new._references[id(clone_ref)] = clone_ref
        return new


def interpolate_factor_loadings(
    reference_times: Sequence[float],
    reference_loadings: FloatArray,
    target_times: Sequence[float],
) -> FloatArray:
    """
    Interpolate loading vectors between reference tenors.

    Directions (unit vectors) and norms are interpolated linearly in time
    and recombined; outside the reference range the nearest vector is used.

    Parameters
    ----------
    reference_times : Sequence[float]
        Strictly increasing reference times
    reference_loadings : FloatArray
        Shape (len(reference_times), n_factors)
    target_times : Sequence[float]
        Times to interpolate at

    Returns
    -------
    FloatArray
        Shape (len(target_times), n_factors)

    Example
    -------
    >>> L = np.array([[1.0, 0.0], [0.0, 0.5]])
    >>> interpolate_factor_loadings([1.0, 3.0], L, [1.0, 3.0, 5.0])
    array([[1. , 0. ],
           [0. , 0.5],
           [0. , 0.5]])
    """
    times = np.asarray(reference_times, dtype=float)
    loadings = np.atleast_2d(np.asarray(reference_loadings, dtype=float))
    targets = np.asarray(target_times, dtype=float)
    if loadings.shape[0] != len(times):
        raise ValueError("One loading vector per reference time is required")
    if np.any(np.diff(times) <= 0):
        raise ValueError("Reference times must be strictly increasing")

    norms = np.linalg.norm(loadings, axis=1)
    directions = np.divide(
        loadings, norms[:, None], out=np.zeros_like(loadings), where=norms[:, None] > 0
    )
    result = np.empty((len(targets), loadings.shape[1]))
    for i, t in enumerate(targets):
        if t <= times[0]:
            result[i] = loadings[0]
            continue
        if t >= times[-1]:
            result[i] = loadings[-1]
            continue
        j = int(np.searchsorted(times, t, side="right")) - 1
        if t == times[j]:
            result[i] = loadings[j]
            continue
        w = (t - times[j]) / (times[j + 1] - times[j])
        direction = (1 - w) * directions[j] + w * directions[j + 1]
        length = np.linalg.norm(direction)
        norm = (1 - w) * norms[j] + w * norms[j + 1]
        result[i] = direction / length * norm if length > 0 else 0.0
    return result
