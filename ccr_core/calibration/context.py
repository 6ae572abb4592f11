"""
Calibration inputs and the per-run calibration context.

The context owns everything one calibration run needs (variables, target
correlation, tenor grid) and the factorisation of the correlation matrix,
computed once and shared by the batch and incremental calibration paths.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.clone import DeepCloneable
from ccr_core.errors import CalibrationError
from ccr_core.market.curve import DiscountCurve
from ccr_core.market.dates import Tenor, parse_tenors
from ccr_core.market.forward import ForwardCurve
from ccr_core.market.fx import FxRate
from ccr_core.market.survival import SurvivalCurve
from ccr_core.market.volatility import DistributionType, MarketVolatility
from ccr_core.model.factors import MarketVariableType

_REFERENCE_TYPES: dict[MarketVariableType, type] = {
    MarketVariableType.SWAP_RATE: DiscountCurve,
    MarketVariableType.SPOT_FX: FxRate,
    MarketVariableType.FORWARD_PRICE: ForwardCurve,
    MarketVariableType.SPOT_PRICE: ForwardCurve,
    MarketVariableType.CREDIT_SPREAD: SurvivalCurve,
}

_SINGULAR_TOLERANCE = 1e-12
_RECONSTRUCTION_TOLERANCE = 1e-8


def _check_reference(reference: Any, variable_type: MarketVariableType, name: str) -> None:
    expected = _REFERENCE_TYPES[variable_type]
    if not isinstance(reference, expected):
        raise CalibrationError(
            f"{name}: {variable_type.value} variables must reference a "
            f"{expected.__name__}, got {type(reference).__name__}",
            variable=name,
        )


@dataclass(eq=False)
class PrimaryVariable(DeepCloneable):
    """
    Market variable driven directly by a volatility object.

    Attributes
    ----------
    reference : Any
        Market object (discount curve, FX rate, forward curve)
    variable_type : MarketVariableType
        SwapRate, SpotFx, ForwardPrice or SpotPrice
    volatility : MarketVolatility | None
        Volatility object; None contributes correlation only
    tenor : Tenor | None
        Reference tenor (None for spot variables)
    distribution : DistributionType | None
        Requested distribution (default: the volatility object's own)
    strike : float | None
        Strike / moneyness passed to the volatility object
    """

    reference: Any
    variable_type: MarketVariableType
    volatility: MarketVolatility | None = None
    tenor: Tenor | None = None
    distribution: DistributionType | None = None
    strike: float | None = None

    def __post_init__(self) -> None:
        self.variable_type = MarketVariableType(self.variable_type)
        if self.tenor is not None:
            self.tenor = Tenor.parse(self.tenor)
        if self.variable_type is MarketVariableType.CREDIT_SPREAD:
            raise CalibrationError(
                f"{self.name}: credit spreads are secondary variables", variable=self.name
            )
        _check_reference(self.reference, self.variable_type, self.name)
        if not self.variable_type.is_spot and self.tenor is None:
            raise CalibrationError(
                f"{self.name}: {self.variable_type.value} needs a reference tenor",
                variable=self.name,
            )

    @property
    def name(self) -> str:
        label = self.reference.name
        return f"{label} {self.tenor}" if self.tenor is not None else label

    @property
    def requested_distribution(self) -> DistributionType:
        if self.distribution is not None:
            return self.distribution
        if self.volatility is not None:
            return self.volatility.distribution
        return DistributionType.LOG_NORMAL


@dataclass(eq=False)
class SecondaryVariable(DeepCloneable):
    """
    Market variable driven by betas against the systemic factors.

    Attributes
    ----------
    reference : Any
        Market object, typically a survival curve
    betas : FloatArray
        Loadings on the systemic factors at the reference tenor (norm < 1)
    volatility : MarketVolatility | None
        Volatility of the variable (None: deterministic)
    tenor : Tenor | None
        Reference tenor
    """

    reference: Any
    betas: FloatArray
    volatility: MarketVolatility | None = None
    tenor: Tenor | None = None
    variable_type: MarketVariableType = MarketVariableType.CREDIT_SPREAD
    distribution: DistributionType | None = None

    def __post_init__(self) -> None:
        self.variable_type = MarketVariableType(self.variable_type)
        self.betas = np.asarray(self.betas, dtype=float)
        if self.tenor is not None:
            self.tenor = Tenor.parse(self.tenor)
        _check_reference(self.reference, self.variable_type, self.name)
        if np.linalg.norm(self.betas) >= 1.0:
            raise CalibrationError(
                f"{self.name}: beta vector norm {np.linalg.norm(self.betas):.6f} must be below 1",
                variable=self.name,
            )

    @property
    def name(self) -> str:
        label = self.reference.name
        return f"{label} {self.tenor}" if self.tenor is not None else label

    @property
    def requested_distribution(self) -> DistributionType:
        if self.distribution is not None:
            return self.distribution
        if self.volatility is not None:
            return self.volatility.distribution
        return DistributionType.LOG_NORMAL


def factorize_correlation(
    correlation: FloatArray, factor_count: int, names: Sequence[str] = ()
) -> FloatArray:
    """
    Factorise a correlation matrix into systemic factor loadings by SVD.

    Parameters
    ----------
    correlation : FloatArray
        Symmetric matrix with unit diagonal, shape (n, n)
    factor_count : int
        Number of systemic factors; the leading singular vectors are kept
        (zero columns are added when ``factor_count > n``)
    names : Sequence[str]
        Variable names used in error messages

    Returns
    -------
    FloatArray
        Loadings B of shape (n, factor_count) with B·Bᵗ ≈ correlation

    Raises
    ------
    CalibrationError
        For non-symmetric, non-unit-diagonal, singular or not positive
        definite input
    """
    c = np.asarray(correlation, dtype=float)
    n = c.shape[0]
    if c.shape != (n, n):
        raise CalibrationError(f"Correlation matrix must be square, got shape {c.shape}")
    if not np.allclose(c, c.T, atol=1e-12):
        raise CalibrationError("Correlation matrix is not symmetric")
    bad_diag = np.flatnonzero(np.abs(np.diag(c) - 1.0) > 1e-12)
    if bad_diag.size:
        label = names[bad_diag[0]] if len(names) > bad_diag[0] else str(bad_diag[0])
        raise CalibrationError(f"Correlation diagonal is not 1 for {label}", variable=label)
    try:
        u, s, _ = np.linalg.svd(c)
    except np.linalg.LinAlgError as exc:
        raise CalibrationError(f"SVD of correlation matrix failed: {exc}") from exc
    if s[-1] < _SINGULAR_TOLERANCE:
        raise CalibrationError(f"Correlation matrix is singular (smallest singular value {s[-1]:.3e})")
    # U S Uᵗ reproduces the input only when no eigenvalue is negative
    if not np.allclose((u * s) @ u.T, c, atol=_RECONSTRUCTION_TOLERANCE):
        raise CalibrationError("Correlation matrix is not positive definite")
    k = min(factor_count, n)
    loadings = np.zeros((n, factor_count))
    loadings[:, :k] = u[:, :k] * np.sqrt(s[:k])
    return loadings


class CalibrationContext(DeepCloneable):
    """
    Inputs and shared state of one calibration run.

    Parameters
    ----------
    as_of : date
        As-of date
    tenors : Sequence[str | Tenor]
        Tenor grid of curve entries
    factor_names : Sequence[str]
        Systemic factor names
    primaries : Sequence[PrimaryVariable]
        Primary variables, in the order of the correlation matrix
    correlation : FloatArray
        Target correlation over the primary variables
    secondaries : Sequence[SecondaryVariable]
        Beta-driven variables
    """

    _clone_reset = frozenset({"_systemic"})

    def __init__(
        self,
        as_of: date,
        tenors: Sequence["str | Tenor"],
        factor_names: Sequence[str],
        primaries: Sequence[PrimaryVariable],
        correlation: FloatArray,
        secondaries: Sequence[SecondaryVariable] = (),
    ) -> None:
        self.as_of = as_of
        self.tenors = parse_tenors(tenors)
        if not self.tenors:
            raise CalibrationError("Calibration tenor grid is empty")
        self.factor_names = list(factor_names)
        self.primaries = list(primaries)
        self.secondaries = list(secondaries)
        self.correlation = np.asarray(correlation, dtype=float)
        n = len(self.primaries)
        if self.correlation.shape != (n, n):
            raise CalibrationError(
                f"Correlation matrix is {self.correlation.shape}, expected ({n}, {n}) "
                f"for primaries {[p.name for p in self.primaries]}"
            )
        for s in self.secondaries:
            if s.betas.shape != (len(self.factor_names),):
                raise CalibrationError(
                    f"{s.name}: expected {len(self.factor_names)} betas, got {s.betas.shape[0]}",
                    variable=s.name,
                )
        self._systemic: FloatArray | None = None
        self.loading_overrides: list[tuple[Any, FloatArray]] = []

    @property
    def tenor_times(self) -> FloatArray:
        return np.array([t.years for t in self.tenors])

    @property
    def systemic_loadings(self) -> FloatArray:
        """Loadings of the primary variables, shape (n_primaries, n_factors)."""
        if self._systemic is None:
            self._systemic = factorize_correlation(
                self.correlation, len(self.factor_names), [p.name for p in self.primaries]
            )
        return self._systemic

    @property
    def references(self) -> list[Any]:
        """Distinct referenced market objects in declaration order."""
        seen: dict[int, Any] = {}
        for v in [*self.primaries, *self.secondaries]:
            seen.setdefault(id(v.reference), v.reference)
        return list(seen.values())

    def primary_index(self, variable: PrimaryVariable) -> int:
        return next(i for i, p in enumerate(self.primaries) if p is variable)

    def variables_for(
        self, reference: Any
    ) -> tuple[list[PrimaryVariable], list[SecondaryVariable]]:
        """Primary and secondary variables of one market object."""
        return (
            [p for p in self.primaries if p.reference is reference],
            [s for s in self.secondaries if s.reference is reference],
        )

    def volatility_objects_of(self, reference: Any) -> list[MarketVolatility]:
        primaries, secondaries = self.variables_for(reference)
        return [v.volatility for v in [*primaries, *secondaries] if v.volatility is not None]

    def loading_override(self, reference: Any) -> FloatArray | None:
        """Loadings replacing the calibrated ones of ``reference``, if any."""
        for overridden, loadings in self.loading_overrides:
            if overridden is reference:
                return loadings
        return None

    def override_loadings(self, reference: Any, loadings: FloatArray | None) -> None:
        """
        Replace the calibrated loadings of ``reference`` (None releases them).

        The override applies from the next calibration run on; its shape
        must match the calibrated loadings.
        """
        self.loading_overrides = [
            (r, values) for r, values in self.loading_overrides if r is not reference
        ]
        if loadings is not None:
            self.loading_overrides.append((reference, np.array(loadings, dtype=float)))
