"""
Calibration of factor loadings and volatilities.

Batch calibration (:func:`calibrate_monte_carlo_model`) and the incremental
``try_calibrate_*`` functions share :func:`calibrate_reference`, which
depends only on the calibration context, so processing the curves one at a
time in any order reproduces the batch result.
"""

import logging
import threading
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.calibration.context import CalibrationContext, PrimaryVariable, SecondaryVariable
from ccr_core.calibration.graph import DependencyGraph
from ccr_core.errors import CalibrationError
from ccr_core.market.curve import DiscountCurve
from ccr_core.market.forward import ForwardCurve
from ccr_core.market.fx import FxRate
from ccr_core.market.survival import SurvivalCurve
from ccr_core.market.volatility import DistributionType, VolatilityCurve
from ccr_core.model.factors import (
    FactorLoadingCollection,
    VolatilityCollection,
    interpolate_factor_loadings,
)

logger = logging.getLogger("CCR.Calibration")

CalibratedEntry = tuple[FloatArray, list[VolatilityCurve], int]

_SPOT_TENOR = 0.0


def calibrate_reference(context: CalibrationContext, reference: Any) -> CalibratedEntry | None:
    """
    Calibrate the factor model entry of one market object.

    Parameters
    ----------
    context : CalibrationContext
        Calibration inputs
    reference : Any
        Market object to calibrate

    Returns
    -------
    tuple | None
        (loadings, volatility curves, reference row), or None when the
        context has no variable for ``reference``; loadings overridden in
        the context replace the calibrated ones

    Raises
    ------
    CalibrationError
        Naming the variable whose inputs are inconsistent
    """
    primaries, secondaries = context.variables_for(reference)
    variables: list[PrimaryVariable | SecondaryVariable] = [*primaries, *secondaries]
    if not variables:
        return None
    name = reference.name
    if primaries and secondaries:
        raise CalibrationError(
            f"{name}: cannot be both a primary and a secondary variable", variable=name
        )
    variable_type = variables[0].variable_type
    if any(v.variable_type is not variable_type for v in variables):
        raise CalibrationError(f"{name}: mixed variable types", variable=name)

    grid = context.tenor_times
    if primaries:
        systemic = context.systemic_loadings
        node_loadings = np.array([systemic[context.primary_index(p)] for p in primaries])
    else:
        node_loadings = np.array([s.betas for s in secondaries])

    if variable_type.is_spot:
        if len(variables) > 1:
            raise CalibrationError(f"{name}: spot variable declared more than once", variable=name)
        loadings = node_loadings[:1]
        reference_row = 0
    else:
        node_times = np.array([v.tenor.years for v in variables])
        order = np.argsort(node_times, kind="stable")
        node_times = node_times[order]
        if np.any(np.diff(node_times) <= 0):
            raise CalibrationError(f"{name}: duplicate reference tenors", variable=name)
        loadings = interpolate_factor_loadings(node_times, node_loadings[order], grid)
        reference_row = int(np.argmin(np.abs(grid - variables[0].tenor.years)))

    override = context.loading_override(reference)
    if override is not None:
        if override.shape != loadings.shape:
            raise CalibrationError(
                f"{name}: loading override has shape {override.shape}, expected {loadings.shape}",
                variable=name,
            )
        loadings = override.copy()

    curves = _volatility_curves(variables, grid, name)
    return loadings, curves, reference_row


def _volatility_curves(
    variables: list[PrimaryVariable | SecondaryVariable], grid: FloatArray, name: str
) -> list[VolatilityCurve]:
    """Local volatility per row from the variables carrying a volatility object."""
    carriers = [v for v in variables if v.volatility is not None]
    spot = variables[0].variable_type.is_spot
    n_rows = 1 if spot else len(grid)
    if not carriers:
        return [VolatilityCurve.flat(0.0) for _ in range(n_rows)]

    for carrier in carriers:
        distribution = carrier.requested_distribution
        if spot and distribution is DistributionType.NORMAL:
            raise CalibrationError(
                f"{carrier.name}: normal volatility is not supported for "
                f"{carrier.variable_type.value}",
                variable=carrier.name,
            )
        carrier.volatility.require(distribution, carrier.name)

    if spot:
        carrier = carriers[0]
        return [carrier.volatility.local_volatility(_SPOT_TENOR, getattr(carrier, "strike", None))]

    carrier_times = np.array([c.tenor.years for c in carriers])
    curves = []
    for tau in grid:
        carrier = carriers[int(np.argmin(np.abs(carrier_times - tau)))]
        try:
            curve = carrier.volatility.local_volatility(tau, getattr(carrier, "strike", None))
        except ValueError as exc:
            raise CalibrationError(
                f"{carrier.name}: no local volatility at tenor {tau:g}Y: {exc}",
                variable=carrier.name,
            ) from exc
        curves.append(curve)
    return curves


def volatility_sources(context: CalibrationContext, reference: Any) -> list[Any]:
    """
    Volatility object driving each calibrated row of ``reference``.

    Rows without a carrier (zero volatility) map to None; an object the
    context does not know yields an empty list.
    """
    primaries, secondaries = context.variables_for(reference)
    variables: list[PrimaryVariable | SecondaryVariable] = [*primaries, *secondaries]
    if not variables:
        return []
    carriers = [v for v in variables if v.volatility is not None]
    spot = variables[0].variable_type.is_spot
    n_rows = 1 if spot else len(context.tenor_times)
    if not carriers:
        return [None] * n_rows
    if spot:
        return [carriers[0].volatility]
    carrier_times = np.array([c.tenor.years for c in carriers])
    return [
        carriers[int(np.argmin(np.abs(carrier_times - tau)))].volatility
        for tau in context.tenor_times
    ]


def _try_calibrate(
    context: CalibrationContext,
    reference: Any,
    expected: type,
    factor_loadings: FactorLoadingCollection,
    volatilities: VolatilityCollection,
) -> bool:
    if not isinstance(reference, expected):
        raise TypeError(f"Expected a {expected.__name__}, got {type(reference).__name__}")
    entry = calibrate_reference(context, reference)
    if entry is None:
        return False
    loadings, curves, reference_row = entry
    factor_loadings.add(reference, loadings, reference_row)
    volatilities.add(reference, curves)
    logger.debug("Calibrated %s (%d rows)", reference.name, loadings.shape[0])
    return True


def try_calibrate_discount_curve(
    context: CalibrationContext,
    curve: DiscountCurve,
    factor_loadings: FactorLoadingCollection,
    volatilities: VolatilityCollection,
) -> bool:
    """
    Calibrate one discount curve into existing collections.

    Returns
    -------
    bool
        False if the context has no swap-rate variable on ``curve``
    """
    return _try_calibrate(context, curve, DiscountCurve, factor_loadings, volatilities)


def try_calibrate_survival_curve(
    context: CalibrationContext,
    curve: SurvivalCurve,
    factor_loadings: FactorLoadingCollection,
    volatilities: VolatilityCollection,
) -> bool:
    """Calibrate one survival curve (credit-spread variable)."""
    return _try_calibrate(context, curve, SurvivalCurve, factor_loadings, volatilities)


def try_calibrate_fx_curve(
    context: CalibrationContext,
    fx_rate: FxRate,
    factor_loadings: FactorLoadingCollection,
    volatilities: VolatilityCollection,
) -> bool:
    """Calibrate one FX rate (spot FX variable)."""
    return _try_calibrate(context, fx_rate, FxRate, factor_loadings, volatilities)


def try_calibrate_forward_curve(
    context: CalibrationContext,
    curve: ForwardCurve,
    factor_loadings: FactorLoadingCollection,
    volatilities: VolatilityCollection,
) -> bool:
    """Calibrate one forward curve (forward-price or spot-price variable)."""
    return _try_calibrate(context, curve, ForwardCurve, factor_loadings, volatilities)


def try_calibrate(
    context: CalibrationContext,
    reference: Any,
    factor_loadings: FactorLoadingCollection,
    volatilities: VolatilityCollection,
) -> bool:
    """Dispatch to the ``try_calibrate_*`` function matching ``reference``."""
    for expected in (DiscountCurve, SurvivalCurve, FxRate, ForwardCurve):
        if isinstance(reference, expected):
            return _try_calibrate(context, reference, expected, factor_loadings, volatilities)
    raise TypeError(f"Cannot calibrate a {type(reference).__name__}")


def calibrate_monte_carlo_model(
    context: CalibrationContext,
    parallel: bool = False,
    max_workers: int | None = None,
) -> tuple[FactorLoadingCollection, VolatilityCollection]:
    """
    Calibrate every variable of the context in one call.

    Curves are processed in dependency order (discount curves before the FX
    rates and forward curves built on them); with ``parallel=True``
    independent curves run concurrently.

    Parameters
    ----------
    context : CalibrationContext
        Calibration inputs
    parallel : bool
        Use a thread pool for independent curves
    max_workers : int | None
        Thread pool size

    Returns
    -------
    tuple[FactorLoadingCollection, VolatilityCollection]
        Calibrated factor model

    Example
    -------
    >>> fl, vc = calibrate_monte_carlo_model(context)
    >>> fl.get(usd_curve).shape
    (6, 3)
    """
    references = context.references
    # Factorise once before fanning out
    _ = context.systemic_loadings
    results: dict[int, CalibratedEntry | None] = {}
    lock = threading.Lock()

    def calibrate(reference: Any) -> None:
        entry = calibrate_reference(context, reference)
        with lock:
            results[id(reference)] = entry

    graph = DependencyGraph(references, lambda r: getattr(r, "parent_curves", []))
    if parallel:
        graph.parallel_for_each(calibrate, max_workers=max_workers)
    else:
        graph.for_each(calibrate)

    factor_loadings = FactorLoadingCollection(context.factor_names, context.tenors)
    volatilities = VolatilityCollection(context.tenors)
    for reference in references:
        entry = results[id(reference)]
        if entry is None:
            continue
        loadings, curves, reference_row = entry
        factor_loadings.add(reference, loadings, reference_row)
        volatilities.add(reference, curves)

    logger.info(
        "Calibrated %d market objects on %d systemic factors",
        len(factor_loadings),
        len(context.factor_names),
    )
    return factor_loadings, volatilities
