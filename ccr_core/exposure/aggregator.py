"""
Aggregation of netted path quantities into exposure measures.

Credit and funding adjustments are sums over simulation dates of
discounted, measure-changed expected exposures times deterministic default
or funding weights; exposure profiles are weighted expectations and
quantiles per date.
"""

import logging
from collections.abc import Iterable
from datetime import date

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.exposure.measures import (
    Measure,
    MeasureKind,
    MeasureRequest,
    running_maximum,
    time_weighted_average,
    weighted_expectation,
    weighted_quantile,
)
from ccr_core.exposure.netting import PathExposures
from ccr_core.market.dates import SimulationDateGrid
from ccr_core.simulation.credit import DefaultKernels

logger = logging.getLogger("CCR.Exposure")

# Tolerance when matching a requested date against grid times
_TIME_TOL = 1e-10


class ExposureAggregator:
    """
    Exposure measures of one run.

    Parameters
    ----------
    exposures : PathExposures
        Netted quantities of the stochastic run
    grid : SimulationDateGrid
        Simulation dates
    kernels : DefaultKernels
        Default and funding weights on the grid
    zero_exposures : PathExposures | None
        Netted quantities of the zero-volatility run (Radon-Nikodym ratios
        set to one); required for the "0" measures
    pfe_quantile : float
        Default quantile of PFE / PFNE

    Notes
    -----
    Sign conventions: CVA and FCA are costs (≤ 0), DVA and FBA benefits
    (≥ 0); exposure profiles are non-negative magnitudes.

    Example
    -------
    >>> aggregator = ExposureAggregator(exposures, grid, kernels, zero_exposures)
    >>> cva = aggregator.get_measure(Measure.CVA)
    >>> ee_5y = aggregator.get_measure("EE", grid.dates[10])
    """

    def __init__(
        self,
        exposures: PathExposures,
        grid: SimulationDateGrid,
        kernels: DefaultKernels,
        zero_exposures: PathExposures | None = None,
        pfe_quantile: float = 0.95,
    ) -> None:
        self.exposures = exposures
        self.grid = grid
        self.times = grid.times
        self.kernels = kernels
        self.zero_exposures = zero_exposures
        self.pfe_quantile = pfe_quantile
        self._profiles: dict[tuple[Measure, float | None], FloatArray] = {}

    def _source(self, measure: Measure) -> PathExposures:
        if not measure.is_zero_volatility:
            return self.exposures
        if self.zero_exposures is None:
            raise ValueError(f"{measure.value} requires the zero-volatility run")
        return self.zero_exposures

    def _compute_profile(self, measure: Measure, quantile: float | None) -> FloatArray:
        src = self._source(measure)
        k = self.kernels
        w = src.weights
        base = measure.base
        discounted_x = src.numeraire * src.positive
        discounted_nx = src.numeraire * src.negative

        if base is Measure.CVA:
            return -k.counterparty_lgd * weighted_expectation(
                discounted_x * src.rn_counterparty, w
            ) * k.counterparty
        if base is Measure.DVA:
            return k.own_lgd * weighted_expectation(discounted_nx * src.rn_own, w) * k.own
        if base is Measure.FCA:
            return -weighted_expectation(discounted_x * src.rn_survival, w) * (
                k.joint_survival * k.borrowing
            )
        if base is Measure.FBA:
            return weighted_expectation(discounted_nx * src.rn_survival, w) * (
                k.joint_survival * k.lending
            )
        if base is Measure.FCA_NO_DEFAULT:
            return -weighted_expectation(discounted_x, w) * k.borrowing
        if base is Measure.FBA_NO_DEFAULT:
            return weighted_expectation(discounted_nx, w) * k.lending
        if base is Measure.FVA:
            suffix = "0" if measure.is_zero_volatility else ""
            return self.profile(Measure("FCA" + suffix)) + self.profile(Measure("FBA" + suffix))
        if base is Measure.FVA_NO_DEFAULT:
            return self.profile(Measure.FCA_NO_DEFAULT) + self.profile(Measure.FBA_NO_DEFAULT)
        if base in (Measure.EE, Measure.EPE):
            return weighted_expectation(src.positive * src.rn_survival, w)
        if base is Measure.DISCOUNTED_EE:
            return weighted_expectation(discounted_x * src.rn_survival, w)
        if base is Measure.NEE:
            return weighted_expectation(src.negative * src.rn_survival, w)
        if base is Measure.DISCOUNTED_NEE:
            return weighted_expectation(discounted_nx * src.rn_survival, w)
        if base in (Measure.EEE, Measure.EEPE):
            return running_maximum(self.profile(Measure.EE))
        if base is Measure.PFE:
            q = quantile if quantile is not None else self.pfe_quantile
            return self._quantile(src.positive, src, q)
        if base is Measure.PFNE:
            q = quantile if quantile is not None else self.pfe_quantile
            return self._quantile(src.negative, src, q)
        raise ValueError(f"Unsupported measure {measure.value}")

    @staticmethod
    def _quantile(values: FloatArray, src: PathExposures, quantile: float) -> FloatArray:
        """Quantile per date under the survival measure (weights w × RN_s)."""
        return np.array(
            [
                weighted_quantile(values[:, j], src.weights * src.rn_survival[:, j], quantile)
                for j in range(values.shape[1])
            ]
        )

    def profile(self, measure: "Measure | str", quantile: float | None = None) -> FloatArray:
        """
        Per-date values of a measure.

        For integrated measures these are the contributions of each date;
        for the other measures the profile itself.
        """
        m = Measure.parse(measure)
        key = (m, quantile if m.is_quantile else None)
        if key not in self._profiles:
            self._profiles[key] = self._compute_profile(m, quantile)
        return self._profiles[key]

    def _time_of(self, when: "date | str") -> float:
        if isinstance(when, str):
            when = date.fromisoformat(when)
        return self.grid.time_of(when)

    def get_measure(
        self,
        measure: "Measure | str",
        when: "date | str | None" = None,
        quantile: float | None = None,
    ) -> float:
        """
        Value of one measure.

        Parameters
        ----------
        measure : Measure | str
            Measure or its report name
        when : date | str | None
            Date (None: life of deal). Integrated measures accumulate the
            dates up to it, profiles are interpolated linearly, averages
            run up to it.
        quantile : float | None
            Quantile level of PFE / PFNE

        Returns
        -------
        float
            Measure value in base currency
        """
        m = Measure.parse(measure)
        values = self.profile(m, quantile)
        if when is None:
            if m.kind is MeasureKind.INTEGRATED:
                return float(np.sum(values))
            return time_weighted_average(values, self.times)
        t = self._time_of(when)
        if m.kind is MeasureKind.PROFILE:
            return float(np.interp(t, self.times, values))
        end = int(np.searchsorted(self.times, t + _TIME_TOL, side="right")) - 1
        if m.kind is MeasureKind.INTEGRATED:
            return float(np.sum(values[: end + 1]))
        return time_weighted_average(values, self.times, max(end, 0))

    def evaluate(self, requests: Iterable[MeasureRequest]) -> list[tuple[str, str, float]]:
        """(measure, tenor, value) rows for a list of requests."""
        rows = []
        for request in requests:
            value = self.get_measure(request.measure, request.date, request.quantile)
            rows.append((request.measure.value, request.tenor, value))
        logger.debug("Evaluated %d measure requests", len(rows))
        return rows
