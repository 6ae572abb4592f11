"""
Default modelling driven by the simulated credit curves.

Each party's default by t_i is a Gaussian copula event X_i ≤ Φ⁻¹(PD(t_i))
with X_i = β_i ξ_i + sqrt(1 - β_i²) ε. The driver ξ_i is the first-order
integrated hazard shock of the party's simulated survival curve,

    Z_i = Σ_{j<i} (t_{j+1} - t_j) h_j(t_{j+1} - t_j) Y(t_j),

standardised by its exact standard deviation σ_i (Z is linear in the
Gaussian row states Y). The loading β_i makes the conditional default
probability move with Z as an intensity model does to first order, so
credit volatility and credit factor loadings drive default while every
Radon-Nikodym ratio keeps unit expectation.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import integrate
from scipy.special import ndtr, ndtri

from ccr_core._types import FloatArray, PathArray, StateArray
from ccr_core.clone import DeepCloneable
from ccr_core.market.survival import SurvivalCurve
from ccr_core.market.volatility import DistributionType
from ccr_core.simulation.paths import FactorLayout, PathSet, tenor_weights

# Shortest horizon used when reading a hazard level off a curve
_MIN_TAU = 1e-8


def bivariate_normal_cdf(a: float, b: float, rho: float) -> float:
    """
    Standard bivariate normal CDF Φ2(a, b; ρ).

    Notes
    -----
    Uses Φ2(a, b; ρ) = Φ(a)Φ(b) + ∫₀^ρ φ2(a, b; r) dr, integrated with
    :func:`scipy.integrate.quad`; infinite limits are resolved exactly.

    Example
    -------
    >>> round(bivariate_normal_cdf(0.0, 0.0, 0.5), 6)
    0.333333
    """
    if np.isneginf(a) or np.isneginf(b):
        return 0.0
    if np.isposinf(a):
        return float(ndtr(b))
    if np.isposinf(b):
        return float(ndtr(a))
    if not -1.0 < rho < 1.0:
        raise ValueError(f"Correlation must be in (-1, 1), got {rho}")
    base = float(ndtr(a) * ndtr(b))
    if rho == 0.0:
        return base

    def density(r: float) -> float:
        one_minus = 1.0 - r * r
        return np.exp(-(a * a - 2.0 * r * a * b + b * b) / (2.0 * one_minus)) / (
            2.0 * np.pi * np.sqrt(one_minus)
        )

    correction, _ = integrate.quad(density, 0.0, rho, epsabs=1e-14, epsrel=1e-12)
    return float(np.clip(base + correction, 0.0, 1.0))


def conditional_default_probability(
    threshold: FloatArray, driver: PathArray, loading: FloatArray
) -> PathArray:
    """
    PD(t_i | ξ_i) = Φ((Φ⁻¹(PD(t_i)) + β_i ξ_i) / sqrt(1 - β_i²)).

    Parameters
    ----------
    threshold : FloatArray
        Default thresholds Φ⁻¹(PD(t_i)) per date, shape (n_dates,)
    driver : PathArray
        Standardised credit drivers ξ, shape (n_paths, n_dates)
    loading : FloatArray
        Copula loadings β_i per date, in [0, 1)
    """
    residual = np.sqrt(1.0 - loading**2)
    return ndtr((threshold[None, :] + loading[None, :] * driver) / residual[None, :])


def copula_loading(scale: FloatArray, survival: FloatArray) -> FloatArray:
    """
    Copula loading β matching dPD/dZ = S(t) at Z = 0.

    β / sqrt(1 - β²) = σ S(t) / φ(Φ⁻¹(PD(t))); zero where the driver or
    the default probability vanishes.
    """
    pd_ = 1.0 - survival
    valid = (scale > 0.0) & (pd_ > 0.0) & (survival > 0.0)
    a = ndtri(np.where(valid, pd_, 0.5))
    density = np.exp(-0.5 * a * a) / np.sqrt(2.0 * np.pi)
    c = np.where(valid, scale * survival / density, 0.0)
    return c / np.sqrt(1.0 + c * c)


@dataclass
class DefaultKernels:
    """
    Deterministic default and funding weights per simulation date.

    Attributes
    ----------
    counterparty : FloatArray
        K_c,i: counterparty defaults in (t_{i-1}, t_i] while we survive
    own : FloatArray
        K_o,i: we default in (t_{i-1}, t_i] while the counterparty survives
    joint_survival : FloatArray
        Probability that both survive to t_i
    borrowing : FloatArray
        F_b,i = (1 - R_b)(S_b(t_{i-1}) - S_b(t_i)) of the borrowing curve
    lending : FloatArray
        F_l,i of the lending curve
    counterparty_lgd : float
        1 - R_c
    own_lgd : float
        1 - R_o
    """

    counterparty: FloatArray
    own: FloatArray
    joint_survival: FloatArray
    borrowing: FloatArray
    lending: FloatArray
    counterparty_lgd: float
    own_lgd: float


def _survival(curve: SurvivalCurve | None, times: FloatArray) -> FloatArray:
    if curve is None:
        return np.ones(len(times))
    return np.asarray(curve.survival_probability(times), dtype=float)


def _funding_weights(curve: SurvivalCurve | None, times: FloatArray) -> FloatArray:
    if curve is None:
        return np.zeros(len(times))
    return curve.lgd * curve.incremental_default_probabilities(times)


@dataclass(eq=False)
class CreditSetup(DeepCloneable):
    """
    Credit curves of one calculation.

    Attributes
    ----------
    counterparty : SurvivalCurve | None
        Counterparty default curve (CVA)
    own : SurvivalCurve | None
        Own default curve (DVA)
    borrowing : SurvivalCurve | None
        Funding curve for borrowing (FCA)
    lending : SurvivalCurve | None
        Funding curve for lending (FBA)
    unilateral : bool
        Ignore first-to-default effects (each party's default weighted on
        its own)
    """

    counterparty: SurvivalCurve | None = None
    own: SurvivalCurve | None = None
    borrowing: SurvivalCurve | None = None
    lending: SurvivalCurve | None = None
    unilateral: bool = False

    def kernels(self, times: FloatArray, rho: float | FloatArray = 0.0) -> DefaultKernels:
        """
        Default and funding weights on a time grid.

        Parameters
        ----------
        times : FloatArray
            Simulation times, starting at 0
        rho : float | FloatArray
            Copula correlation of counterparty and own default, scalar or
            per date
        """
        times = np.asarray(times, dtype=float)
        rho = np.broadcast_to(np.asarray(rho, dtype=float), times.shape)
        s_c = _survival(self.counterparty, times)
        s_o = _survival(self.own, times)
        if self.unilateral:
            k_c = np.concatenate([[0.0], s_c[:-1] - s_c[1:]])
            k_o = np.concatenate([[0.0], s_o[:-1] - s_o[1:]])
            joint = s_c.copy()
        else:
            a_c = ndtri(1.0 - s_c)
            a_o = ndtri(1.0 - s_o)
            k_c = _first_to_default(a_c, a_o, rho)
            k_o = _first_to_default(a_o, a_c, rho)
            joint = np.array(
                [bivariate_normal_cdf(-x, -y, r) for x, y, r in zip(a_c, a_o, rho)]
            )
        return DefaultKernels(
            counterparty=k_c,
            own=k_o,
            joint_survival=joint,
            borrowing=_funding_weights(self.borrowing, times),
            lending=_funding_weights(self.lending, times),
            counterparty_lgd=self.counterparty.lgd if self.counterparty is not None else 0.0,
            own_lgd=self.own.lgd if self.own is not None else 0.0,
        )

    @property
    def parent_curves(self) -> list[Any]:
        return [c for c in (self.counterparty, self.own, self.borrowing, self.lending) if c is not None]


def _first_to_default(a_first: FloatArray, a_other: FloatArray, rho: FloatArray) -> FloatArray:
    """
    P(a_{i-1} < X ≤ a_i, Y > b_i) per date (0 at the first date).

    Notes
    -----
    [Φ(a_i) - Φ2(a_i, b_i; ρ_i)] - [Φ(a_{i-1}) - Φ2(a_{i-1}, b_i; ρ_i)]
    """
    result = np.zeros(len(a_first))
    for i in range(1, len(a_first)):
        upper = ndtr(a_first[i]) - bivariate_normal_cdf(a_first[i], a_other[i], rho[i])
        lower = ndtr(a_first[i - 1]) - bivariate_normal_cdf(a_first[i - 1], a_other[i], rho[i])
        result[i] = max(upper - lower, 0.0)
    return result


def _safe_ratio(numerator: PathArray, denominator: FloatArray) -> PathArray:
    """numerator / denominator per date, 1 where the denominator is zero."""
    denominator = np.broadcast_to(denominator[None, :], numerator.shape)
    return np.divide(
        numerator, denominator, out=np.ones_like(numerator), where=denominator > 0.0
    )


@dataclass
class CreditDriver:
    """
    Linear map from the simulated rows of a survival curve to its driver Z.

    Attributes
    ----------
    rows : slice
        Rows of the curve in the state vector
    coefficients : FloatArray
        Weight of Y(t_j) in every later Z_i, shape (n_dates, n_rows)
    scale : FloatArray
        Standard deviation σ_i of Z_i per date
    loading : FloatArray
        Copula loading β_i per date
    """

    rows: slice
    coefficients: FloatArray
    scale: FloatArray
    loading: FloatArray

    def standardised(self, states: StateArray) -> PathArray:
        """ξ_i = Z_i / σ_i per path and date (0 where σ_i is 0)."""
        d = self.coefficients.shape[0]
        contribution = np.zeros(states.shape[:2])
        # Explicit loop keeps every path's result independent of the batch size
        for k, row in enumerate(range(self.rows.start, self.rows.stop)):
            contribution += states[:, :, row] * self.coefficients[None, :, k]
        z = np.zeros_like(contribution)
        if d > 1:
            z[:, 1:] = np.cumsum(contribution[:, :-1], axis=1)
        inverse = np.divide(1.0, self.scale, out=np.zeros(d), where=self.scale > 0.0)
        return z * inverse[None, :]


class RadonNikodymCalculator:
    """
    Per-path Radon-Nikodym ratios of the survival, counterparty-default and
    own-default measures.

    Parameters
    ----------
    credit : CreditSetup
        Credit curves (read live, so in-place bumps are picked up)
    layout : FactorLayout
        Row layout of the simulated states; a credit curve without rows
        defaults independently of the paths

    Notes
    -----
    With q_c,i = PD_c(t_i | ξ_i) - PD_c(t_{i-1} | ξ_i) (same ξ_i and β_i
    at both ends), the bilateral counterparty ratio is
    q_c,i S_o(t_i | ξ_i) / K_c,i and the survival ratio is
    S_c(t_i | ξ) S_o(t_i | ξ) / S_joint(t_i). The kernels use the copula
    correlation ρ_i = β_c,i β_o,i corr(ξ_c,i, ξ_o,i), so every ratio
    averages to exactly one over the distribution of the states.
    """

    def __init__(self, credit: CreditSetup, layout: FactorLayout) -> None:
        self.credit = credit
        self.layout = layout
        self._cache: tuple[Any, bytes, Any] | None = None

    def cumulative_variance(self, times: FloatArray) -> FloatArray:
        """Accumulated row variance V(t_i), as stored on simulated paths."""
        variance = np.zeros((len(times), self.layout.row_count))
        variance[1:] = np.cumsum(self.layout.step_variances(times), axis=0)
        return variance

    def _coefficients(self, curve: SurvivalCurve | None, times: FloatArray) -> tuple[slice, FloatArray] | None:
        if curve is None:
            return None
        entry = self.layout.entry(curve)
        if entry is None:
            return None
        d = len(times)
        dt = np.diff(times)
        coefficients = np.zeros((d, entry.row_count))
        if entry.is_spot:
            coefficients[:-1, 0] = 1.0
        else:
            lo, hi, w = tenor_weights(self.layout.tenor_times, dt)
            steps = np.arange(d - 1)
            coefficients[steps, lo] += 1.0 - w
            coefficients[steps, hi] += w
        for j in range(d - 1):
            if entry.distribution is DistributionType.NORMAL:
                level = 1.0
            else:
                level = float(curve.forward_hazard_rates(times[j], np.array([max(dt[j], _MIN_TAU)]))[0])
            coefficients[j] *= dt[j] * level
        return entry.rows, coefficients

    def _sensitivities(self, coefficients: FloatArray) -> FloatArray:
        """G[i, s]: weight of the step-s increment in Z_i, shape (n_dates, n_steps, n_rows)."""
        d, n_rows = coefficients.shape
        cumulative = np.cumsum(coefficients, axis=0)
        g = np.zeros((d, d - 1, n_rows))
        for i in range(2, d):
            g[i, : i - 1] = cumulative[i - 1][None, :] - cumulative[: i - 1]
        return g

    def _covariance(
        self, first: tuple[slice, FloatArray], second: tuple[slice, FloatArray], variance: FloatArray
    ) -> FloatArray:
        """Cov(Z_first,i, Z_second,i) per date from the step covariances of the rows."""
        rows_a, coef_a = first
        rows_b, coef_b = second
        step_sd = np.sqrt(np.maximum(np.diff(variance, axis=0), 0.0))
        loadings = self.layout.loadings
        correlation = loadings[rows_a] @ loadings[rows_b].T
        if rows_a == rows_b:
            correlation = correlation + np.diag(self.layout.residuals[rows_a] ** 2)
        step_cov = step_sd[:, rows_a][:, :, None] * step_sd[:, rows_b][:, None, :] * correlation[None]
        return np.einsum(
            "isr,srt,ist->i", self._sensitivities(coef_a), step_cov, self._sensitivities(coef_b)
        )

    def drivers(
        self, times: FloatArray, variance: FloatArray | None = None
    ) -> tuple[CreditDriver | None, CreditDriver | None, FloatArray]:
        """
        Counterparty and own drivers with the per-date copula correlation.

        Parameters
        ----------
        times : FloatArray
            Simulation times
        variance : FloatArray | None
            Accumulated row variance of the paths (default: the layout's)

        Returns
        -------
        tuple
            (counterparty driver, own driver, ρ_i); a driver is None for a
            curve that is not simulated
        """
        times = np.asarray(times, dtype=float)
        if variance is None:
            variance = self.cumulative_variance(times)
        s_c = _survival(self.credit.counterparty, times)
        s_o = _survival(self.credit.own, times)
        key = np.concatenate([times, s_c, s_o]).tobytes()
        cached = self._cache
        if cached is not None and cached[0] is variance and cached[1] == key:
            return cached[2]

        parts = []
        for curve, survival in ((self.credit.counterparty, s_c), (self.credit.own, s_o)):
            mapping = self._coefficients(curve, times)
            if mapping is None:
                parts.append((None, None))
                continue
            scale = np.sqrt(np.maximum(self._covariance(mapping, mapping, variance), 0.0))
            driver = CreditDriver(mapping[0], mapping[1], scale, copula_loading(scale, survival))
            parts.append((mapping, driver))
        (map_c, drv_c), (map_o, drv_o) = parts

        rho = np.zeros(len(times))
        if drv_c is not None and drv_o is not None:
            cov = self._covariance(map_c, map_o, variance)
            denominator = drv_c.scale * drv_o.scale
            corr = np.divide(cov, denominator, out=np.zeros(len(times)), where=denominator > 0.0)
            rho = drv_c.loading * drv_o.loading * np.clip(corr, -1.0, 1.0)
        result = (drv_c, drv_o, rho)
        self._cache = (variance, key, result)
        return result

    def kernels(self, times: FloatArray, variance: FloatArray | None = None) -> DefaultKernels:
        _, _, rho = self.drivers(times, variance)
        return self.credit.kernels(times, rho)

    def _conditional(
        self,
        curve: SurvivalCurve | None,
        driver: CreditDriver | None,
        states: StateArray,
        times: FloatArray,
    ) -> tuple[PathArray, PathArray, FloatArray]:
        """(PD(t_i | ξ_i), PD(t_{i-1} | ξ_i), unconditional survival) of one party."""
        n, d = states.shape[:2]
        if curve is None:
            return np.zeros((n, d)), np.zeros((n, d)), np.ones(d)
        survival = np.asarray(curve.survival_probability(times), dtype=float)
        threshold = ndtri(1.0 - survival)
        previous = np.concatenate([[-np.inf], threshold[:-1]])
        if driver is None:
            xi, loading = np.zeros((n, d)), np.zeros(d)
        else:
            xi, loading = driver.standardised(states), driver.loading
        return (
            conditional_default_probability(threshold, xi, loading),
            conditional_default_probability(previous, xi, loading),
            survival,
        )

    def ratios(self, path_set: PathSet) -> tuple[PathArray, PathArray, PathArray]:
        """
        Radon-Nikodym ratios per path and date.

        Parameters
        ----------
        path_set : PathSet
            Simulated states and their accumulated variance

        Returns
        -------
        tuple[PathArray, PathArray, PathArray]
            (survival, counterparty default, own default) ratios
        """
        times = np.asarray(path_set.times, dtype=float)
        drv_c, drv_o, rho = self.drivers(times, path_set.variance)
        pd_c, pd_c_prev, s_c = self._conditional(
            self.credit.counterparty, drv_c, path_set.states, times
        )
        pd_o, pd_o_prev, s_o = self._conditional(self.credit.own, drv_o, path_set.states, times)
        kernels = self.credit.kernels(times, rho)
        q_c = pd_c - pd_c_prev
        q_o = pd_o - pd_o_prev
        if self.credit.unilateral:
            rn_c = _safe_ratio(q_c, kernels.counterparty)
            rn_o = _safe_ratio(q_o, kernels.own)
            rn_s = _safe_ratio(1.0 - pd_c, s_c)
        else:
            rn_c = _safe_ratio(q_c * (1.0 - pd_o), kernels.counterparty)
            rn_o = _safe_ratio(q_o * (1.0 - pd_c), kernels.own)
            rn_s = _safe_ratio((1.0 - pd_c) * (1.0 - pd_o), kernels.joint_survival)
        return rn_s, rn_c, rn_o
