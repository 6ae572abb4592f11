"""
Netting set management for portfolio exposure calculation.

A netting set groups trades whose values offset in case of counterparty
default under a master agreement (e.g., ISDA). Trades are first summed per
netting group, collateral is applied per group, groups are netted per sub
group and the sub-group values give the positive and negative exposure.
Trades of an unknown group are counted gross.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from ccr_core._types import FloatArray, IntArray, PathArray, StateArray
from ccr_core.exposure.collateral import VariationMargin
from ccr_core.instruments.base import Trade
from ccr_core.simulation.paths import PathSet


@dataclass
class NettingGroup:
    """
    One netting group.

    Attributes
    ----------
    name : str
        Group name declared by trades
    sub_group : str | None
        Sub group the group nets in (None: its own name)
    collateral : VariationMargin | None
        Collateral terms of the group
    """

    name: str
    sub_group: str | None = None
    collateral: VariationMargin | None = None

    @property
    def netting_key(self) -> str:
        return self.sub_group if self.sub_group is not None else self.name


@dataclass
class NettingSet:
    """
    Netting groups of one counterparty.

    Example
    -------
    >>> netting = NettingSet([NettingGroup("A"), NettingGroup("B", collateral=vm)])
    >>> positive, negative = netting.net(values.values, values.trades, grid.times)
    """

    groups: list[NettingGroup] = field(default_factory=list)
    name: str = "Default"

    def __post_init__(self) -> None:
        names = [g.name for g in self.groups]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate netting group names in {names}")

    def group(self, name: str | None) -> NettingGroup | None:
        """Netting group by name, None if unknown."""
        for g in self.groups:
            if g.name == name:
                return g
        return None

    def netted_values(
        self, values: StateArray, trades: Sequence[Trade], times: FloatArray
    ) -> tuple[list[PathArray], list[PathArray]]:
        """
        Collateralised values per sub group, and the gross trade values.

        Parameters
        ----------
        values : StateArray
            Trade values, shape (n_paths, n_dates, n_trades)
        trades : Sequence[Trade]
            Trades in column order
        times : FloatArray
            Simulation times

        Returns
        -------
        tuple[list[PathArray], list[PathArray]]
            (sub-group values, gross trade values)
        """
        n, d = values.shape[:2]
        group_sums = {g.name: np.zeros((n, d)) for g in self.groups}
        gross: list[PathArray] = []
        for k, trade in enumerate(trades):
            g = self.group(trade.netting_group)
            if g is None:
                gross.append(values[:, :, k])
            else:
                group_sums[g.name] += values[:, :, k]
        sub_sums: dict[str, PathArray] = {}
        for g in self.groups:
            m = group_sums[g.name]
            if g.collateral is not None:
                m = g.collateral.apply(m, times)
            if g.netting_key in sub_sums:
                sub_sums[g.netting_key] = sub_sums[g.netting_key] + m
            else:
                sub_sums[g.netting_key] = m
        return list(sub_sums.values()), gross

    def net(
        self, values: StateArray, trades: Sequence[Trade], times: FloatArray
    ) -> tuple[PathArray, PathArray]:
        """
        Positive and negative exposure per path and date.

        Returns
        -------
        tuple[PathArray, PathArray]
            (X, NX) with X = Σ max(M, 0) and NX = Σ max(-M, 0) over sub
            groups and gross trades
        """
        n, d = values.shape[:2]
        positive = np.zeros((n, d))
        negative = np.zeros((n, d))
        sub_values, gross = self.netted_values(values, trades, times)
        for m in sub_values + gross:
            positive += np.maximum(m, 0.0)
            negative += np.maximum(-m, 0.0)
        return positive, negative

    def net_to_gross_ratio(
        self, values: StateArray, trades: Sequence[Trade], times: FloatArray
    ) -> FloatArray:
        """
        Net-to-gross ratio per date.

        NGR = E[net exposure] / E[gross positive exposure]. NGR = 1 means no
        netting benefit; dates without gross exposure give 1.
        """
        positive, _ = self.net(values, trades, times)
        gross = np.maximum(values, 0.0).sum(axis=2).mean(axis=0)
        net = positive.mean(axis=0)
        return np.divide(net, gross, out=np.ones_like(net), where=gross > 1e-10)

    def __repr__(self) -> str:
        return f"NettingSet(name='{self.name}', groups={[g.name for g in self.groups]})"


@dataclass
class PathExposures:
    """
    Netted per-path quantities consumed by the exposure measures.

    All arrays have shape (n_paths, n_dates) except ``weights`` (n_paths,)
    and ``path_indices``.
    """

    path_indices: IntArray
    positive: PathArray
    negative: PathArray
    numeraire: PathArray
    rn_survival: PathArray
    rn_counterparty: PathArray
    rn_own: PathArray
    weights: FloatArray

    @property
    def n_paths(self) -> int:
        return len(self.path_indices)

    @classmethod
    def from_path_set(
        cls,
        path_set: PathSet,
        positive: PathArray,
        negative: PathArray,
        use_radon_nikodym: bool = True,
    ) -> "PathExposures":
        """Attach numeraire, weights and (optionally) ratios of a path set."""
        if use_radon_nikodym:
            ratios = (path_set.rn_survival, path_set.rn_counterparty, path_set.rn_own)
        else:
            ones = np.ones_like(positive)
            ratios = (ones, ones, ones)
        return cls(
            path_set.path_indices.copy(),
            positive,
            negative,
            path_set.numeraire.copy(),
            *(r.copy() for r in ratios),
            path_set.weights,
        )

    @classmethod
    def allocate(cls, n_paths: int, n_dates: int) -> "PathExposures":
        """Zero-filled arrays for incremental filling."""
        return cls(
            np.zeros(n_paths, dtype=np.int64),
            *(np.zeros((n_paths, n_dates)) for _ in range(6)),
            np.zeros(n_paths),
        )

    def assign(self, positions: slice | IntArray, other: "PathExposures") -> None:
        """Write ``other`` into the given path slots."""
        self.path_indices[positions] = other.path_indices
        self.positive[positions] = other.positive
        self.negative[positions] = other.negative
        self.numeraire[positions] = other.numeraire
        self.rn_survival[positions] = other.rn_survival
        self.rn_counterparty[positions] = other.rn_counterparty
        self.rn_own[positions] = other.rn_own
        self.weights[positions] = other.weights

    @classmethod
    def concatenate(cls, parts: Sequence["PathExposures"]) -> "PathExposures":
        """Join per-chunk exposures in the given order."""
        if not parts:
            raise ValueError("Nothing to concatenate")
        return cls(
            np.concatenate([p.path_indices for p in parts]),
            np.concatenate([p.positive for p in parts]),
            np.concatenate([p.negative for p in parts]),
            np.concatenate([p.numeraire for p in parts]),
            np.concatenate([p.rn_survival for p in parts]),
            np.concatenate([p.rn_counterparty for p in parts]),
            np.concatenate([p.rn_own for p in parts]),
            np.concatenate([p.weights for p in parts]),
        )
