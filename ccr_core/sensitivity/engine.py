"""
Sensitivities of exposure measures to market quotes.

Two engines that agree to numerical precision:

1. Bump and reprice: deep clone the calculation, bump the clone's market
   object, recalibrate and re-simulate with the same seed.
2. Factor sensitivities: bump the object in place and revalue on the stored
   paths (no new random numbers), then restore. Factor loading bumps
   simulate the stored paths again from the run's draws.

Delta = up - base (UP), base - down (DOWN) or (up - down) / 2 (BOTH);
gamma = up - 2 base + down.
"""

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import numpy as np
import pandas as pd

from ccr_core.calculations import CCRCalculations
from ccr_core.calibration.engine import volatility_sources
from ccr_core.clone import counterpart, deep_clone
from ccr_core.exposure.measures import Measure
from ccr_core.sensitivity.bump import (
    BumpDirection,
    BumpScenario,
    BumpSpecification,
    set_quotes_isolated,
)

logger = logging.getLogger("CCR.Sensitivity")

MeasureValues = dict[Measure, float]

COLUMNS = ["measure", "instrument", "tenor", "delta"]


def _link_groups(targets: Sequence[Any]) -> dict[int, int]:
    """Union-find over targets linked through their dependent-curve lists."""
    parent = {id(t): id(t) for t in targets}

    def find(key: int) -> int:
        while parent[key] != key:
            parent[key] = parent[parent[key]]
            key = parent[key]
        return key

    for t in targets:
        for dependent in getattr(t, "dependent_curves", []):
            if id(dependent) in parent:
                parent[find(id(dependent))] = find(id(t))
    return {key: find(key) for key in parent}


class SensitivityEngine:
    """
    Sensitivities of a calculation's measures.

    Parameters
    ----------
    calculations : CCRCalculations
        Base calculation (executed on first use)
    measures : Sequence[Measure | str]
        Life-of-deal measures to differentiate
    calc_gamma : bool
        Also report second differences (needs both directions)
    max_workers : int | None
        Threads of bump-and-reprice

    Example
    -------
    >>> engine = SensitivityEngine(calc, measures=["CVA", "DVA"])
    >>> deltas = engine.factor_sensitivities([BumpSpecification(usd_curve, bucketed=True)])
    """

    def __init__(
        self,
        calculations: CCRCalculations,
        measures: Sequence["Measure | str"] = (Measure.CVA,),
        calc_gamma: bool = False,
        max_workers: int | None = None,
    ) -> None:
        self.calculations = calculations
        self.measures = [Measure.parse(m) for m in measures]
        self.calc_gamma = calc_gamma
        self.max_workers = max_workers

    @property
    def columns(self) -> list[str]:
        return COLUMNS + ["gamma"] if self.calc_gamma else list(COLUMNS)

    def _values(self, calculations: CCRCalculations) -> MeasureValues:
        return {m: calculations.get_measure(m) for m in self.measures}

    def _direction(self, bump: BumpSpecification) -> BumpDirection:
        return BumpDirection.BOTH if self.calc_gamma else bump.direction

    def _rows(
        self,
        bump: BumpSpecification,
        scenario: BumpScenario,
        base: MeasureValues,
        bumped: dict[int, MeasureValues],
    ) -> list[dict[str, Any]]:
        direction = self._direction(bump)
        rows = []
        for m in self.measures:
            up = bumped.get(1, {}).get(m)
            down = bumped.get(-1, {}).get(m)
            if direction is BumpDirection.UP:
                delta = up - base[m]
            elif direction is BumpDirection.DOWN:
                delta = base[m] - down
            else:
                delta = 0.5 * (up - down)
            row = {"measure": m.value, "instrument": bump.name, "tenor": scenario.tenor, "delta": delta}
            if self.calc_gamma:
                row["gamma"] = up - 2.0 * base[m] + down
            rows.append(row)
        return rows

    def _skipped_rows(self, bump: BumpSpecification, scenario: BumpScenario) -> list[dict[str, Any]]:
        logger.warning("%s %s: base quote is zero, bump skipped", bump.name, scenario.tenor)
        rows = []
        for m in self.measures:
            row = {"measure": m.value, "instrument": bump.name, "tenor": scenario.tenor, "delta": 0.0}
            if self.calc_gamma:
                row["gamma"] = 0.0
            rows.append(row)
        return rows

    # Bump and reprice

    def _reprice(
        self, bump: BumpSpecification, scenario: BumpScenario, sign: int, lock: threading.Lock
    ) -> MeasureValues:
        with lock:
            clone, memo = deep_clone(self.calculations)
            if bump.is_factor_loading:
                target = bump.target.counterpart(memo)
            else:
                target = counterpart(memo, bump.target)
            base = target.quotes
            set_quotes_isolated(target, bump.bumped_quotes(base, scenario, sign))
        clone.execute()
        return self._values(clone)

    def bump_and_reprice(self, bumps: Sequence[BumpSpecification]) -> pd.DataFrame:
        """
        Sensitivities by full recalculation of bumped clones.

        Every scenario deep clones the calculation, bumps the clone's copy of
        the target (curves built on it keep their fitted values),
        recalibrates and re-simulates with the run's seed. Scenarios run
        concurrently; targets linked by dependent-curve lists share a lock.

        Returns
        -------
        pd.DataFrame
            Columns ``measure, instrument, tenor, delta[, gamma]``
        """
        base = self._values(self.calculations)
        groups = _link_groups([b.target for b in bumps])
        locks = {root: threading.Lock() for root in set(groups.values())}

        jobs: list[tuple[BumpSpecification, BumpScenario, int]] = []
        plan: list[tuple[BumpSpecification, BumpScenario, bool]] = []
        for bump in bumps:
            quotes = bump.target.quotes
            for scenario in bump.scenarios():
                skipped = bump.is_skipped(quotes, scenario)
                plan.append((bump, scenario, skipped))
                if not skipped:
                    jobs.extend((bump, scenario, s) for s in self._direction(bump).signs)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [
                pool.submit(self._reprice, b, sc, s, locks[groups[id(b.target)]])
                for b, sc, s in jobs
            ]
            results = [f.result() for f in futures]

        bumped: dict[tuple[int, str, int], MeasureValues] = {}
        for (b, sc, s), values in zip(jobs, results):
            bumped[(id(b), sc.tenor, s)] = values

        rows = []
        for bump, scenario, skipped in plan:
            if skipped:
                rows.extend(self._skipped_rows(bump, scenario))
                continue
            per_sign = {
                s: bumped[(id(bump), scenario.tenor, s)] for s in self._direction(bump).signs
            }
            rows.extend(self._rows(bump, scenario, base, per_sign))
        logger.info("Bump and reprice: %d scenario(s), %d repricing(s)", len(plan), len(jobs))
        return pd.DataFrame(rows, columns=self.columns)

    # In-place factor sensitivities

    def _volatility_rows(self, bump: BumpSpecification) -> list[tuple[Any, np.ndarray]]:
        """(reference, row mask) of the simulated rows driven by a volatility object."""
        context = self.calculations.context
        result = []
        for reference in context.references:
            sources = volatility_sources(context, reference)
            mask = np.array([source is bump.target for source in sources], dtype=bool)
            if mask.any():
                result.append((reference, mask))
        return result

    def _loadings_bumped_in_place(
        self, bump: BumpSpecification, scenario: BumpScenario, sign: int
    ) -> MeasureValues:
        """Loading bumps change the states, so the stored paths are simulated again."""
        calc = self.calculations
        target = bump.target
        model = calc.model_snapshot()
        override = target.override
        try:
            target.set_quotes(bump.bumped_quotes(target.quotes, scenario, sign))
            calc.resimulate()
            calc.revalue()
            return self._values(calc)
        finally:
            target.restore(override)
            calc.restore_model(model)

    def _bumped_in_place(self, bump: BumpSpecification, scenario: BumpScenario, sign: int) -> MeasureValues:
        if bump.is_factor_loading:
            return self._loadings_bumped_in_place(bump, scenario, sign)
        calc = self.calculations
        path_set = calc.stored_path_set()
        snapshot = path_set.snapshot()
        base_quotes = bump.target.quotes
        try:
            if bump.is_volatility:
                factor = bump.scale_factor(sign)
                for reference, mask in self._volatility_rows(bump):
                    path_set.rescale_rows(reference, factor, mask)
            else:
                set_quotes_isolated(bump.target, bump.bumped_quotes(base_quotes, scenario, sign))
            calc.revalue()
            return self._values(calc)
        finally:
            if not bump.is_volatility:
                set_quotes_isolated(bump.target, base_quotes)
            path_set.restore(snapshot)

    def factor_sensitivities(self, bumps: Sequence[BumpSpecification]) -> pd.DataFrame:
        """
        Sensitivities on the stored paths, without new random numbers.

        Each scenario bumps its target in place, re-derives numeraire and
        Radon-Nikodym ratios from the stored factor states, refits the
        regressions and revalues; the market and the paths are restored
        afterwards. Volatility targets support parallel relative bumps only
        (the driven rows are rescaled). Factor loading targets recalibrate
        and simulate the paths again from the run's seed.

        Returns
        -------
        pd.DataFrame
            Columns ``measure, instrument, tenor, delta[, gamma]``

        Raises
        ------
        ValueError
            For a bucketed or absolute volatility bump
        """
        calc = self.calculations
        for bump in bumps:
            if bump.is_volatility:
                bump.scale_factor(1)
        base = self._values(calc)
        rows = []
        count = 0
        try:
            for bump in bumps:
                quotes = bump.target.quotes
                for scenario in bump.scenarios():
                    if bump.is_skipped(quotes, scenario):
                        rows.extend(self._skipped_rows(bump, scenario))
                        continue
                    per_sign = {
                        s: self._bumped_in_place(bump, scenario, s)
                        for s in self._direction(bump).signs
                    }
                    count += len(per_sign)
                    rows.extend(self._rows(bump, scenario, base, per_sign))
        finally:
            calc.revalue()
        logger.info("Factor sensitivities: %d in-place revaluation(s)", count)
        return pd.DataFrame(rows, columns=self.columns)
