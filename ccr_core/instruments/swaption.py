"""
Bermudan swaption valued by least-squares American Monte Carlo.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ccr_core._types import FloatArray
from ccr_core.instruments.base import (
    AmericanMonteCarloAdapter,
    ExerciseEvaluator,
    ExerciseSide,
    InstrumentType,
    Trade,
)
from ccr_core.instruments.irs import InterestRateSwap
from ccr_core.market.curve import DiscountCurve
from ccr_core.simulation.paths import MarketState


@dataclass(eq=False)
class BermudanSwaption(Trade, AmericanMonteCarloAdapter):
    """
    Right to enter the remaining part of a swap on a set of exercise dates.

    Exercising at Tₑ gives the underlying swap's cashflows after Tₑ. The
    payer/receiver flavour follows ``underlying.pay_fixed``. A long
    position holds the right (call side); a short position has sold it
    (put side, the counterparty decides).

    Attributes
    ----------
    name : str
        Trade identifier
    underlying : InterestRateSwap
        Swap entered on exercise
    exercise_schedule : Sequence[float]
        Exercise times in years, before the swap maturity
    long : bool
        True if we hold the option
    physical_settlement : bool
        Enter the swap (True) or receive its value in cash (False)
    netting_group : str | None
        Netting group of the trade

    Notes
    -----
    The trade has no closed-form value; :class:`LeastSquaresMonteCarlo`
    values it through the :class:`AmericanMonteCarloAdapter` interface.
    """

    name: str
    underlying: InterestRateSwap
    exercise_schedule: Sequence[float]
    long: bool = True
    physical_settlement: bool = True
    netting_group: str | None = None
    instrument_type: InstrumentType = field(
        default=InstrumentType.BERMUDAN_SWAPTION, init=False, repr=False
    )

    def __post_init__(self) -> None:
        times = np.sort(np.asarray(self.exercise_schedule, dtype=float))
        if times.size == 0:
            raise ValueError(f"{self.name}: at least one exercise time is required")
        if times[0] <= 0.0:
            raise ValueError(f"{self.name}: exercise times must be positive")
        if times[-1] >= self.underlying.maturity:
            raise ValueError(
                f"{self.name}: last exercise ({times[-1]}) must precede the swap maturity "
                f"({self.underlying.maturity})"
            )
        self._exercise_times = times

    @property
    def maturity(self) -> float:  # type: ignore[override]
        return self.underlying.maturity

    @property
    def notional(self) -> float:
        return self.underlying.notional

    @property
    def discount_curves(self) -> list[DiscountCurve]:
        return [self.underlying.discount_curve]

    @property
    def exercise_times(self) -> FloatArray:
        return self._exercise_times

    @property
    def evaluator(self) -> ExerciseEvaluator:
        side = ExerciseSide.CALL if self.long else ExerciseSide.PUT
        return ExerciseEvaluator(side, self.post_exercise_value)

    def american_monte_carlo(self) -> AmericanMonteCarloAdapter:
        return self

    def explanatory_variable(self, state: MarketState) -> FloatArray:
        """Forward swap rate of the underlying."""
        return self.underlying.swap_rate(state)

    def post_exercise_value(self, state: MarketState) -> FloatArray:
        """Value of the entered swap, from our side."""
        sign = 1.0 if self.long else -1.0
        return sign * self.underlying.pv(state)

    def pv(self, state: MarketState) -> FloatArray:
        raise TypeError(
            f"{self.name}: Bermudan swaptions are valued by least-squares Monte Carlo"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.instrument_type.value,
            "name": self.name,
            "underlying": self.underlying.to_dict(),
            "exercise_times": [float(t) for t in self._exercise_times],
            "long": self.long,
            "physical_settlement": self.physical_settlement,
            "netting_group": self.netting_group,
        }
