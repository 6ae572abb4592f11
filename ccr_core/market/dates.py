"""
Dates, tenors and the simulation date grid.

Times are measured in years from the as-of date with the Act/365 Fixed
convention; all curves and models work on these year fractions.
"""

import calendar
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta

import numpy as np

from ccr_core._types import TimeGrid, Year

DAYS_PER_YEAR = 365.0

_TENOR_PATTERN = re.compile(r"^\s*(\d+)\s*([DWMY])\s*$", re.IGNORECASE)


def year_fraction(start: date, end: date) -> Year:
    """
    Act/365 Fixed year fraction between two dates.

    Parameters
    ----------
    start : date
        Start date
    end : date
        End date

    Returns
    -------
    float
        (end - start) in days divided by 365
    """
    return (end - start).days / DAYS_PER_YEAR


def _add_months(d: date, months: int) -> date:
    """Add calendar months, rolling to month end when the day is missing."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class Tenor:
    """
    A period such as 3M or 10Y.

    Attributes
    ----------
    count : int
        Number of units
    unit : str
        One of ``D``, ``W``, ``M``, ``Y``

    Example
    -------
    >>> Tenor.parse("6M").years
    0.5
    >>> Tenor.parse("1Y").add_to(date(2024, 2, 29))
    datetime.date(2025, 2, 28)
    """

    count: int
    unit: str

    def __post_init__(self) -> None:
        """Validate tenor."""
        if self.count < 0:
            raise ValueError(f"Tenor count must be non-negative, got {self.count}")
        if self.unit not in ("D", "W", "M", "Y"):
            raise ValueError(f"Unknown tenor unit '{self.unit}'")

    @classmethod
    def parse(cls, text: "str | Tenor") -> "Tenor":
        """Parse a tenor string like ``"3M"``."""
        if isinstance(text, Tenor):
            return text
        match = _TENOR_PATTERN.match(text)
        if match is None:
            raise ValueError(f"Cannot parse tenor '{text}'")
        return cls(int(match.group(1)), match.group(2).upper())

    @property
    def years(self) -> Year:
        """Approximate length in years."""
        if self.unit == "D":
            return self.count / DAYS_PER_YEAR
        if self.unit == "W":
            return 7 * self.count / DAYS_PER_YEAR
        if self.unit == "M":
            return self.count / 12.0
        return float(self.count)

    def add_to(self, d: date, multiple: int = 1) -> date:
        """Return the date ``multiple`` tenors after ``d``."""
        n = self.count * multiple
        if self.unit == "D":
            return d + timedelta(days=n)
        if self.unit == "W":
            return d + timedelta(weeks=n)
        if self.unit == "M":
            return _add_months(d, n)
        return _add_months(d, 12 * n)

    def __str__(self) -> str:
        return f"{self.count}{self.unit}"


def parse_tenors(tenors: Iterable["str | Tenor"]) -> list[Tenor]:
    """Parse a sequence of tenor strings."""
    return [Tenor.parse(t) for t in tenors]


class SimulationDateGrid:
    """
    Ordered simulation dates shared by all factors of one run.

    The as-of date is always the first element (t = 0) and dates are
    strictly increasing.

    Parameters
    ----------
    dates : Sequence[date]
        Simulation dates, as-of date first

    Example
    -------
    >>> grid = SimulationDateGrid.build(date(2024, 1, 15), "2Y", "6M")
    >>> len(grid)
    5
    >>> grid.labels[1]
    '2024-07-15'
    """

    def __init__(self, dates: Sequence[date]) -> None:
        if len(dates) < 2:
            raise ValueError("Simulation grid needs the as-of date and at least one more date")
        for prev, nxt in zip(dates[:-1], dates[1:]):
            if nxt <= prev:
                raise ValueError(
                    f"Simulation dates must be strictly increasing, got {prev} then {nxt}"
                )
        self._dates = list(dates)
        self._times = np.array([year_fraction(self._dates[0], d) for d in self._dates])

    @classmethod
    def build(
        cls,
        as_of: date,
        horizon: "str | Tenor",
        step: "str | Tenor",
        extra_dates: Iterable[date] = (),
    ) -> "SimulationDateGrid":
        """
        Build a regular grid from as-of date to as-of + horizon.

        Parameters
        ----------
        as_of : date
            As-of date
        horizon : str | Tenor
            Last date relative to as-of (e.g. ``"12Y"``)
        step : str | Tenor
            Step between dates (e.g. ``"6M"``)
        extra_dates : Iterable[date]
            Additional dates merged into the grid (e.g. exercise dates)

        Returns
        -------
        SimulationDateGrid
            Grid with unique, sorted dates
        """
        horizon_t = Tenor.parse(horizon)
        step_t = Tenor.parse(step)
        if step_t.count == 0:
            raise ValueError("Simulation step must be positive")
        end = horizon_t.add_to(as_of)
        dates = {as_of}
        k = 1
        while True:
            d = step_t.add_to(as_of, k)
            if d > end:
                break
            dates.add(d)
            k += 1
        dates.add(end)
        dates.update(d for d in extra_dates if as_of < d <= end)
        return cls(sorted(dates))

    @classmethod
    def from_times(cls, as_of: date, times: Iterable[Year]) -> "SimulationDateGrid":
        """Build a grid from year fractions (rounded to whole days)."""
        days = sorted({int(round(t * DAYS_PER_YEAR)) for t in times} | {0})
        return cls([as_of + timedelta(days=n) for n in days])

    @property
    def as_of(self) -> date:
        """As-of date (first grid date)."""
        return self._dates[0]

    @property
    def dates(self) -> list[date]:
        """Copy of the grid dates."""
        return list(self._dates)

    @property
    def times(self) -> TimeGrid:
        """Year fractions from the as-of date."""
        return self._times.copy()

    @property
    def steps(self) -> TimeGrid:
        """Step sizes in years, shape (n_dates - 1,)."""
        return np.diff(self._times)

    @property
    def labels(self) -> list[str]:
        """ISO date labels."""
        return [d.isoformat() for d in self._dates]

    def index_of(self, d: date) -> int:
        """Index of a grid date."""
        try:
            return self._dates.index(d)
        except ValueError:
            raise ValueError(f"{d} is not a simulation date") from None

    def time_of(self, d: date) -> Year:
        """Year fraction of any date from the as-of date."""
        return year_fraction(self._dates[0], d)

    def __len__(self) -> int:
        return len(self._dates)

    def __repr__(self) -> str:
        return (
            f"SimulationDateGrid({self._dates[0]} .. {self._dates[-1]}, "
            f"n_dates={len(self._dates)})"
        )
