"""
Fiscal year value object (``corptax_kernel.domain.fiscal_year``).

Responsibility
--------------
Parse and reason about Indian financial years ("2024-25" runs
1 April 2024 to 31 March 2025) and their assessment years ("2025-26").

Architecture position
---------------------
**Kernel domain layer** -- pure value object, zero I/O.

Invariants enforced
-------------------
* The label is always ``YYYY-YY`` with the second part equal to the next
  calendar year modulo 100.
* Ordering follows the starting calendar year.

Failure modes
-------------
* ``InvalidFinancialYearError`` for malformed labels.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from corptax_kernel.exceptions import InvalidFinancialYearError

_LABEL = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, order=True)
class FinancialYear:
    """An Indian financial year identified by its starting calendar year."""

    start_year: int

    @classmethod
    def parse(cls, value: "str | FinancialYear") -> "FinancialYear":
        if isinstance(value, FinancialYear):
            return value
        if not isinstance(value, str):
            raise InvalidFinancialYearError(value)
        match = _LABEL.match(value.strip())
        if match is None:
            raise InvalidFinancialYearError(value)
        start = int(match.group(1))
        if int(match.group(2)) != (start + 1) % 100:
            raise InvalidFinancialYearError(value)
        return cls(start)

    @classmethod
    def containing(cls, day: date) -> "FinancialYear":
        """The financial year a calendar date falls in."""
        return cls(day.year if day.month >= 4 else day.year - 1)

    @property
    def label(self) -> str:
        return f"{self.start_year}-{(self.start_year + 1) % 100:02d}"

    def __str__(self) -> str:
        return self.label

    @property
    def start_date(self) -> date:
        return date(self.start_year, 4, 1)

    @property
    def end_date(self) -> date:
        return date(self.start_year + 1, 3, 31)

    @property
    def assessment_year(self) -> "FinancialYear":
        """Assessment year: the year following the financial year."""
        return FinancialYear(self.start_year + 1)

    def plus_years(self, years: int) -> "FinancialYear":
        return FinancialYear(self.start_year + years)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def quarter_of(self, day: date) -> int:
        """Calendar quarter of the financial year (Apr-Jun = 1 ... Jan-Mar = 4).

        Dates before the year count as quarter 1, dates after as quarter 4.
        """
        if day < self.start_date:
            return 1
        if day > self.end_date:
            return 4
        return (months_elapsed(self.start_date, day) - 1) // 3 + 1


def months_elapsed(start: date, end: date) -> int:
    """Calendar months from ``start`` to ``end``, a part month counting as one.

    Both the starting and the ending month are counted, so 1 April to any day
    in July is 4.  Returns 0 when ``end`` is before ``start``.
    """
    if end < start:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month) + 1
