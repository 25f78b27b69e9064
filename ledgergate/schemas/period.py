"""
LedgerGate - Period Schemas

Period descriptor shared by every statement builder and the lock service.
Canonical keys are ``YYYY-MM`` for months, ``YYYY-Qn`` for quarters and
``YYYY`` for years.
"""

import calendar
import re
from datetime import date
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledgergate.models.period_lock import PeriodType
from ledgergate.utils.error_handling import InvalidPeriodException


_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")
_QUARTER_KEY = re.compile(r"^(\d{4})-Q([1-4])$")
_YEAR_KEY = re.compile(r"^(\d{4})$")


class PeriodDescriptor(BaseModel):
    """
    A month, quarter or year, optionally with an explicit date range.

    The explicit ``from_date``/``to_date`` override only changes the date
    range handed to the balance provider; the canonical key (and therefore
    the lock record) is always derived from the period itself.
    """

    model_config = ConfigDict(frozen=True)

    period_type: PeriodType
    year: int = Field(..., ge=1900, le=9999)
    month: Optional[int] = Field(None, ge=1, le=12)
    quarter: Optional[int] = Field(None, ge=1, le=4)
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    @model_validator(mode="after")
    def check_shape(self) -> "PeriodDescriptor":
        if self.period_type == PeriodType.MONTH:
            if self.month is None:
                raise ValueError("month is required for a monthly period")
            if self.quarter is not None:
                raise ValueError("quarter must not be set for a monthly period")
        elif self.period_type == PeriodType.QUARTER:
            if self.quarter is None:
                raise ValueError("quarter is required for a quarterly period")
            if self.month is not None:
                raise ValueError("month must not be set for a quarterly period")
        elif self.month is not None or self.quarter is not None:
            raise ValueError("month and quarter must not be set for a yearly period")

        if (self.from_date is None) != (self.to_date is None):
            raise ValueError("from_date and to_date must be given together")
        if self.from_date is not None and self.from_date > self.to_date:
            raise ValueError("from_date must not be after to_date")
        return self

    # =========================================================================
    # CONSTRUCTORS
    # =========================================================================

    @classmethod
    def for_month(cls, year: int, month: int) -> "PeriodDescriptor":
        return cls(period_type=PeriodType.MONTH, year=year, month=month)

    @classmethod
    def for_quarter(cls, year: int, quarter: int) -> "PeriodDescriptor":
        return cls(period_type=PeriodType.QUARTER, year=year, quarter=quarter)

    @classmethod
    def for_year(cls, year: int) -> "PeriodDescriptor":
        return cls(period_type=PeriodType.YEAR, year=year)

    @classmethod
    def parse(cls, key: str) -> "PeriodDescriptor":
        """Parse a canonical period key, raising InvalidPeriodException."""
        key = (key or "").strip()
        try:
            match = _MONTH_KEY.match(key)
            if match:
                return cls.for_month(int(match.group(1)), int(match.group(2)))
            match = _QUARTER_KEY.match(key)
            if match:
                return cls.for_quarter(int(match.group(1)), int(match.group(2)))
            match = _YEAR_KEY.match(key)
            if match:
                return cls.for_year(int(match.group(1)))
        except ValueError as e:
            raise InvalidPeriodException(key, message=f"Invalid period {key}: {e}")
        raise InvalidPeriodException(key)

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def key(self) -> str:
        if self.period_type == PeriodType.MONTH:
            return f"{self.year}-{self.month:02d}"
        if self.period_type == PeriodType.QUARTER:
            return f"{self.year}-Q{self.quarter}"
        return str(self.year)

    @property
    def label(self) -> str:
        if self.period_type == PeriodType.MONTH:
            return f"Month {self.month:02d}/{self.year}"
        if self.period_type == PeriodType.QUARTER:
            return f"Quarter {self.quarter}/{self.year}"
        return f"Year {self.year}"

    @property
    def natural_range(self) -> Tuple[date, date]:
        """Calendar date range of the period, ignoring any override."""
        if self.period_type == PeriodType.MONTH:
            first_month, last_month = self.month, self.month
        elif self.period_type == PeriodType.QUARTER:
            first_month = (self.quarter - 1) * 3 + 1
            last_month = first_month + 2
        else:
            first_month, last_month = 1, 12
        last_day = calendar.monthrange(self.year, last_month)[1]
        return date(self.year, first_month, 1), date(self.year, last_month, last_day)

    @property
    def start_date(self) -> date:
        return self.from_date or self.natural_range[0]

    @property
    def end_date(self) -> date:
        return self.to_date or self.natural_range[1]

    @property
    def is_first_of_year(self) -> bool:
        """January, Q1 and whole years have no within-year predecessor."""
        if self.period_type == PeriodType.MONTH:
            return self.month == 1
        if self.period_type == PeriodType.QUARTER:
            return self.quarter == 1
        return True

    def months(self) -> List[Tuple[int, int]]:
        """(year, month) pairs covered by the effective date range."""
        start, end = self.start_date, self.end_date
        result = []
        year, month = start.year, start.month
        while (year, month) <= (end.year, end.month):
            result.append((year, month))
            month += 1
            if month > 12:
                year, month = year + 1, 1
        return result

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def previous(self) -> "PeriodDescriptor":
        """Immediately preceding period of the same granularity."""
        if self.period_type == PeriodType.MONTH:
            if self.month == 1:
                return self.for_month(self.year - 1, 12)
            return self.for_month(self.year, self.month - 1)
        if self.period_type == PeriodType.QUARTER:
            if self.quarter == 1:
                return self.for_quarter(self.year - 1, 4)
            return self.for_quarter(self.year, self.quarter - 1)
        return self.for_year(self.year - 1)

    def next(self) -> "PeriodDescriptor":
        """Immediately following period of the same granularity."""
        if self.period_type == PeriodType.MONTH:
            if self.month == 12:
                return self.for_month(self.year + 1, 1)
            return self.for_month(self.year, self.month + 1)
        if self.period_type == PeriodType.QUARTER:
            if self.quarter == 4:
                return self.for_quarter(self.year + 1, 1)
            return self.for_quarter(self.year, self.quarter + 1)
        return self.for_year(self.year + 1)

    def without_override(self) -> "PeriodDescriptor":
        return self.model_copy(update={"from_date": None, "to_date": None})


def periods_in_year(year: int, period_type: PeriodType) -> List[PeriodDescriptor]:
    """Every period of the given granularity in a calendar year, in order."""
    if period_type == PeriodType.MONTH:
        return [PeriodDescriptor.for_month(year, m) for m in range(1, 13)]
    if period_type == PeriodType.QUARTER:
        return [PeriodDescriptor.for_quarter(year, q) for q in range(1, 5)]
    return [PeriodDescriptor.for_year(year)]


def covering_periods(day: date) -> List[PeriodDescriptor]:
    """Month, quarter and year that contain a date."""
    return [
        PeriodDescriptor.for_month(day.year, day.month),
        PeriodDescriptor.for_quarter(day.year, (day.month - 1) // 3 + 1),
        PeriodDescriptor.for_year(day.year),
    ]
