"""UK registration plate periods and first-registration date estimates."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date

PLATE_PERIOD = "plate_period"
DEFAULT_FALLBACK = "default_fallback"
NO_OVERLAP_FALLBACK = "no_overlap_fallback"

# letter -> (year, start month) of the period; all last six months except "A"
_LETTER_PERIODS: dict[str, tuple[int, int]] = {
    "Y": (2001, 3),
    "X": (2000, 9),
    "W": (2000, 3),
    "V": (1999, 9),
    "T": (1999, 3),
    "S": (1998, 9),
    "R": (1998, 3),
    "P": (1997, 9),
    "N": (1996, 9),
    "M": (1995, 9),
    "L": (1994, 9),
    "K": (1993, 9),
    "J": (1992, 9),
    "H": (1991, 9),
    "G": (1990, 9),
    "F": (1989, 9),
    "E": (1988, 9),
    "D": (1987, 9),
    "C": (1986, 9),
    "B": (1985, 9),
}


@dataclass(frozen=True)
class PlatePeriod:
    identifier: str
    start: date
    end: date

    def overlaps(self, start: date, end: date) -> bool:
        return max(self.start, start) <= min(self.end, end)


@dataclass(frozen=True)
class RegistrationEstimate:
    first_registration_date: date
    method: str
    period: PlatePeriod | None = None
    notes: str = ""


def _end_of_february(year: int) -> date:
    return date(year, 2, calendar.monthrange(year, 2)[1])


def _half_year_period(identifier: str, year: int, start_month: int) -> PlatePeriod:
    if start_month == 3:
        return PlatePeriod(identifier, date(year, 3, 1), date(year, 8, 31))
    return PlatePeriod(identifier, date(year, 9, 1), _end_of_february(year + 1))


def get_plate_period(identifier: str | None) -> PlatePeriod | None:
    """Registration period of a plate identifier such as ``"51"``, ``"15"`` or ``"Y"``."""

    if not identifier:
        return None
    normalized = str(identifier).strip().upper()
    if normalized.isdigit():
        number = int(normalized)
        if number == 51:
            return PlatePeriod("51", date(2001, 9, 1), _end_of_february(2002))
        if 2 <= number <= 24:
            return _half_year_period(f"{number:02d}", 2000 + number, 3)
        if 52 <= number <= 74:
            return _half_year_period(str(number), 2000 + number - 50, 9)
        return None
    if normalized == "A":
        return PlatePeriod("A", date(1984, 8, 1), date(1985, 7, 31))
    period = _LETTER_PERIODS.get(normalized)
    if period is None:
        return None
    year, month = period
    return _half_year_period(normalized, year, month)


def all_plate_periods() -> list[PlatePeriod]:
    identifiers = ["A", *reversed(list(_LETTER_PERIODS)), "51"]
    for number in range(2, 25):
        identifiers.append(f"{number:02d}")
        identifiers.append(str(number + 50))
    periods = [get_plate_period(identifier) for identifier in identifiers]
    return sorted((period for period in periods if period), key=lambda period: period.start)


def plates_for_year(year: int) -> list[str]:
    """Plate identifiers whose registration period overlaps the calendar year."""

    start, end = date(year, 1, 1), date(year, 12, 31)
    return [period.identifier for period in all_plate_periods() if period.overlaps(start, end)]


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_registration_date(
    plate: str | None,
    introduced: date,
    discontinued: date | None = None,
    *,
    today: date | None = None,
) -> RegistrationEstimate:
    """Estimate a first registration date from a plate and a production window."""

    production_end = discontinued or today or date.today()
    fallback = _add_months(introduced, 6)
    if not plate:
        return RegistrationEstimate(fallback, DEFAULT_FALLBACK, notes="No plate identifier provided")

    period = get_plate_period(plate)
    if period is None:
        return RegistrationEstimate(fallback, DEFAULT_FALLBACK, notes=f"Unknown plate identifier: {plate}")

    if not period.overlaps(introduced, production_end):
        return RegistrationEstimate(
            fallback,
            NO_OVERLAP_FALLBACK,
            period=period,
            notes=(
                f"Plate period {period.start.isoformat()} - {period.end.isoformat()} is outside "
                f"production {introduced.isoformat()} - {production_end.isoformat()}"
            ),
        )
    return RegistrationEstimate(period.start, PLATE_PERIOD, period=period)
