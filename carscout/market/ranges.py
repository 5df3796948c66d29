"""
Range planning helpers for depreciation-style queries.

Mileage windows are centred on an expected odometer reading of 15,000 km per
year of age. Year windows sample the market at two-year steps around a target
production year.
"""

from dataclasses import dataclass
from datetime import date

from carscout.market.schemas import RangeWindow

KM_PER_YEAR = 15_000
MAX_AGE_YEARS = 10
YEAR_OFFSETS = (0, 2, 4, 6)


@dataclass(frozen=True)
class KmRange:
    """Mileage window in km."""

    km_from: int
    km_to: int


def _current_year(current_year: int | None) -> int:
    return current_year if current_year is not None else date.today().year


def generate_km_ranges(year: int, current_year: int | None = None) -> list[KmRange]:
    """Low, medium and high mileage windows for a production year.

    Args:
        year: Production year.
        current_year: Reference year (default: this year).

    Returns:
        Three windows: low, medium, high.
    """
    age = _current_year(current_year) - year
    base_km = age * KM_PER_YEAR
    return [
        KmRange(max(0, base_km - 100_000), base_km + 10_000),
        KmRange(max(0, base_km - 80_000), base_km + 22_000),
        KmRange(max(0, base_km - 60_000), base_km + 35_000),
    ]


def plan_year_windows(
    target_year: int | None = None,
    current_year: int | None = None,
) -> list[RangeWindow]:
    """Year windows around a target year, each with the medium mileage window.

    Windows start at target+2, target, target-2 and target-4 and span two
    production years. Start years in the future or more than ten years old
    are skipped.

    Args:
        target_year: Production year of interest (default: two years ago).
        current_year: Reference year (default: this year).

    Returns:
        Windows in descending start-year order.
    """
    current = _current_year(current_year)
    target = target_year if target_year is not None else current - 2

    windows: list[RangeWindow] = []
    for offset in YEAR_OFFSETS:
        year = target - offset + 2
        if year < current - MAX_AGE_YEARS or year > current:
            continue
        medium = generate_km_ranges(year, current)[1]
        windows.append(
            RangeWindow(
                year_from=year,
                year_to=year + 1,
                km_from=medium.km_from,
                km_to=medium.km_to,
            )
        )
    return windows
