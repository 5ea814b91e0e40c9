"""
Request validation for date-range playlist requests.

Runs before any filesystem work; a request that fails here never touches disk.
"""
import re
from datetime import date
from typing import Optional, Tuple

from .identity import DatasetIdentity

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
IDENTITY_PART_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class InvalidRequest(ValueError):
    """Malformed or out-of-bounds request parameters."""


def parse_day(value: Optional[str], name: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a date."""
    if not value:
        raise InvalidRequest(f'Parameter "{name}" is required')
    if not DATE_PATTERN.fullmatch(value):
        raise InvalidRequest("Invalid date format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidRequest(f"Invalid date: {value}")


def validate_identity(satellite: Optional[str], sector: Optional[str],
                      product: Optional[str], resolution: Optional[str]) -> DatasetIdentity:
    """
    Build a dataset identity from request parameters.

    Each part becomes a directory name component, so only letters, digits,
    '-' and '_' are accepted.
    """
    parts = {"satellite": satellite, "sector": sector, "product": product, "resolution": resolution}
    missing = [name for name, value in parts.items() if not value]
    if missing:
        raise InvalidRequest(f"Missing parameters: {', '.join(missing)}")
    for name, value in parts.items():
        if not IDENTITY_PART_PATTERN.fullmatch(value):
            raise InvalidRequest(f'Invalid value for "{name}": {value}')
    return DatasetIdentity(satellite, sector, product, resolution)


def validate_range(from_value: Optional[str], to_value: Optional[str],
                   max_days: Optional[int] = None) -> Tuple[date, date]:
    """
    Validate an inclusive date range.

    Args:
        from_value: Start date text (YYYY-MM-DD)
        to_value: End date text (YYYY-MM-DD)
        max_days: Largest allowed span in days, or None for no limit

    Returns:
        (from_date, to_date)

    Raises:
        InvalidRequest: on missing/malformed dates, start after end, or a span
            larger than max_days
    """
    from_date = parse_day(from_value, "from")
    to_date = parse_day(to_value, "to")

    if from_date > to_date:
        raise InvalidRequest("Start date must be before end date")

    if max_days is not None and (to_date - from_date).days > max_days:
        raise InvalidRequest(f"Date range too large. Maximum: {max_days} days")

    return from_date, to_date
