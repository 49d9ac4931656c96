"""Parse scraped field text into typed values."""

import re
from decimal import Decimal, InvalidOperation

PRICE_PATTERN = re.compile(r"\$?\s*(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?")
HOURS_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hrs?|hours?)?", re.IGNORECASE)
DAYS_PATTERN = re.compile(r"(\d+)\s*(day|days|week|weeks)", re.IGNORECASE)


def parse_price(text: str | None) -> Decimal | None:
    """Parse '$1,234.50' style text. Zero and unparseable values yield None."""
    if not text:
        return None
    match = PRICE_PATTERN.search(text)
    if not match:
        return None
    try:
        value = Decimal(match.group(1).replace(",", "") + (match.group(2) or ""))
    except InvalidOperation:
        return None
    return value if value > 0 else None


def parse_hours(text: str | None) -> Decimal | None:
    """Parse labor time such as '1.5 hrs' or '2.0'."""
    if not text:
        return None
    match = HOURS_PATTERN.search(text)
    if not match:
        return None
    value = Decimal(match.group(1))
    return value if value > 0 else None


def parse_days(text: str | None) -> int | None:
    """Parse a lead time such as '3 days' or '2 weeks' into days."""
    if not text:
        return None
    match = DAYS_PATTERN.search(text)
    if not match:
        return None
    count = int(match.group(1))
    return count * 7 if match.group(2).lower().startswith("week") else count
