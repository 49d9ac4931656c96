"""Read-only directory of parts stores and labor vendors."""

import logging
import re
from collections.abc import Iterable
from typing import Any

from quotesourcing.errors import ConfigError
from quotesourcing.models import Vendor

logger = logging.getLogger(__name__)

GENERAL_SPECIALTY = "General auto parts"

DEFAULT_VENDORS: tuple[Vendor, ...] = (
    Vendor(
        vendor_id="oreilly-1",
        name="O'Reilly Auto Parts",
        phone_number="+15551234567",
        priority=1,
        specialty=GENERAL_SPECIALTY,
        location="Main Street",
        hours="7:30 AM - 9:00 PM",
        notes="Good stock, friendly staff, often has local discounts",
    ),
    Vendor(
        vendor_id="autozone-1",
        name="AutoZone",
        phone_number="+15559876543",
        priority=2,
        specialty="Quick delivery, wide selection",
        location="Downtown",
        hours="7:00 AM - 10:00 PM",
        notes="Can special order hard-to-find parts",
    ),
    Vendor(
        vendor_id="napa-1",
        name="NAPA Auto Parts",
        phone_number="+15551112222",
        priority=3,
        specialty="Professional quality parts",
        location="Industrial District",
        hours="7:00 AM - 8:00 PM",
        notes="Often has the best prices on OEM-equivalent parts",
    ),
    Vendor(
        vendor_id="advance-1",
        name="Advance Auto Parts",
        phone_number="+15553334444",
        priority=4,
        specialty="Good warranties",
        location="Highway 101",
        hours="8:00 AM - 9:00 PM",
        notes="Price matching available",
    ),
    Vendor(
        vendor_id="carquest-1",
        name="Carquest",
        phone_number="+15555556666",
        priority=5,
        specialty="Professional parts",
        location="West Side",
        hours="7:30 AM - 7:30 PM",
        notes="Good for older and specialty vehicles",
    ),
    Vendor(
        vendor_id="rockauto-1",
        name="RockAuto (Online)",
        phone_number="+18006578785",
        priority=6,
        specialty="Huge selection, low prices",
        is_callable=False,
        location="Online Only",
        hours="24/7 (online)",
        notes="Online only, 3-5 day shipping, no phone quotes available",
    ),
)


class VendorDirectory:
    """Vendor reference list used for calling and relationship scoring."""

    def __init__(self, vendors: Iterable[Vendor] | None = None):
        vendors = tuple(DEFAULT_VENDORS if vendors is None else vendors)
        self._vendors: dict[str, Vendor] = {v.vendor_id: v for v in vendors}

    @classmethod
    def from_config(cls, entries: list[dict[str, Any]]) -> "VendorDirectory":
        """Build a directory from config `vendors:` entries, or the defaults if empty.

        Raises:
            ConfigError: If an entry lacks an `id` or has a non-integer priority.
        """
        if not entries:
            return cls()
        vendors = []
        for position, entry in enumerate(entries, start=1):
            if not isinstance(entry, dict) or not entry.get("id"):
                raise ConfigError(f"Vendor entry {position} needs an 'id'")
            try:
                priority = int(entry.get("priority", 99))
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Vendor '{entry['id']}' has an invalid priority: {entry.get('priority')!r}") from e
            vendors.append(
                Vendor(
                    vendor_id=str(entry["id"]),
                    name=entry.get("name", entry["id"]),
                    phone_number=str(entry.get("phone", "")),
                    priority=priority,
                    specialty=entry.get("specialty"),
                    is_callable=bool(entry.get("callable", True)),
                    location=entry.get("location", ""),
                    hours=entry.get("hours", ""),
                    notes=entry.get("notes", ""),
                )
            )
        logger.info(f"Loaded {len(vendors)} vendors from config")
        return cls(vendors)

    def get(self, vendor_id: str | None) -> Vendor | None:
        if vendor_id is None:
            return None
        return self._vendors.get(vendor_id)

    def all(self) -> list[Vendor]:
        return sorted(self._vendors.values(), key=lambda v: v.priority)

    def callable_vendors(self) -> list[Vendor]:
        return [v for v in self.all() if v.is_callable]

    def top(self, count: int = 3) -> list[Vendor]:
        """Highest-priority callable vendors."""
        return self.callable_vendors()[:count]

    def by_specialty(self, specialty: str) -> list[Vendor]:
        term = specialty.lower()
        return [v for v in self.all() if v.specialty and term in v.specialty.lower()]

    def search(self, term: str) -> list[Vendor]:
        term = term.lower()
        return [
            v
            for v in self.all()
            if term in v.name.lower() or term in v.location.lower() or term in (v.specialty or "").lower()
        ]

    def formatted_phone(self, vendor_id: str) -> str | None:
        """Dialable phone number: digits and leading '+' only."""
        vendor = self.get(vendor_id)
        if vendor is None:
            return None
        return re.sub(r"[^0-9+]", "", vendor.phone_number)

    def __len__(self) -> int:
        return len(self._vendors)
