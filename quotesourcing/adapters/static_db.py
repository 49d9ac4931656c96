"""Adapter over the shop's flat-rate labor catalog."""

import logging
from decimal import Decimal

from quotesourcing.adapters.base import SourceAdapter
from quotesourcing.errors import AdapterError, AdapterFailureReason
from quotesourcing.labor_catalog import LaborCatalog, LaborOperation
from quotesourcing.models import ItemKind, ItemRequest, Quote, SelectionContext, SourceKind, VehicleDescriptor
from quotesourcing.settings import ShopSettings

logger = logging.getLogger(__name__)


class StaticDatabaseAdapter(SourceAdapter):
    """Looks up labor operations in the seeded catalog."""

    NAME = "labor-catalog"
    SOURCE_KIND = SourceKind.STATIC_DATABASE

    def __init__(self, catalog: LaborCatalog, settings: ShopSettings | None = None):
        super().__init__(timeout_seconds=None)
        self.catalog = catalog
        self.settings = settings

    def best_match(self, description: str) -> LaborOperation | None:
        """Pick the catalog operation closest to a free-text description.

        Matches on the operation name rank ahead of description/category
        matches; catalog order breaks ties.
        """
        matches = self.catalog.search(description)
        if not matches:
            return None
        term = description.strip().lower()
        return sorted(matches, key=lambda op: (op.name.lower() != term, term not in op.name.lower()))[0]

    async def _fetch(
        self,
        vehicle: VehicleDescriptor,
        item: ItemRequest,
        context: SelectionContext | None,
    ) -> Quote:
        if item.kind != ItemKind.LABOR_OPERATION:
            raise AdapterError(AdapterFailureReason.NOT_FOUND, "Labor catalog holds labor operations only")

        operation = self.best_match(item.description)
        if operation is None:
            raise AdapterError(AdapterFailureReason.NOT_FOUND, f"No catalog operation matches '{item.description}'")

        multiplier = self.settings.labor_multiplier if self.settings else Decimal("1.0")
        hours = self.catalog.labor_hours(operation.id, multiplier)
        logger.debug(f"Matched '{item.description}' to {operation.id} ({hours} hrs)")
        return Quote(
            source_kind=self.SOURCE_KIND,
            vendor_id=None,
            labor_hours=hours,
            confidence=1.0,
            raw_evidence=f"{operation.name} [{operation.category}, {operation.difficulty}]: {hours} hrs",
        )
