"""Adapter over the Nexpart structured pricing API."""

import logging

from quotesourcing.adapters.base import SourceAdapter
from quotesourcing.errors import AdapterError, AdapterFailureReason, RemoteFault
from quotesourcing.models import (
    Availability,
    ItemKind,
    ItemRequest,
    QualityTier,
    Quote,
    SelectionContext,
    SourceKind,
    VehicleDescriptor,
)
from quotesourcing.soap import PartPricing, SoapClient

logger = logging.getLogger(__name__)

AUTH_MARKERS = ("auth", "login", "credential", "password", "unauthorized", "access denied")


def _failure_reason(fault: RemoteFault) -> AdapterFailureReason:
    if fault.code == "Timeout":
        return AdapterFailureReason.TIMEOUT
    text = f"{fault.code or ''} {fault.message}".lower()
    if any(marker in text for marker in AUTH_MARKERS):
        return AdapterFailureReason.AUTHENTICATION_FAILED
    return AdapterFailureReason.TRANSPORT_ERROR


class RemoteProcedureAdapter(SourceAdapter):
    """Prices parts and labor through remote procedures on one reused session."""

    NAME = "nexpart-api"
    SOURCE_KIND = SourceKind.REMOTE_PROCEDURE

    def __init__(self, client: SoapClient, vendor_id: str = "nexpart", timeout_seconds: float | None = None):
        super().__init__(timeout_seconds=timeout_seconds)
        self.client = client
        self.vendor_id = vendor_id

    async def _fetch(
        self,
        vehicle: VehicleDescriptor,
        item: ItemRequest,
        context: SelectionContext | None,
    ) -> Quote:
        try:
            if item.kind == ItemKind.LABOR_OPERATION:
                return await self._labor_quote(vehicle, item)
            return await self._part_quote(vehicle, item)
        except RemoteFault as e:
            raise AdapterError(_failure_reason(e), f"{e.operation}: {e.message}") from e

    async def _part_quote(self, vehicle: VehicleDescriptor, item: ItemRequest) -> Quote:
        if item.part_number:
            pricing = await self.client.get_pricing(item.part_number)
        else:
            matches = await self.client.search_parts(item.description, vehicle.year, vehicle.make, vehicle.model)
            priced = [p for p in matches if p.price > 0]
            if not priced:
                raise AdapterError(AdapterFailureReason.NOT_FOUND, f"No parts match '{item.description}'")
            pricing = priced[0]

        if pricing.price <= 0:
            raise AdapterError(AdapterFailureReason.NOT_FOUND, f"No price for {pricing.part_number}")
        return self._pricing_to_quote(pricing)

    def _pricing_to_quote(self, pricing: PartPricing) -> Quote:
        availability = Availability.from_text(pricing.availability)
        if availability == Availability.UNKNOWN and pricing.quantity > 0:
            availability = Availability.IN_STOCK
        return Quote(
            source_kind=self.SOURCE_KIND,
            vendor_id=self.vendor_id,
            price=pricing.price,
            availability=availability,
            delivery_days=0 if availability == Availability.IN_STOCK else None,
            quality=QualityTier.from_text(pricing.manufacturer),
            confidence=1.0,
            raw_evidence=f"{pricing.part_number} {pricing.description} {pricing.manufacturer} ${pricing.price}".strip(),
        )

    async def _labor_quote(self, vehicle: VehicleDescriptor, item: ItemRequest) -> Quote:
        labor = await self.client.get_labor_time(vehicle.year, vehicle.make, vehicle.model, item.description)
        if labor.hours <= 0:
            raise AdapterError(AdapterFailureReason.NOT_FOUND, f"No labor time for '{item.description}'")
        return Quote(
            source_kind=self.SOURCE_KIND,
            vendor_id=self.vendor_id,
            labor_hours=labor.hours,
            confidence=1.0,
            raw_evidence=f"{labor.operation}: {labor.hours} hrs ({labor.skill_level})",
        )

    async def aclose(self) -> None:
        await self.client.aclose()
