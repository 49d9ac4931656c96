"""SOAP client for the Nexpart ORDERLINK / ACES pricing services.

Each service's WSDL is fetched once (`<endpoint>?wsdl`) and bound with zeep;
calls go out over one shared httpx session until aclose().
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from zeep import AsyncClient
from zeep.exceptions import Error as ZeepError
from zeep.exceptions import Fault, TransportError
from zeep.helpers import serialize_object
from zeep.proxy import AsyncServiceProxy
from zeep.transports import AsyncTransport
from zeep.wsdl.bindings.soap import Soap11Binding

from quotesourcing.config import RemoteConfig
from quotesourcing.errors import RemoteFault

logger = logging.getLogger(__name__)


@dataclass
class PartPricing:
    part_number: str
    price: Decimal
    availability: str
    quantity: int
    description: str = ""
    manufacturer: str = ""
    list_price: Decimal = Decimal("0")
    core_charge: Decimal = Decimal("0")


@dataclass
class VehicleInfo:
    vin: str
    year: int
    make: str
    model: str
    trim: str = ""
    engine: str = ""
    transmission: str = ""
    drive_type: str = ""
    fuel_type: str = ""


@dataclass
class LaborTime:
    operation: str
    hours: Decimal
    category: str = ""
    skill_level: str = "Standard"
    notes: str = ""


@dataclass
class OrderConfirmation:
    order_number: str
    part_number: str
    quantity: int
    status: str
    estimated_delivery: str = ""
    confirmation_number: str = ""


@dataclass
class OrderStatus:
    order_number: str
    status: str
    quantity: int = 0
    shipped: int = 0
    tracking_number: str = ""
    estimated_delivery: str = ""


def _as_list(value: Any) -> list[Any]:
    if value in (None, ""):
        return []
    return value if isinstance(value, list) else [value]


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value or "0"))
    except InvalidOperation:
        return Decimal("0")


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_remote_fault(operation: str, e: Exception) -> RemoteFault:
    """Translate zeep and httpx errors into the client's single fault type."""
    if isinstance(e, Fault):
        return RemoteFault(operation, e.message or "Unknown fault", e.code)
    if isinstance(e, httpx.TimeoutException):
        return RemoteFault(operation, f"Request timed out: {e}", code="Timeout")
    if isinstance(e, TransportError) and e.status_code not in (0, 200):
        return RemoteFault(operation, f"HTTP {e.status_code}")
    if isinstance(e, httpx.HTTPStatusError):
        return RemoteFault(operation, f"HTTP {e.response.status_code}")
    if isinstance(e, httpx.HTTPError):
        return RemoteFault(operation, f"Transport error: {e}")
    return RemoteFault(operation, f"Malformed response: {e}")


def _unwrap(operation: str, result: Any) -> dict[str, Any]:
    """Plain dict of the operation result, without the `<Op>Result` wrapper."""
    if result is None:
        return {}
    data = serialize_object(result, dict)
    if isinstance(data, dict) and list(data) == [f"{operation}Result"]:
        data = data[f"{operation}Result"]
    return data if isinstance(data, dict) else {}


class SoapClient:
    """Structured remote procedures over one long-lived HTTP session.

    The httpx clients behind the zeep transport are created on first use and
    reused for every call until aclose(). Service proxies are bound lazily,
    one per service.
    """

    def __init__(self, config: RemoteConfig, transport: httpx.MockTransport | None = None):
        """Initialize client.

        Args:
            config: Endpoint URLs, credentials and timeout.
            transport: Optional httpx transport serving both the WSDL fetch
                and the calls (tests use MockTransport).
        """
        self.config = config
        self._transport = transport
        self._http: AsyncTransport | None = None
        self._services: dict[str, AsyncServiceProxy] = {}
        self._lock = asyncio.Lock()
        self.sessions_opened = 0
        self._urls = {
            "orderlink": config.orderlink_url,
            "catlink": config.catlink_url,
            "aces": config.aces_url,
        }

    def _open_transport(self) -> AsyncTransport:
        logger.info("Opening Nexpart SOAP session")
        timeout = self.config.timeout_seconds
        self.sessions_opened += 1
        return AsyncTransport(
            client=httpx.AsyncClient(timeout=timeout, transport=self._transport),
            wsdl_client=httpx.Client(timeout=timeout, transport=self._transport),
        )

    def _bind(self, service: str, operation: str, url: str) -> AsyncServiceProxy:
        assert self._http is not None
        client = AsyncClient(f"{url}?wsdl", transport=self._http)
        for name, binding in client.wsdl.bindings.items():
            if isinstance(binding, Soap11Binding):
                logger.debug(f"Bound Nexpart {service} to {name}")
                return client.create_service(name, url)
        raise RemoteFault(operation, f"{service} WSDL has no SOAP 1.1 binding")

    async def _service(self, service: str, operation: str) -> AsyncServiceProxy:
        url = self._urls.get(service)
        if not url:
            raise RemoteFault(operation, f"Unknown Nexpart service: {service}")
        async with self._lock:
            if self._http is None:
                self._http = self._open_transport()
            proxy = self._services.get(service)
            if proxy is None:
                try:
                    # WSDL loading is synchronous in zeep
                    proxy = await asyncio.to_thread(self._bind, service, operation, url)
                except (ZeepError, httpx.HTTPError) as e:
                    raise _as_remote_fault(operation, e) from e
                self._services[service] = proxy
            return proxy

    async def aclose(self) -> None:
        async with self._lock:
            if self._http is not None:
                await self._http.client.aclose()
                self._http.wsdl_client.close()
                self._http = None
            self._services.clear()

    def _credentials(self, *, customer: bool = True, account_number: bool = False) -> dict[str, str]:
        creds = {"Account": self.config.account, "Password": self.config.password}
        if customer:
            creds["CustomerId"] = self.config.customer_id
        if account_number:
            creds["AccountNumber"] = self.config.account_number
        return creds

    async def call(self, service: str, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        """Invoke one remote procedure.

        Raises:
            RemoteFault: On transport errors, HTTP errors, malformed replies
                or SOAP faults.
        """
        proxy = await self._service(service, operation)
        arguments = {name: None if value is None else str(value) for name, value in params.items()}
        logger.debug(f"SOAP {service}.{operation}")
        try:
            result = await getattr(proxy, operation)(**arguments)
        except (ZeepError, httpx.HTTPError) as e:
            raise _as_remote_fault(operation, e) from e
        return _unwrap(operation, result)

    async def get_pricing(self, part_number: str) -> PartPricing:
        params = {**self._credentials(account_number=True), "PartNumber": part_number}
        result = await self.call("orderlink", "GetPricing", params)
        return PartPricing(
            part_number=result.get("PartNumber") or part_number,
            price=_decimal(result.get("Price")),
            availability=result.get("Availability") or "Unknown",
            quantity=_int(result.get("Quantity")),
            description=result.get("Description") or "",
            manufacturer=result.get("Manufacturer") or "",
            list_price=_decimal(result.get("ListPrice")),
            core_charge=_decimal(result.get("CoreCharge")),
        )

    async def search_parts(self, search_term: str, year: int | None = None, make: str = "", model: str = "") -> list[PartPricing]:
        params = {
            **self._credentials(account_number=True),
            "SearchTerm": search_term,
            "Make": make,
            "Model": model,
            "Year": year or "",
        }
        result = await self.call("orderlink", "SearchParts", params)
        parts = _as_list((result.get("Parts") or {}).get("Part") if isinstance(result.get("Parts"), dict) else None)
        return [
            PartPricing(
                part_number=p.get("PartNumber") or "",
                price=_decimal(p.get("Price")),
                availability=p.get("Availability") or "Unknown",
                quantity=_int(p.get("Quantity")),
                description=p.get("Description") or "",
                manufacturer=p.get("Manufacturer") or "",
            )
            for p in parts
        ]

    async def decode_vin(self, vin: str) -> VehicleInfo:
        result = await self.call("aces", "DecodeVIN", {**self._credentials(customer=False), "VIN": vin})
        return VehicleInfo(
            vin=result.get("VIN") or vin,
            year=_int(result.get("Year")),
            make=result.get("Make") or "",
            model=result.get("Model") or "",
            trim=result.get("Trim") or "",
            engine=result.get("Engine") or "",
            transmission=result.get("Transmission") or "",
            drive_type=result.get("DriveType") or "",
            fuel_type=result.get("FuelType") or "",
        )

    async def get_labor_time(self, year: int, make: str, model: str, operation: str) -> LaborTime:
        params = {**self._credentials(customer=False), "Year": year, "Make": make, "Model": model, "Operation": operation}
        result = await self.call("aces", "GetLaborTime", params)
        return LaborTime(
            operation=result.get("Operation") or operation,
            hours=_decimal(result.get("Hours")),
            category=result.get("Category") or "",
            skill_level=result.get("SkillLevel") or "Standard",
            notes=result.get("Notes") or "",
        )

    async def get_labor_operations(self, year: int, make: str, model: str) -> list[LaborTime]:
        params = {**self._credentials(customer=False), "Year": year, "Make": make, "Model": model}
        result = await self.call("aces", "GetLaborOperations", params)
        operations = result.get("Operations")
        entries = _as_list(operations.get("Operation") if isinstance(operations, dict) else None)
        return [
            LaborTime(
                operation=op.get("Operation") or "",
                hours=_decimal(op.get("Hours")),
                category=op.get("Category") or "",
                skill_level=op.get("SkillLevel") or "Standard",
            )
            for op in entries
        ]

    async def place_order(
        self,
        part_number: str,
        quantity: int,
        customer_po: str = "",
        notes: str = "",
    ) -> OrderConfirmation:
        params = {
            **self._credentials(account_number=True),
            "PartNumber": part_number,
            "Quantity": quantity,
            "CustomerPO": customer_po,
            "Notes": notes,
        }
        result = await self.call("orderlink", "PlaceOrder", params)
        return OrderConfirmation(
            order_number=result.get("OrderNumber") or "",
            part_number=result.get("PartNumber") or part_number,
            quantity=_int(result.get("Quantity")) or quantity,
            status=result.get("Status") or "Pending",
            estimated_delivery=result.get("EstimatedDelivery") or "",
            confirmation_number=result.get("ConfirmationNumber") or "",
        )

    async def check_order_status(self, order_number: str) -> OrderStatus:
        params = {**self._credentials(), "OrderNumber": order_number}
        result = await self.call("orderlink", "CheckOrderStatus", params)
        return OrderStatus(
            order_number=result.get("OrderNumber") or order_number,
            status=result.get("Status") or "Unknown",
            quantity=_int(result.get("Quantity")),
            shipped=_int(result.get("Shipped")),
            tracking_number=result.get("TrackingNumber") or "",
            estimated_delivery=result.get("EstimatedDelivery") or "",
        )

    async def test_connection(self) -> bool:
        """Bind the ORDERLINK service and report whether it is usable."""
        try:
            await self._service("orderlink", "TestConnection")
        except RemoteFault as e:
            logger.error(f"Failed to connect to Nexpart APIs: {e}")
            return False
        return True
