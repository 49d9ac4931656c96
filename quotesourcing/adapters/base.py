"""Base source adapter interface."""

import asyncio
import logging
from abc import ABC, abstractmethod

from quotesourcing.errors import AdapterError, AdapterFailure, AdapterFailureReason
from quotesourcing.models import ItemRequest, Quote, SelectionContext, SourceKind, VehicleDescriptor

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """Abstract base class for quote sources."""

    # Override these in subclasses
    NAME: str = ""
    SOURCE_KIND: SourceKind = SourceKind.SCRAPED

    def __init__(self, timeout_seconds: float | None = None):
        """Initialize adapter.

        Args:
            timeout_seconds: Ceiling for a whole attempt. None leaves timing
                to the underlying transport.
        """
        self.timeout_seconds = timeout_seconds

    async def attempt(
        self,
        vehicle: VehicleDescriptor,
        item: ItemRequest,
        context: SelectionContext | None = None,
    ) -> Quote | AdapterFailure:
        """Try to produce a quote.

        Business outcomes such as "not found" come back as AdapterFailure;
        this method does not raise for them.

        Args:
            vehicle: Vehicle being serviced.
            item: Part or labor operation to price.
            context: Selection context of the request, if any.

        Returns:
            Quote on success, AdapterFailure otherwise.
        """
        try:
            if self.timeout_seconds is None:
                quote = await self._fetch(vehicle, item, context)
            else:
                quote = await asyncio.wait_for(self._fetch(vehicle, item, context), self.timeout_seconds)
        except AdapterError as e:
            logger.info(f"{self.NAME}: {e.reason.value} for {item.description} ({vehicle}): {e.message}")
            return AdapterFailure(self.NAME, e.reason, e.message)
        except asyncio.TimeoutError:
            logger.warning(f"{self.NAME}: timed out after {self.timeout_seconds}s for {item.description}")
            return AdapterFailure(self.NAME, AdapterFailureReason.TIMEOUT, "attempt timed out")
        except Exception as e:
            logger.error(f"{self.NAME}: unexpected error for {item.description}: {type(e).__name__}: {e}")
            return AdapterFailure(self.NAME, AdapterFailureReason.TRANSPORT_ERROR, str(e))

        logger.info(f"{self.NAME}: quote for {item.description} ({vehicle})")
        return quote

    @abstractmethod
    async def _fetch(
        self,
        vehicle: VehicleDescriptor,
        item: ItemRequest,
        context: SelectionContext | None,
    ) -> Quote:
        """Produce a quote or raise AdapterError."""
        ...

    async def aclose(self) -> None:
        """Release long-lived resources. No-op by default."""
        return None
