"""Sourcing coordinator: cache, adapter fan-out, call escalation, selection."""

import asyncio
import logging
from dataclasses import replace
from datetime import timedelta
from enum import Enum
from typing import Any

from quotesourcing.adapters import (
    SITE_PROFILES,
    RemoteProcedureAdapter,
    ScrapedAdapter,
    SourceAdapter,
    StaticDatabaseAdapter,
)
from quotesourcing.cache import QuoteCache
from quotesourcing.calls import CallOrchestrator
from quotesourcing.config import EngineConfig
from quotesourcing.directory import VendorDirectory
from quotesourcing.errors import (
    AdapterFailure,
    CallError,
    EscalationStatus,
    SelectionError,
    SourcingFailure,
    SourcingFailureReason,
)
from quotesourcing.labor_catalog import LaborCatalog
from quotesourcing.logger import SourcingLogger
from quotesourcing.models import (
    BatchResult,
    CacheStats,
    CallState,
    LookupRequest,
    Quote,
    Recommendation,
    SelectionContext,
    lookup_key,
)
from quotesourcing.selection import SelectionEngine
from quotesourcing.settings import StaticShopSettings
from quotesourcing.soap import SoapClient
from quotesourcing.voice import VapiClient, VoiceCallClient

logger = logging.getLogger(__name__)


class SourcingPolicy(str, Enum):
    THOROUGH = "thorough"  # wait for every adapter, compare all successes
    FAST = "fast"  # return with the first success


class SourcingCoordinator:
    """Answers lookups from the cache, the source adapters, or vendor calls."""

    def __init__(
        self,
        adapters: list[SourceAdapter],
        cache: QuoteCache,
        selector: SelectionEngine,
        call_orchestrator: CallOrchestrator | None = None,
        directory: VendorDirectory | None = None,
        policy: SourcingPolicy = SourcingPolicy.THOROUGH,
        escalate_to_calls: bool = True,
        max_calls: int = 3,
        wait_for_calls: bool = False,
        audit: SourcingLogger | None = None,
    ):
        """Initialize coordinator.

        Args:
            adapters: Source adapters dispatched concurrently on a cache miss.
            cache: Shared quote cache.
            selector: Selection engine for every final candidate set.
            call_orchestrator: Vendor calling, used when every adapter fails.
            directory: Vendors eligible for calls. Defaults to the orchestrator's.
            policy: THOROUGH waits for all adapters; FAST takes the first success.
            escalate_to_calls: Whether exhaustion triggers vendor calls.
            max_calls: Number of top-priority callable vendors to call.
            wait_for_calls: Await call transcripts instead of returning a
                pending-callback failure immediately.
            audit: Optional audit trail.
        """
        self.adapters = adapters
        self.cache = cache
        self.selector = selector
        self.calls = call_orchestrator
        self.directory = directory or (call_orchestrator.directory if call_orchestrator else None)
        self.policy = SourcingPolicy(policy)
        self.escalate_to_calls = escalate_to_calls
        self.max_calls = max_calls
        self.wait_for_calls = wait_for_calls
        self.audit = audit
        self._background: set[asyncio.Task[Any]] = set()
        self._awaiting_calls: set[str] = set()

    async def lookup(self, request: LookupRequest) -> Recommendation | SourcingFailure:
        """Source, select and cache a quote for one vehicle + item.

        Args:
            request: Vehicle, item and selection context.

        Returns:
            Recommendation, or SourcingFailure when cache, adapters and call
            escalation all came up empty.
        """
        context = self._context_for(request)
        key = lookup_key(request.vehicle, request.item)

        entry = self.cache.get(key)
        if entry is not None:
            logger.info(f"Cache hit for {request.item.description} ({request.vehicle}), hits={entry.hit_count}")
            recommendation = replace(self._select([entry.quote], context), from_cache=True)
            self._audit_recommendation(request, recommendation)
            return recommendation

        quotes, failures = await self._fan_out(request, context)
        if quotes:
            recommendation = self._select(quotes, context)
            self.cache.put(key, recommendation.best.quote)
            self._audit_recommendation(request, recommendation)
            return recommendation

        logger.warning(f"All {len(self.adapters)} sources failed for {request.item.description} ({request.vehicle})")
        return await self._escalate(request, context, key, failures)

    def _context_for(self, request: LookupRequest) -> SelectionContext:
        if request.context.vehicle_age_years is None:
            return replace(request.context, vehicle_age_years=request.vehicle.age_years())
        return request.context

    def _select(self, quotes: list[Quote], context: SelectionContext) -> Recommendation:
        try:
            return self.selector.select(quotes, context)
        except SelectionError:
            logger.exception("Selection invoked without candidates")
            raise

    async def _fan_out(
        self,
        request: LookupRequest,
        context: SelectionContext,
    ) -> tuple[list[Quote], list[AdapterFailure]]:
        """Dispatch every adapter concurrently and collect outcomes."""
        if not self.adapters:
            return [], []

        tasks = [
            asyncio.create_task(adapter.attempt(request.vehicle, request.item, context), name=adapter.NAME)
            for adapter in self.adapters
        ]
        quotes: list[Quote] = []
        failures: list[AdapterFailure] = []

        if self.policy == SourcingPolicy.THOROUGH:
            for outcome in await asyncio.gather(*tasks):
                (quotes if isinstance(outcome, Quote) else failures).append(outcome)
            return quotes, failures

        pending: set[asyncio.Task[Any]] = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                outcome = task.result()
                (quotes if isinstance(outcome, Quote) else failures).append(outcome)
            if quotes:
                break

        for task in pending:
            self._track(task, self._discard_straggler)
        return quotes, failures

    def _track(self, task: asyncio.Task[Any], callback: Any = None) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        if callback is not None:
            task.add_done_callback(callback)

    @staticmethod
    def _discard_straggler(task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        outcome = task.result()
        status = "quote" if isinstance(outcome, Quote) else outcome.reason.value
        logger.info(f"Discarding late result from {task.get_name()}: {status}")

    async def _escalate(
        self,
        request: LookupRequest,
        context: SelectionContext,
        key: str,
        failures: list[AdapterFailure],
    ) -> Recommendation | SourcingFailure:
        def exhausted(status: EscalationStatus, call_ids: tuple[str, ...] = ()) -> SourcingFailure:
            failure = SourcingFailure(SourcingFailureReason.ALL_SOURCES_EXHAUSTED, status, tuple(failures), call_ids)
            if self.audit:
                self.audit.log_failure(request, failure)
            return failure

        if not self.escalate_to_calls or self.calls is None or self.directory is None:
            return exhausted(EscalationStatus.DISABLED)

        vendor_ids = [v.vendor_id for v in self.directory.top(self.max_calls)]
        if not vendor_ids:
            return exhausted(EscalationStatus.NO_CALLABLE_VENDORS)

        if self.wait_for_calls:
            batch = await self.calls.call_multiple_stores(vendor_ids, request.item, request.vehicle)
            call_ids = tuple(s.call_id for s in batch.successful_calls) + tuple(
                f.call_id for f in batch.failed_calls if f.call_id
            )
            if batch.quotes():
                recommendation = self.recommend_from_calls(batch, context)
                self.cache.put(key, recommendation.best.quote)
                self._audit_recommendation(request, recommendation)
                return recommendation
            return exhausted(EscalationStatus.CALLS_FAILED, call_ids)

        outcomes = await asyncio.gather(
            *(self.calls.call_store(v, request.item, request.vehicle) for v in vendor_ids),
            return_exceptions=True,
        )
        call_ids = tuple(o.call_id for o in outcomes if not isinstance(o, BaseException))
        for vendor_id, outcome in zip(vendor_ids, outcomes):
            if isinstance(outcome, CallError):
                logger.warning(f"Call to {vendor_id} not started: {outcome}")
            elif isinstance(outcome, BaseException):
                logger.error(f"Call to {vendor_id} not started: {type(outcome).__name__}: {outcome}")

        if not call_ids:
            return exhausted(EscalationStatus.CALLS_FAILED)

        self._awaiting_calls.update(call_ids)
        self._track(asyncio.create_task(self._collect_callbacks(request, context, key, call_ids)))
        logger.info(f"Pending vendor callback on {len(call_ids)} calls for {request.item.description}")
        return exhausted(EscalationStatus.PENDING_VENDOR_CALLBACK, call_ids)

    async def _collect_callbacks(
        self,
        request: LookupRequest,
        context: SelectionContext,
        key: str,
        call_ids: tuple[str, ...],
    ) -> Recommendation | None:
        """Wait for background calls and cache the best transcript quote."""
        assert self.calls is not None
        try:
            sessions = await asyncio.gather(*(self.calls.wait_for_call(c) for c in call_ids))
        except asyncio.CancelledError:
            await self.calls.cancel_calls(call_ids)
            raise
        finally:
            self._awaiting_calls.difference_update(call_ids)
        batch = BatchResult(successful_calls=[s for s in sessions if s.state == CallState.COMPLETED])
        if not batch.quotes():
            logger.warning(f"No vendor call produced a quote for {request.item.description}; needs manual follow-up")
            return None
        recommendation = self.recommend_from_calls(batch, context)
        self.cache.put(key, recommendation.best.quote)
        self._audit_recommendation(request, recommendation)
        return recommendation

    def recommend_from_calls(self, batch: BatchResult, context: SelectionContext | None = None) -> Recommendation:
        """Select over the quotes of completed calls.

        Raises:
            SelectionError: If no call in the batch completed.
        """
        return self._select(batch.quotes(), context or SelectionContext())

    def _audit_recommendation(self, request: LookupRequest, recommendation: Recommendation) -> None:
        if self.audit:
            self.audit.log_recommendation(request, recommendation, self.selector.source_name(recommendation.best.quote))

    async def drain(self) -> None:
        """Wait for background work (stragglers, pending callbacks) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> int:
        removed = self.cache.clear()
        logger.info(f"Cleared {removed} cache entries")
        return removed

    async def aclose(self) -> None:
        """Cancel background work, hang up calls still awaited, close adapters."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        if self.calls is not None and self._awaiting_calls:
            # callback tasks cancelled before their first step never ran their cleanup
            await self.calls.cancel_calls(sorted(self._awaiting_calls))
            self._awaiting_calls.clear()
        for adapter in self.adapters:
            await adapter.aclose()


def build_adapters(config: EngineConfig, settings: StaticShopSettings) -> list[SourceAdapter]:
    """Instantiate every adapter the configuration enables."""
    adapters: list[SourceAdapter] = []

    if config.scraping.enabled:
        for section, profile in SITE_PROFILES.items():
            credentials = getattr(config.scraping, section)
            if not (credentials.username and credentials.password):
                logger.info(f"Skipping {profile.name}: no credentials configured")
                continue
            adapters.append(
                ScrapedAdapter(
                    profile,
                    credentials,
                    step_timeout_seconds=config.scraping.step_timeout_seconds,
                    timeout_seconds=config.scraping.attempt_timeout_seconds,
                    headless=config.scraping.headless,
                )
            )

    if config.remote.enabled and config.remote.account and config.remote.password:
        adapters.append(RemoteProcedureAdapter(SoapClient(config.remote)))
    elif config.remote.enabled:
        logger.info("Skipping nexpart-api: no account configured")

    adapters.append(StaticDatabaseAdapter(LaborCatalog(), settings))
    return adapters


def build_coordinator(
    config: EngineConfig,
    voice_client: VoiceCallClient | None = None,
    adapters: list[SourceAdapter] | None = None,
) -> SourcingCoordinator:
    """Wire a coordinator and its collaborators from configuration.

    Args:
        config: Validated engine configuration.
        voice_client: Voice-call collaborator. Defaults to Vapi.
        adapters: Override the configured adapters.

    Returns:
        Ready-to-use SourcingCoordinator.
    """
    directory = VendorDirectory.from_config(config.vendors)
    settings = StaticShopSettings.from_config(config.shop)
    audit = SourcingLogger(config.logs_dir)
    orchestrator = CallOrchestrator(
        directory,
        voice_client or VapiClient(config.calls),
        timeout_seconds=config.calls.timeout_seconds,
        shop_name=config.calls.shop_name,
        advisor_name=config.calls.advisor_name,
        on_archive=audit.log_call,
    )
    return SourcingCoordinator(
        adapters=build_adapters(config, settings) if adapters is None else adapters,
        cache=QuoteCache(ttl=timedelta(hours=config.cache.ttl_hours)),
        selector=SelectionEngine(config.weights, config.tables, directory),
        call_orchestrator=orchestrator,
        directory=directory,
        policy=SourcingPolicy(config.coordinator.policy),
        escalate_to_calls=config.coordinator.escalate_to_calls,
        max_calls=config.coordinator.max_calls,
        wait_for_calls=config.coordinator.wait_for_calls,
        audit=audit,
    )
