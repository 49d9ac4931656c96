"""Tests for the sourcing coordinator."""

import asyncio
from decimal import Decimal
from pathlib import Path

import pytest

from quotesourcing.adapters import SourceAdapter, StaticDatabaseAdapter
from quotesourcing.cache import QuoteCache
from quotesourcing.calls import CallOrchestrator
from quotesourcing.config import load_config
from quotesourcing.coordinator import SourcingCoordinator, SourcingPolicy, build_coordinator
from quotesourcing.directory import VendorDirectory
from quotesourcing.errors import (
    AdapterError,
    AdapterFailureReason,
    CallFailureReason,
    EscalationStatus,
    SelectionError,
    SourcingFailure,
    SourcingFailureReason,
)
from quotesourcing.logger import SourcingLogger
from quotesourcing.models import (
    Availability,
    BatchResult,
    CallState,
    ItemRequest,
    LookupRequest,
    Quote,
    Recommendation,
    SourceKind,
    VehicleDescriptor,
    Vendor,
)
from quotesourcing.selection import SelectionEngine

from tests.test_calls import AUTOZONE, OREILLY, ScriptedVoiceClient, make_orchestrator


class FakeAdapter(SourceAdapter):
    """Adapter returning a canned quote or failure after an optional delay."""

    def __init__(self, name: str, result: Quote | AdapterFailureReason, delay: float = 0.0):
        super().__init__(timeout_seconds=None)
        self.NAME = name
        self.result = result
        self.delay = delay
        self.calls = 0
        self.closed = False

    async def _fetch(self, vehicle, item, context) -> Quote:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.result, Quote):
            return self.result
        raise AdapterError(self.result, f"{self.NAME} gave up")

    async def aclose(self) -> None:
        self.closed = True


def failing(name: str, reason: AdapterFailureReason = AdapterFailureReason.NOT_FOUND) -> FakeAdapter:
    return FakeAdapter(name, reason)


@pytest.fixture
def request_(vehicle: VehicleDescriptor, part_request: ItemRequest) -> LookupRequest:
    return LookupRequest(vehicle=vehicle, item=part_request)


def make_coordinator(
    adapters: list[SourceAdapter],
    orchestrator: CallOrchestrator | None = None,
    **kwargs,
) -> SourcingCoordinator:
    directory = orchestrator.directory if orchestrator else VendorDirectory()
    return SourcingCoordinator(
        adapters=adapters,
        cache=QuoteCache(),
        selector=SelectionEngine(directory=directory),
        call_orchestrator=orchestrator,
        **kwargs,
    )


class TestLookup:
    """Tests for cache and adapter fan-out."""

    @pytest.mark.asyncio
    async def test_thorough_selects_and_caches(self, request_: LookupRequest, make_quote) -> None:
        cheap = FakeAdapter("site-a", make_quote(price=40, vendor_id="oreilly-1"))
        pricey = FakeAdapter("site-b", make_quote(price=400, vendor_id="napa-1"))
        coordinator = make_coordinator([cheap, pricey, failing("site-c")])

        result = await coordinator.lookup(request_)

        assert isinstance(result, Recommendation)
        assert result.best.quote.price == Decimal("40")
        assert result.from_cache is False
        assert len(result.alternatives) == 1
        assert coordinator.cache_stats().total_entries == 1

    @pytest.mark.asyncio
    async def test_cache_hit_skips_adapters(self, request_: LookupRequest, make_quote) -> None:
        """Test a second lookup within TTL is served from cache."""
        adapter = FakeAdapter("site-a", make_quote(price=54.35))
        coordinator = make_coordinator([adapter])

        await coordinator.lookup(request_)
        second = await coordinator.lookup(request_)

        assert isinstance(second, Recommendation)
        assert second.from_cache is True
        assert second.best.quote.price == Decimal("54.35")
        assert adapter.calls == 1

    @pytest.mark.asyncio
    async def test_cache_key_normalized(self, request_: LookupRequest, part_request: ItemRequest, make_quote) -> None:
        adapter = FakeAdapter("site-a", make_quote())
        coordinator = make_coordinator([adapter])
        await coordinator.lookup(request_)

        shouted = LookupRequest(VehicleDescriptor(2019, "HONDA", "civic"), part_request)
        result = await coordinator.lookup(shouted)

        assert isinstance(result, Recommendation)
        assert result.from_cache is True

    @pytest.mark.asyncio
    async def test_fast_returns_first_success(self, request_: LookupRequest, make_quote) -> None:
        """Test FAST does not wait for slower adapters."""
        quick = FakeAdapter("quick", make_quote(price=60))
        slow = FakeAdapter("slow", make_quote(price=10), delay=0.2)
        coordinator = make_coordinator([slow, quick], policy=SourcingPolicy.FAST)

        result = await coordinator.lookup(request_)

        assert isinstance(result, Recommendation)
        assert result.best.quote.price == Decimal("60")
        await coordinator.drain()
        assert slow.calls == 1

    @pytest.mark.asyncio
    async def test_fast_skips_failures(self, request_: LookupRequest, make_quote) -> None:
        coordinator = make_coordinator(
            [failing("broken"), FakeAdapter("late", make_quote(price=70), delay=0.01)],
            policy=SourcingPolicy.FAST,
        )
        result = await coordinator.lookup(request_)
        assert isinstance(result, Recommendation)
        assert result.best.quote.price == Decimal("70")

    @pytest.mark.asyncio
    async def test_thorough_waits_for_all(self, request_: LookupRequest, make_quote) -> None:
        slow = FakeAdapter("slow", make_quote(price=10, vendor_id="oreilly-1"), delay=0.05)
        quick = FakeAdapter("quick", make_quote(price=300, vendor_id="oreilly-1"))
        coordinator = make_coordinator([quick, slow])

        result = await coordinator.lookup(request_)

        assert isinstance(result, Recommendation)
        assert result.best.quote.price == Decimal("10")

    @pytest.mark.asyncio
    async def test_clear_cache(self, request_: LookupRequest, make_quote) -> None:
        coordinator = make_coordinator([FakeAdapter("site-a", make_quote())])
        await coordinator.lookup(request_)
        assert coordinator.clear_cache() == 1
        assert coordinator.cache_stats().total_entries == 0


class TestEscalation:
    """Tests for exhaustion and vendor-call escalation."""

    @pytest.mark.asyncio
    async def test_disabled_without_orchestrator(self, request_: LookupRequest) -> None:
        coordinator = make_coordinator([failing("a", AdapterFailureReason.TIMEOUT), failing("b")])

        result = await coordinator.lookup(request_)

        assert isinstance(result, SourcingFailure)
        assert result.reason == SourcingFailureReason.ALL_SOURCES_EXHAUSTED
        assert result.escalation == EscalationStatus.DISABLED
        assert [f.reason for f in result.adapter_failures] == [
            AdapterFailureReason.TIMEOUT,
            AdapterFailureReason.NOT_FOUND,
        ]
        assert result.message == "Needs manual follow-up"

    @pytest.mark.asyncio
    async def test_disabled_by_flag(self, request_: LookupRequest) -> None:
        coordinator = make_coordinator(
            [failing("a")], make_orchestrator(ScriptedVoiceClient()), escalate_to_calls=False
        )
        result = await coordinator.lookup(request_)
        assert isinstance(result, SourcingFailure)
        assert result.escalation == EscalationStatus.DISABLED

    @pytest.mark.asyncio
    async def test_no_callable_vendors(self, request_: LookupRequest) -> None:
        directory = VendorDirectory([Vendor("web-1", "Web Only", "", priority=1, is_callable=False)])
        orchestrator = CallOrchestrator(directory, ScriptedVoiceClient())
        coordinator = make_coordinator([failing("a")], orchestrator)

        result = await coordinator.lookup(request_)

        assert isinstance(result, SourcingFailure)
        assert result.escalation == EscalationStatus.NO_CALLABLE_VENDORS

    @pytest.mark.asyncio
    async def test_pending_vendor_callback(self, request_: LookupRequest) -> None:
        """Test exhaustion places calls, returns immediately, and caches the callback result."""
        voice = ScriptedVoiceClient()
        orchestrator = make_orchestrator(voice)
        adapters = [
            failing("scraper", AdapterFailureReason.TIMEOUT),
            failing("api", AdapterFailureReason.AUTHENTICATION_FAILED),
            failing("catalog"),
        ]
        coordinator = make_coordinator(adapters, orchestrator, max_calls=3)

        result = await coordinator.lookup(request_)

        assert isinstance(result, SourcingFailure)
        assert result.escalation == EscalationStatus.PENDING_VENDOR_CALLBACK
        assert result.message == "Pending vendor callback"
        assert result.call_ids == ("call-1", "call-2", "call-3")
        assert [p[1] for p in voice.placed][:2] == [OREILLY, AUTOZONE]

        orchestrator.on_call_started("call-2")
        orchestrator.on_transcript_received("call-2", "We have it in stock, $49.99.")
        orchestrator.on_call_failed("call-1", CallFailureReason.CONNECT_FAILED, "no answer")
        orchestrator.on_call_failed("call-3", CallFailureReason.TIMEOUT, "no transcript")
        await coordinator.drain()

        cached = await coordinator.lookup(request_)
        assert isinstance(cached, Recommendation)
        assert cached.from_cache is True
        assert cached.best.quote.source_kind == SourceKind.VOICE_CALL
        assert cached.best.quote.price == Decimal("49.99")
        assert all(a.calls == 1 for a in adapters)

    @pytest.mark.asyncio
    async def test_pending_callback_without_quotes(self, request_: LookupRequest) -> None:
        orchestrator = make_orchestrator(ScriptedVoiceClient())
        coordinator = make_coordinator([failing("a")], orchestrator, max_calls=1)

        result = await coordinator.lookup(request_)
        assert isinstance(result, SourcingFailure)
        orchestrator.on_call_failed(result.call_ids[0])
        await coordinator.drain()

        assert coordinator.cache_stats().total_entries == 0

    @pytest.mark.asyncio
    async def test_all_calls_refused(self, request_: LookupRequest) -> None:
        orchestrator = make_orchestrator(ScriptedVoiceClient(refuse={OREILLY, AUTOZONE}))
        coordinator = make_coordinator([failing("a")], orchestrator, max_calls=2)

        result = await coordinator.lookup(request_)

        assert isinstance(result, SourcingFailure)
        assert result.escalation == EscalationStatus.CALLS_FAILED
        assert result.call_ids == ()

    @pytest.mark.asyncio
    async def test_wait_for_calls_recommends(self, request_: LookupRequest) -> None:
        voice = ScriptedVoiceClient(
            transcripts={OREILLY: "In stock, $58.00.", AUTOZONE: "We can special order it in 5 days for $39.00."}
        )
        orchestrator = make_orchestrator(voice)
        coordinator = make_coordinator([failing("a")], orchestrator, max_calls=2, wait_for_calls=True)

        result = await coordinator.lookup(request_)

        assert isinstance(result, Recommendation)
        assert result.best.quote.source_kind == SourceKind.VOICE_CALL
        assert result.best.quote.vendor_id == "oreilly-1"
        assert result.best.quote.availability == Availability.IN_STOCK
        assert coordinator.cache_stats().total_entries == 1

    @pytest.mark.asyncio
    async def test_wait_for_calls_all_time_out(self, request_: LookupRequest) -> None:
        orchestrator = make_orchestrator(ScriptedVoiceClient(), timeout_seconds=0.02)
        coordinator = make_coordinator([failing("a")], orchestrator, max_calls=2, wait_for_calls=True)

        result = await coordinator.lookup(request_)

        assert isinstance(result, SourcingFailure)
        assert result.escalation == EscalationStatus.CALLS_FAILED
        assert set(result.call_ids) == {"call-1", "call-2"}

    def test_recommend_from_empty_batch(self) -> None:
        coordinator = make_coordinator([])
        with pytest.raises(SelectionError):
            coordinator.recommend_from_calls(BatchResult())


class TestWiring:
    """Tests for build_coordinator and lifecycle."""

    def test_build_from_config(self, sample_config: Path, tmp_path: Path) -> None:
        config = load_config(sample_config, environ={})

        coordinator = build_coordinator(config, voice_client=ScriptedVoiceClient())

        assert [type(a) for a in coordinator.adapters] == [StaticDatabaseAdapter]
        assert coordinator.policy == SourcingPolicy.THOROUGH
        assert coordinator.max_calls == 2
        assert coordinator.cache.ttl.total_seconds() == 12 * 3600
        assert coordinator.calls is not None
        assert coordinator.calls.shop_name == "Test Garage"
        assert coordinator.audit is not None
        assert coordinator.audit.logs_dir == tmp_path / "logs"

    @pytest.mark.asyncio
    async def test_audit_trail(self, request_: LookupRequest, make_quote, tmp_path: Path) -> None:
        audit = SourcingLogger(tmp_path / "logs")
        coordinator = make_coordinator([FakeAdapter("site-a", make_quote())], audit=audit)

        await coordinator.lookup(request_)
        await coordinator.lookup(request_)

        statuses = [e.status for e in audit.daily_results]
        assert statuses == ["scraped", "cached"]
        assert audit.daily_results[0].source == "O'Reilly Auto Parts"

    @pytest.mark.asyncio
    async def test_aclose_closes_adapters(self) -> None:
        adapter = failing("a")
        coordinator = make_coordinator([adapter])
        await coordinator.aclose()
        assert adapter.closed is True

    @pytest.mark.asyncio
    async def test_aclose_hangs_up_pending_callbacks(self, request_: LookupRequest) -> None:
        """Test closing before the callback task runs still cancels its calls."""
        voice = ScriptedVoiceClient()
        orchestrator = make_orchestrator(voice)
        coordinator = make_coordinator([failing("a")], orchestrator, max_calls=2)

        result = await coordinator.lookup(request_)
        await coordinator.aclose()

        assert isinstance(result, SourcingFailure)
        assert orchestrator.calls_in_progress() == []
        assert {s.state for s in orchestrator.call_history()} == {CallState.CANCELLED}
        assert sorted(voice.ended) == ["vapi-call-1", "vapi-call-2"]

    @pytest.mark.asyncio
    async def test_aclose_cancels_waiting_callbacks(self, request_: LookupRequest) -> None:
        """Test closing while the callback task waits on calls hangs them up."""
        voice = ScriptedVoiceClient()
        orchestrator = make_orchestrator(voice)
        coordinator = make_coordinator([failing("a")], orchestrator, max_calls=2)

        await coordinator.lookup(request_)
        await asyncio.sleep(0)
        orchestrator.on_call_started("call-1")
        await coordinator.aclose()

        states = {s.call_id: s.state for s in orchestrator.call_history()}
        assert states == {"call-1": CallState.CANCELLED, "call-2": CallState.CANCELLED}
        assert sorted(voice.ended) == ["vapi-call-1", "vapi-call-2"]
