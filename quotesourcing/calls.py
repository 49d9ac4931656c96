"""Outbound vendor calls as a callback-driven state machine."""

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from quotesourcing.directory import VendorDirectory
from quotesourcing.errors import CallError, CallFailureReason, InvalidStateTransition
from quotesourcing.models import (
    BatchResult,
    CallScript,
    CallSession,
    CallState,
    FailedCall,
    ItemRequest,
    VehicleDescriptor,
    Vendor,
    utcnow,
)
from quotesourcing.transcripts import TranscriptThresholds, extract_quote
from quotesourcing.voice import VoiceCallClient

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT_SECONDS = 600.0
DEFAULT_HISTORY_LIMIT = 1000

INSTRUCTIONS_TEMPLATE = (
    "You are {advisor}, a professional automotive service advisor calling {vendor}. "
    "You need to get pricing and availability information for a part. "
    "Be polite, professional, and direct. Ask for the specific part information. "
    "Listen carefully and note the price, the availability (in stock, special order, delivery time), "
    "the brand or quality level, any warranty, and the store location if there are several. "
    "Thank the store for their help."
)
GREETING_TEMPLATE = "Hi, this is {advisor} calling from {shop}. I'm looking for a price quote."
REQUEST_TEMPLATE = (
    "I need pricing and availability for a {description}{part_number} for a {vehicle}. "
    "Could you tell me if you have that in stock and what the price would be?"
)
FOLLOW_UP_QUESTIONS = (
    "Do you have that part in stock right now?",
    "How long would it take to get it if it needs to be ordered?",
    "Is that the standard quality or OEM equivalent?",
    "Is there a warranty on this part?",
    "Do you offer any discounts for professional shops?",
)
CLOSING = "Thank you very much for your help. I appreciate the information. Have a great day!"

ACTIVE_STATES = (CallState.PENDING, CallState.IN_PROGRESS)


class CallOrchestrator:
    """Tracks outbound calls keyed by call id.

    A call is requested with call_store(); the voice platform later drives it
    through on_call_started(), on_transcript_received() or on_call_failed().
    Every session that reaches a terminal state is archived as an immutable
    snapshot in the call history. Live bookkeeping is dropped once a call is
    terminal; the history keeps the most recent `history_limit` snapshots.
    """

    def __init__(
        self,
        directory: VendorDirectory,
        voice_client: VoiceCallClient,
        timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        shop_name: str = "VHICL Pro Auto Service",
        advisor_name: str = "Alex",
        thresholds: TranscriptThresholds | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] | None = None,
        on_archive: Callable[[CallSession], Any] | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        """Initialize orchestrator.

        Args:
            directory: Vendor reference list (phone numbers, callability).
            voice_client: Voice-call platform collaborator.
            timeout_seconds: Ceiling for a call to deliver a transcript.
            shop_name: Shop named in the greeting.
            advisor_name: Name the voice assistant introduces itself with.
            thresholds: Confidence values for transcript extraction.
            clock: Time source.
            id_factory: Call id generator.
            on_archive: Called with every archived session snapshot.
            history_limit: Number of archived snapshots kept in memory.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.directory = directory
        self.voice_client = voice_client
        self.timeout_seconds = timeout_seconds
        self.shop_name = shop_name
        self.advisor_name = advisor_name
        self.thresholds = thresholds or TranscriptThresholds()
        self._clock = clock
        self._new_id = id_factory or (lambda: f"call-{uuid.uuid4().hex[:12]}")
        self._on_archive = on_archive
        self._sessions: dict[str, CallSession] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._history: deque[CallSession] = deque(maxlen=history_limit)

    def build_script(self, vendor: Vendor, request: ItemRequest, vehicle: VehicleDescriptor) -> CallScript:
        part_number = f", part number {request.part_number}" if request.part_number else ""
        return CallScript(
            instructions=INSTRUCTIONS_TEMPLATE.format(advisor=self.advisor_name.upper(), vendor=vendor.name),
            greeting=GREETING_TEMPLATE.format(advisor=self.advisor_name, shop=self.shop_name),
            vehicle_identification=str(vehicle),
            item_request=REQUEST_TEMPLATE.format(
                description=request.description,
                part_number=part_number,
                vehicle=vehicle,
            ),
            follow_up_questions=FOLLOW_UP_QUESTIONS,
            closing=CLOSING,
        )

    async def call_store(self, vendor_id: str, request: ItemRequest, vehicle: VehicleDescriptor) -> CallSession:
        """Start a call to one vendor.

        Args:
            vendor_id: Directory id of the vendor to call.
            request: Part or labor operation to ask about.
            vehicle: Vehicle the item is for.

        Returns:
            The session, still PENDING until the platform confirms the call.

        Raises:
            CallError: UNKNOWN_VENDOR, NOT_CALLABLE, or CONNECT_FAILED (the
                session is archived as FAILED before raising).
        """
        vendor = self.directory.get(vendor_id)
        if vendor is None:
            raise CallError(CallFailureReason.UNKNOWN_VENDOR, f"Unknown vendor: {vendor_id}")
        if not vendor.is_callable:
            raise CallError(CallFailureReason.NOT_CALLABLE, f"{vendor.name} does not take phone quotes")

        script = self.build_script(vendor, request, vehicle)
        session = CallSession(
            call_id=self._new_id(),
            vendor_id=vendor_id,
            request=request,
            vehicle=vehicle,
            started_at=self._clock(),
        )
        self._sessions[session.call_id] = session
        self._done[session.call_id] = asyncio.Event()
        logger.info(f"Calling {vendor.name} ({session.call_id}) about {request.description} for {vehicle}")

        phone = self.directory.formatted_phone(vendor_id) or vendor.phone_number
        try:
            session.provider_call_id = await self.voice_client.place_call(session.call_id, phone, script)
        except CallError as e:
            self._finish(session, CallState.FAILED, CallFailureReason.CONNECT_FAILED.value)
            logger.warning(f"Call {session.call_id} to {vendor.name} could not connect: {e}")
            raise CallError(CallFailureReason.CONNECT_FAILED, str(e), call_id=session.call_id) from e
        except asyncio.CancelledError:
            self._finish(session, CallState.CANCELLED)
            logger.info(f"Call {session.call_id} to {vendor.name} cancelled while connecting")
            raise
        except Exception as e:
            self._finish(session, CallState.FAILED, CallFailureReason.CONNECT_FAILED.value)
            logger.error(f"Call {session.call_id} to {vendor.name} failed to start: {type(e).__name__}: {e}")
            raise CallError(CallFailureReason.CONNECT_FAILED, str(e), call_id=session.call_id) from e
        return session

    def get_session(self, call_id: str) -> CallSession:
        """Live session, or the archived snapshot once the call is terminal."""
        session = self._sessions.get(call_id)
        if session is not None:
            return session
        for snapshot in reversed(self._history):
            if snapshot.call_id == call_id:
                return snapshot
        raise CallError(CallFailureReason.UNKNOWN_CALL, f"Call not found: {call_id}", call_id=call_id)

    def _require(self, session: CallSession, target: CallState, allowed: tuple[CallState, ...]) -> None:
        if session.state not in allowed:
            raise InvalidStateTransition(
                f"Call {session.call_id}: cannot move from {session.state.value} to {target.value}"
            )

    def _finish(self, session: CallSession, state: CallState, failure_reason: str | None = None) -> None:
        session.state = state
        session.ended_at = self._clock()
        session.failure_reason = failure_reason
        snapshot = replace(session)
        self._history.append(snapshot)
        self._sessions.pop(session.call_id, None)
        self._done.pop(session.call_id).set()
        if self._on_archive is not None:
            self._on_archive(snapshot)

    def on_call_started(self, call_id: str) -> CallSession:
        session = self.get_session(call_id)
        self._require(session, CallState.IN_PROGRESS, (CallState.PENDING,))
        session.state = CallState.IN_PROGRESS
        logger.debug(f"Call {call_id} in progress")
        return session

    def on_transcript_received(self, call_id: str, transcript: str) -> CallSession:
        """Complete a call from its transcript. Valid only while IN_PROGRESS.

        Extraction always yields a quote; a transcript without a price
        completes the call with low confidence.
        """
        session = self.get_session(call_id)
        self._require(session, CallState.COMPLETED, (CallState.IN_PROGRESS,))
        session.transcript = transcript
        session.result_quote = extract_quote(transcript, session.vendor_id, self._clock(), self.thresholds)
        self._finish(session, CallState.COMPLETED)
        quote = session.result_quote
        logger.info(
            f"Call {call_id} completed: price={quote.price} availability={quote.availability.value} "
            f"confidence={quote.confidence}"
        )
        return session

    def on_call_failed(
        self,
        call_id: str,
        reason: CallFailureReason = CallFailureReason.CONNECT_FAILED,
        message: str = "",
    ) -> CallSession:
        session = self.get_session(call_id)
        self._require(session, CallState.FAILED, ACTIVE_STATES)
        self._finish(session, CallState.FAILED, reason.value)
        logger.warning(f"Call {call_id} to {session.vendor_id} failed ({reason.value}): {message}")
        return session

    async def cancel_call(self, call_id: str) -> CallSession:
        """Cancel a PENDING or IN_PROGRESS call.

        Raises:
            InvalidStateTransition: If the call already reached a terminal state.
        """
        session = self.get_session(call_id)
        self._require(session, CallState.CANCELLED, ACTIVE_STATES)
        self._finish(session, CallState.CANCELLED)
        logger.info(f"Call {call_id} cancelled")
        if session.provider_call_id:
            try:
                await self.voice_client.end_call(session.provider_call_id)
            except Exception as e:
                logger.warning(f"Hang-up for call {call_id} failed; cancellation stands: {e}")
        return session

    async def cancel_calls(self, call_ids: Iterable[str]) -> list[str]:
        """Cancel the given calls that are still active. Returns the ids cancelled."""
        cancelled = []
        for call_id in call_ids:
            session = self._sessions.get(call_id)
            if session is not None and session.state in ACTIVE_STATES:
                await self.cancel_call(call_id)
                cancelled.append(call_id)
        return cancelled

    async def wait_for_call(self, call_id: str, timeout: float | None = None) -> CallSession:
        """Wait until the call is terminal; on deadline mark it FAILED with TIMEOUT."""
        session = self.get_session(call_id)
        done = self._done.get(call_id)
        if done is None:
            return session
        timeout = self.timeout_seconds if timeout is None else timeout
        try:
            await asyncio.wait_for(done.wait(), timeout)
        except asyncio.TimeoutError:
            if session.state in ACTIVE_STATES:
                self.on_call_failed(call_id, CallFailureReason.TIMEOUT, f"No transcript within {timeout}s")
        return session

    async def call_multiple_stores(
        self,
        vendor_ids: list[str],
        request: ItemRequest,
        vehicle: VehicleDescriptor,
        timeout: float | None = None,
    ) -> BatchResult:
        """Call several vendors concurrently and join the results.

        Each call is independent; one vendor's failure never cancels another.
        Cancelling the batch cancels only calls that are still active, including
        calls the platform has not yet confirmed.

        Returns:
            BatchResult with COMPLETED sessions and a FailedCall for the rest.
        """
        started: list[str] = []

        async def call_and_wait(vendor_id: str) -> CallSession:
            session = await self.call_store(vendor_id, request, vehicle)
            started.append(session.call_id)
            return await self.wait_for_call(session.call_id, timeout)

        logger.info(f"Calling {len(vendor_ids)} vendors about {request.description}")
        try:
            outcomes = await asyncio.gather(*(call_and_wait(v) for v in vendor_ids), return_exceptions=True)
        except asyncio.CancelledError:
            cancelled = await self.cancel_calls(started)
            logger.info(f"Batch cancelled; cancelled {len(cancelled)} active calls")
            raise

        batch = BatchResult()
        for vendor_id, outcome in zip(vendor_ids, outcomes):
            if isinstance(outcome, CallSession):
                if outcome.state == CallState.COMPLETED:
                    batch.successful_calls.append(outcome)
                else:
                    batch.failed_calls.append(
                        FailedCall(
                            vendor_id=vendor_id,
                            reason=outcome.failure_reason or outcome.state.value,
                            message=f"Call ended {outcome.state.value}",
                            call_id=outcome.call_id,
                        )
                    )
            elif isinstance(outcome, CallError):
                batch.failed_calls.append(FailedCall(vendor_id, outcome.reason.value, str(outcome), outcome.call_id))
            else:
                batch.failed_calls.append(FailedCall(vendor_id, "error", f"{type(outcome).__name__}: {outcome}"))

        logger.info(f"Batch done: {len(batch.successful_calls)} completed, {len(batch.failed_calls)} failed")
        return batch

    def call_history(
        self,
        vendor_id: str | None = None,
        state: CallState | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> tuple[CallSession, ...]:
        """Archived sessions, most recent first."""
        history = self._history
        if vendor_id is not None:
            history = [s for s in history if s.vendor_id == vendor_id]
        if state is not None:
            history = [s for s in history if s.state == state]
        if since is not None:
            history = [s for s in history if s.started_at >= since]
        if until is not None:
            history = [s for s in history if s.started_at <= until]
        return tuple(reversed(history))

    def calls_in_progress(self) -> list[CallSession]:
        return [s for s in self._sessions.values() if s.state in ACTIVE_STATES]

    def call_statistics(self) -> dict[str, Any]:
        completed = [s for s in self._history if s.state == CallState.COMPLETED]
        total = len(self._history)
        return {
            "total_calls": total,
            "completed_calls": len(completed),
            "in_progress_calls": len(self.calls_in_progress()),
            "average_call_duration": _average_duration(completed),
            "success_rate": f"{len(completed) / max(total, 1) * 100:.2f}%",
        }


def _average_duration(sessions: list[CallSession]) -> str:
    """Mean call length formatted as m:ss."""
    durations = [(s.ended_at - s.started_at).total_seconds() for s in sessions if s.ended_at]
    if not durations:
        return "0:00"
    seconds = int(sum(durations) / len(durations))
    return f"{seconds // 60}:{seconds % 60:02d}"
