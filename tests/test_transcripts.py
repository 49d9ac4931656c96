"""Tests for transcript extraction and the Vapi client."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from quotesourcing.config import CallConfig
from quotesourcing.errors import CallError, CallFailureReason
from quotesourcing.models import Availability, CallScript, QualityTier, SourceKind
from quotesourcing.transcripts import (
    TranscriptThresholds,
    extract_availability,
    extract_price,
    extract_quality,
    extract_quote,
)
from quotesourcing.voice import VapiClient, render_prompt


class TestExtraction:
    """Tests for individual transcript heuristics."""

    @pytest.mark.parametrize(
        "transcript,expected",
        [
            ("That'll be $54.35 plus tax", Decimal("54.35")),
            ("It runs $ 1,250.00 for the unit", Decimal("1250.00")),
            ("about $89", Decimal("89")),
            ("Eighty nine dollars", None),
        ],
    )
    def test_price(self, transcript: str, expected: Decimal | None) -> None:
        assert extract_price(transcript) == expected

    @pytest.mark.parametrize(
        "transcript,expected",
        [
            ("Yes, we have it in stock.", (Availability.IN_STOCK, 0)),
            ("We're out of stock, but I can get it in 3 days.", (Availability.SPECIAL_ORDER, 3)),
            ("Sorry, we don't have it.", (Availability.OUT_OF_STOCK, None)),
            ("We have only 2 left.", (Availability.LIMITED_STOCK, 0)),
            ("I can get that here in 2 weeks.", (Availability.SPECIAL_ORDER, 14)),
            ("It's available.", (Availability.IN_STOCK, 0)),
            ("We'd need to order it.", (Availability.SPECIAL_ORDER, None)),
            ("Hello? Can you hear me?", (Availability.UNKNOWN, None)),
        ],
    )
    def test_availability(self, transcript: str, expected: tuple[Availability, int | None]) -> None:
        assert extract_availability(transcript) == expected

    @pytest.mark.parametrize(
        "transcript,expected",
        [
            ("It's a Wagner, OEM equivalent.", QualityTier.OEM_EQUIVALENT),
            ("That's a genuine Honda part.", QualityTier.OEM),
            ("We only have a reman unit.", QualityTier.REMANUFACTURED),
            ("Our economy line is cheaper.", QualityTier.ECONOMY),
            ("It's a good part.", QualityTier.UNKNOWN),
        ],
    )
    def test_quality(self, transcript: str, expected: QualityTier) -> None:
        assert extract_quality(transcript) == expected


class TestExtractQuote:
    """Tests for extract_quote()."""

    def test_priced_transcript(self) -> None:
        captured = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
        transcript = "Yes, we have the front pads in stock. It's $54.35, Wagner OEM equivalent."

        quote = extract_quote(transcript, "oreilly-1", captured_at=captured)

        assert quote.source_kind == SourceKind.VOICE_CALL
        assert quote.vendor_id == "oreilly-1"
        assert quote.price == Decimal("54.35")
        assert quote.availability == Availability.IN_STOCK
        assert quote.delivery_days == 0
        assert quote.quality == QualityTier.OEM_EQUIVALENT
        assert quote.confidence == 0.8
        assert quote.captured_at == captured
        assert quote.raw_evidence == transcript

    def test_unpriced_transcript_low_confidence(self) -> None:
        """Test a transcript with no price still yields a quote."""
        quote = extract_quote("Let me check with my manager and call you back.", "napa-1")
        assert quote.price is None
        assert quote.confidence == 0.3

    def test_custom_thresholds(self) -> None:
        thresholds = TranscriptThresholds(with_price=0.7, without_price=0.2)
        assert extract_quote("$20 even", "napa-1", thresholds=thresholds).confidence == 0.7
        assert extract_quote("no idea", "napa-1", thresholds=thresholds).confidence == 0.2

    def test_thresholds_capped(self) -> None:
        with pytest.raises(ValueError):
            TranscriptThresholds(with_price=0.95)


SCRIPT = CallScript(
    instructions="You are ALEX calling NAPA Auto Parts.",
    greeting="Hi, this is Alex calling from Test Garage. I'm looking for a price quote.",
    vehicle_identification="2019 Honda Civic",
    item_request="I need pricing and availability for a Front brake pads for a 2019 Honda Civic.",
    follow_up_questions=("Do you have that part in stock right now?", "Is there a warranty on this part?"),
    closing="Thank you very much for your help.",
)


def vapi_config(**overrides: str) -> CallConfig:
    values = {"vapi_api_key": "test-key", "vapi_phone_id": "phone-1", "vapi_base_url": "https://vapi.test"}
    values.update(overrides)
    return CallConfig(**values)


class TestVapiClient:
    """Tests for the Vapi REST client."""

    def test_render_prompt(self) -> None:
        prompt = render_prompt(SCRIPT)
        assert prompt.startswith("You are ALEX")
        assert "Vehicle: 2019 Honda Civic" in prompt
        assert "- Is there a warranty on this part?" in prompt

    @pytest.mark.asyncio
    async def test_place_call(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "vapi-123", "status": "queued"})

        client = VapiClient(vapi_config(), transport=httpx.MockTransport(handler))
        provider_id = await client.place_call("call-1", "+15551112222", SCRIPT)

        assert provider_id == "vapi-123"
        request = seen[0]
        assert request.method == "POST"
        assert request.url == "https://vapi.test/call"
        assert request.headers["Authorization"] == "Bearer test-key"
        payload = json.loads(request.content)
        assert payload["phoneNumberId"] == "phone-1"
        assert payload["customer"]["number"] == "+15551112222"
        assert payload["assistant"]["firstMessage"] == SCRIPT.greeting
        assert payload["metadata"]["callId"] == "call-1"

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        client = VapiClient(vapi_config(vapi_api_key=""))
        with pytest.raises(CallError) as exc:
            await client.place_call("call-1", "+15551112222", SCRIPT)
        assert exc.value.reason == CallFailureReason.CONNECT_FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="upstream error"),
            httpx.Response(201, json={"status": "queued"}),
        ],
    )
    async def test_rejected_call(self, response: httpx.Response) -> None:
        client = VapiClient(vapi_config(), transport=httpx.MockTransport(lambda r: response))
        with pytest.raises(CallError) as exc:
            await client.place_call("call-1", "+15551112222", SCRIPT)
        assert exc.value.reason == CallFailureReason.CONNECT_FAILED

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = VapiClient(vapi_config(), transport=httpx.MockTransport(handler))
        with pytest.raises(CallError) as exc:
            await client.place_call("call-1", "+15551112222", SCRIPT)
        assert exc.value.reason == CallFailureReason.CONNECT_FAILED

    @pytest.mark.asyncio
    async def test_end_call(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        await VapiClient(vapi_config(), transport=httpx.MockTransport(handler)).end_call("vapi-123")

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/call/vapi-123"
