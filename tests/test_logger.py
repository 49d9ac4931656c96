"""Tests for the sourcing audit logger."""

import json
from dataclasses import replace
from pathlib import Path

from quotesourcing.errors import (
    AdapterFailure,
    AdapterFailureReason,
    EscalationStatus,
    SourcingFailure,
    SourcingFailureReason,
)
from quotesourcing.logger import SourcingLogger
from quotesourcing.models import CallSession, CallState, ItemRequest, LookupRequest, VehicleDescriptor
from quotesourcing.selection import SelectionEngine


def recommend(make_quote, **overrides):
    return SelectionEngine().select([make_quote(**overrides)])


def exhausted(status: EscalationStatus = EscalationStatus.PENDING_VENDOR_CALLBACK) -> SourcingFailure:
    return SourcingFailure(
        SourcingFailureReason.ALL_SOURCES_EXHAUSTED,
        status,
        (
            AdapterFailure("oreilly-web", AdapterFailureReason.TIMEOUT),
            AdapterFailure("nexpart-api", AdapterFailureReason.NOT_FOUND),
        ),
        ("call-1",),
    )


class TestSourcingLogger:
    """Tests for SourcingLogger class."""

    def test_init_creates_directory(self, tmp_path: Path) -> None:
        """Test that init creates logs directory."""
        logs_dir = tmp_path / "logs"
        audit = SourcingLogger(logs_dir)

        assert logs_dir.exists()
        assert audit.sourcing_log_path == logs_dir / "sourcing_log.json"

    def test_log_recommendation(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest, make_quote) -> None:
        audit = SourcingLogger(tmp_path)
        recommendation = recommend(make_quote)

        entry = audit.log_recommendation(LookupRequest(vehicle, part_request), recommendation, "O'Reilly Auto Parts")

        assert entry.kind == "recommendation"
        assert entry.vehicle == str(vehicle)
        assert entry.item == "Front brake pads"
        assert entry.status == "scraped"
        assert entry.price == "54.35"
        assert entry.availability == "in_stock"
        assert entry.score == recommendation.best.overall_score
        assert entry.detail.startswith("Recommended: O'Reilly Auto Parts")

    def test_cached_recommendation_status(
        self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest, make_quote
    ) -> None:
        audit = SourcingLogger(tmp_path)
        recommendation = replace(recommend(make_quote), from_cache=True)

        entry = audit.log_recommendation(LookupRequest(vehicle, part_request), recommendation, "O'Reilly Auto Parts")

        assert entry.status == "cached"

    def test_log_failure(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest) -> None:
        audit = SourcingLogger(tmp_path)

        entry = audit.log_failure(LookupRequest(vehicle, part_request), exhausted())

        assert entry.kind == "failure"
        assert entry.source == "none"
        assert entry.status == "pending_vendor_callback"
        assert entry.detail == "Pending vendor callback: oreilly-web=timeout, nexpart-api=not_found"

    def test_log_call(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest) -> None:
        audit = SourcingLogger(tmp_path)
        session = CallSession(
            "call-7", "napa-1", part_request, vehicle, state=CallState.FAILED, failure_reason="timeout"
        )

        entry = audit.log_call(session)

        assert entry.kind == "call"
        assert entry.source == "napa-1"
        assert entry.status == "failed"
        assert entry.price is None
        assert entry.detail == "timeout"

    def test_appends_to_json(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest, make_quote) -> None:
        """Test that entries are appended to the JSON log across instances."""
        request = LookupRequest(vehicle, part_request)
        SourcingLogger(tmp_path).log_recommendation(request, recommend(make_quote), "O'Reilly Auto Parts")
        SourcingLogger(tmp_path).log_failure(request, exhausted(EscalationStatus.DISABLED))

        with open(tmp_path / "sourcing_log.json") as f:
            data = json.load(f)

        assert [d["kind"] for d in data] == ["recommendation", "failure"]
        assert data[0]["price"] == "54.35"
        assert data[1]["status"] == "disabled"

    def test_recovers_from_corrupt_json(
        self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest
    ) -> None:
        (tmp_path / "sourcing_log.json").write_text("{not json")
        audit = SourcingLogger(tmp_path)

        audit.log_failure(LookupRequest(vehicle, part_request), exhausted())

        with open(audit.sourcing_log_path) as f:
            assert len(json.load(f)) == 1


class TestDailySummary:
    """Tests for the Markdown daily summary."""

    def test_summary_sections(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest, make_quote) -> None:
        audit = SourcingLogger(tmp_path)
        request = LookupRequest(vehicle, part_request)
        audit.log_recommendation(request, recommend(make_quote), "O'Reilly Auto Parts")
        audit.log_recommendation(request, replace(recommend(make_quote), from_cache=True), "O'Reilly Auto Parts")
        audit.log_failure(request, exhausted())

        path = audit.write_daily_summary()
        content = path.read_text()

        assert path == audit.summary_path()
        assert content.startswith("# Quote Sourcing Daily Summary - ")
        assert "- **Lookups Answered:** 2" in content
        assert "- **Served From Cache:** 1" in content
        assert "- **Pending Vendor Callbacks:** 1" in content
        assert "### Front brake pads - 2019 Honda Civic" in content
        assert "- **Price:** $54.35" in content
        assert "## Needs Follow-up" in content
        assert "- **O'Reilly Auto Parts:** 2 recommendations" in content

    def test_empty_summary(self, tmp_path: Path) -> None:
        content = SourcingLogger(tmp_path).write_daily_summary().read_text()

        assert "- **Lookups Answered:** 0" in content
        assert "## Recommendations" not in content
        assert "## Needs Follow-up" not in content

    def test_latest_summary(self, tmp_path: Path) -> None:
        audit = SourcingLogger(tmp_path)
        assert audit.latest_summary() is None

        audit.summary_path("2026-10-17").write_text("older")
        audit.summary_path("2026-10-18").write_text("newer")

        assert audit.latest_summary() == tmp_path / "daily_summary_2026-10-18.md"


class TestStats:
    def test_get_stats(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest, make_quote) -> None:
        audit = SourcingLogger(tmp_path)
        request = LookupRequest(vehicle, part_request)
        audit.log_recommendation(request, recommend(make_quote), "O'Reilly Auto Parts")
        audit.log_recommendation(request, recommend(make_quote, vendor_id="napa-1"), "NAPA Auto Parts")
        audit.log_failure(request, exhausted())

        stats = audit.get_stats()

        assert stats["total"] == 3
        assert stats["recommendations"] == 2
        assert stats["failures"] == 1
        assert stats["calls"] == 0
        assert stats["sources"] == ["NAPA Auto Parts", "O'Reilly Auto Parts"]

    def test_clear_daily_results(self, tmp_path: Path, vehicle: VehicleDescriptor, part_request: ItemRequest) -> None:
        audit = SourcingLogger(tmp_path)
        audit.log_failure(LookupRequest(vehicle, part_request), exhausted())

        audit.clear_daily_results()

        assert audit.daily_results == []
        assert audit.get_stats()["total"] == 0
