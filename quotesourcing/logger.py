"""Audit trail and daily summaries for sourcing lookups."""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from quotesourcing.errors import SourcingFailure
from quotesourcing.models import AuditEntry, CallSession, LookupRequest, Recommendation

logger = logging.getLogger(__name__)


class SourcingLogger:
    """Multi-format logging: JSON audit trail and Markdown daily summary."""

    def __init__(self, logs_dir: Path):
        """Initialize sourcing logger.

        Args:
            logs_dir: Directory for log files.
        """
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        self.sourcing_log_path = self.logs_dir / "sourcing_log.json"
        self.daily_results: list[AuditEntry] = []

    def log_recommendation(self, request: LookupRequest, recommendation: Recommendation, source: str) -> AuditEntry:
        """Record the winning quote of a lookup.

        Args:
            request: The lookup that was answered.
            recommendation: Selection result.
            source: Display name of the winning vendor or source.

        Returns:
            The created AuditEntry.
        """
        best = recommendation.best
        quote = best.quote
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            kind="recommendation",
            vehicle=str(request.vehicle),
            item=request.item.description,
            source=source,
            status="cached" if recommendation.from_cache else quote.source_kind.value,
            price=str(quote.price) if quote.price is not None else None,
            labor_hours=str(quote.labor_hours) if quote.labor_hours is not None else None,
            availability=quote.availability.value,
            score=best.overall_score,
            detail=recommendation.rationale,
        )
        self._record(entry)
        return entry

    def log_failure(self, request: LookupRequest, failure: SourcingFailure) -> AuditEntry:
        reasons = ", ".join(f"{f.adapter}={f.reason.value}" for f in failure.adapter_failures)
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            kind="failure",
            vehicle=str(request.vehicle),
            item=request.item.description,
            source="none",
            status=failure.escalation.value,
            detail=f"{failure.message}: {reasons}" if reasons else failure.message,
        )
        self._record(entry)
        return entry

    def log_call(self, session: CallSession) -> AuditEntry:
        quote = session.result_quote
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            kind="call",
            vehicle=str(session.vehicle),
            item=session.request.description,
            source=session.vendor_id,
            status=session.state.value,
            price=str(quote.price) if quote and quote.price is not None else None,
            availability=quote.availability.value if quote else None,
            detail=session.failure_reason or session.call_id,
        )
        self._record(entry)
        return entry

    def _record(self, entry: AuditEntry) -> None:
        self.daily_results.append(entry)
        self._append_to_json(entry)

    def _append_to_json(self, entry: AuditEntry) -> None:
        """Append entry to JSON log file.

        Args:
            entry: The audit entry to append.
        """
        try:
            entries: list[dict[str, Any]] = []
            if self.sourcing_log_path.exists():
                with open(self.sourcing_log_path) as f:
                    try:
                        entries = json.load(f)
                    except json.JSONDecodeError:
                        entries = []

            entries.append(asdict(entry))

            with open(self.sourcing_log_path, "w") as f:
                json.dump(entries, f, indent=2)

        except Exception as e:
            logger.error(f"Error writing to JSON log: {e}")

    def summary_path(self, date: str | None = None) -> Path:
        date = date or datetime.now().strftime("%Y-%m-%d")
        return self.logs_dir / f"daily_summary_{date}.md"

    def latest_summary(self) -> Path | None:
        """Most recent daily summary on disk, if any."""
        summaries = sorted(self.logs_dir.glob("daily_summary_*.md"))
        return summaries[-1] if summaries else None

    def write_daily_summary(self) -> Path:
        """Generate Markdown summary of today's lookups.

        Returns:
            Path to the summary file.
        """
        date = datetime.now().strftime("%Y-%m-%d")
        summary_path = self.summary_path(date)
        summary_path.write_text(self._render_summary(date))

        logger.info(f"Daily summary written: {summary_path}")
        return summary_path

    def _render_summary(self, date: str) -> str:
        recommendations = [r for r in self.daily_results if r.kind == "recommendation"]
        failures = [r for r in self.daily_results if r.kind == "failure"]
        calls = [r for r in self.daily_results if r.kind == "call"]
        pending = [r for r in failures if r.status == "pending_vendor_callback"]

        lines = [
            f"# Quote Sourcing Daily Summary - {date}",
            "",
            "## Overview",
            "",
            f"- **Lookups Answered:** {len(recommendations)}",
            f"- **Served From Cache:** {sum(1 for r in recommendations if r.status == 'cached')}",
            f"- **Sources Exhausted:** {len(failures)}",
            f"- **Pending Vendor Callbacks:** {len(pending)}",
            f"- **Vendor Calls Logged:** {len(calls)}",
            "",
        ]

        if recommendations:
            lines.extend(["## Recommendations", ""])
            for entry in recommendations:
                lines.extend(self._format_entry(entry))

        if failures:
            lines.extend(["## Needs Follow-up", ""])
            for entry in failures:
                lines.append(f"- {entry.vehicle} / {entry.item}: {entry.status} ({entry.detail})")
            lines.append("")

        sources: dict[str, int] = {}
        for entry in recommendations:
            sources[entry.source] = sources.get(entry.source, 0) + 1

        lines.extend(["## Sources Breakdown", ""])
        for source, count in sorted(sources.items(), key=lambda x: -x[1]):
            lines.append(f"- **{source}:** {count} recommendations")

        lines.extend(
            [
                "",
                "---",
                f"*Generated at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}*",
            ]
        )
        return "\n".join(lines)

    def _format_entry(self, entry: AuditEntry) -> list[str]:
        lines = [
            f"### {entry.item} - {entry.vehicle}",
            "",
            f"- **Source:** {entry.source} ({entry.status})",
            f"- **Price:** {'$' + entry.price if entry.price else 'N/A'}",
        ]
        if entry.labor_hours:
            lines.append(f"- **Labor Hours:** {entry.labor_hours}")
        lines.extend([f"- **Score:** {entry.score}/100", ""])
        return lines

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about logged results.

        Returns:
            Dictionary with statistics.
        """
        return {
            "total": len(self.daily_results),
            "recommendations": sum(1 for r in self.daily_results if r.kind == "recommendation"),
            "failures": sum(1 for r in self.daily_results if r.kind == "failure"),
            "calls": sum(1 for r in self.daily_results if r.kind == "call"),
            "sources": sorted({r.source for r in self.daily_results if r.kind == "recommendation"}),
        }

    def clear_daily_results(self) -> None:
        """Clear daily results for a new session."""
        self.daily_results.clear()
