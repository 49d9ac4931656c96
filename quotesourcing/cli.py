"""Command-line interface for quote sourcing."""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path

from quotesourcing.config import EngineConfig, load_config
from quotesourcing.coordinator import build_coordinator
from quotesourcing.directory import VendorDirectory
from quotesourcing.errors import ConfigError, SourcingFailure
from quotesourcing.labor_catalog import LaborCatalog, LaborEstimate
from quotesourcing.logger import SourcingLogger
from quotesourcing.models import (
    ItemKind,
    ItemRequest,
    LookupRequest,
    Recommendation,
    SelectionContext,
    Urgency,
    VehicleClass,
    VehicleDescriptor,
)
from quotesourcing.settings import StaticShopSettings, customer_estimate


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI.

    Args:
        verbose: Whether to enable verbose (DEBUG) logging.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load(args: argparse.Namespace) -> EngineConfig | None:
    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return None
    try:
        return load_config(config_path)
    except ConfigError as e:
        print(f"Error: Invalid config: {e}", file=sys.stderr)
        return None


def build_request(args: argparse.Namespace) -> LookupRequest:
    """Translate lookup arguments into a LookupRequest."""
    kind = ItemKind.LABOR_OPERATION if args.labor else ItemKind.PART
    return LookupRequest(
        vehicle=VehicleDescriptor(year=args.year, make=args.make, model=args.model),
        item=ItemRequest(kind=kind, description=args.description, part_number=args.part_number),
        context=SelectionContext(
            urgency=Urgency.URGENT if args.urgent else Urgency.NORMAL,
            budget_sensitive=args.budget,
            vehicle_class=VehicleClass(args.vehicle_class) if args.vehicle_class else None,
            quality_preference=args.quality,
        ),
    )


def print_recommendation(recommendation: Recommendation, settings: StaticShopSettings, source: str) -> None:
    best = recommendation.best
    quote = best.quote
    print("\n" + "=" * 50)
    print("Recommendation" + (" (cached)" if recommendation.from_cache else ""))
    print("=" * 50)
    print(f"Source:       {source} [{quote.source_kind.value}]")
    if quote.price is not None:
        print(f"Price:        ${quote.price:.2f}")
    if quote.labor_hours is not None:
        print(f"Labor hours:  {quote.labor_hours}")
    print(f"Availability: {quote.availability.value}")
    print(f"Score:        {best.overall_score:.2f}/100")
    print(f"Estimate:     ${customer_estimate(settings, quote.price, quote.labor_hours)}")
    print(f"\n{recommendation.rationale}")

    if recommendation.alternatives:
        print("\nAlternatives:")
        for alt in recommendation.alternatives:
            price = f"${alt.scored.quote.price:.2f}" if alt.scored.quote.price is not None else "N/A"
            print(f"  - {alt.scored.quote.vendor_id or alt.scored.quote.source_kind.value}: {price} "
                  f"({alt.scored.overall_score:.2f}, {alt.reason})")


def print_failure(failure: SourcingFailure) -> None:
    print("\n" + "=" * 50)
    print(f"No quote: {failure.message}")
    print("=" * 50)
    for adapter_failure in failure.adapter_failures:
        print(f"  - {adapter_failure.adapter}: {adapter_failure.reason.value} {adapter_failure.message}")
    if failure.call_ids:
        print(f"Vendor calls placed: {', '.join(failure.call_ids)}")


async def _run_lookup(config: EngineConfig, request: LookupRequest) -> int:
    coordinator = build_coordinator(config)
    settings = StaticShopSettings.from_config(config.shop)
    try:
        result = await coordinator.lookup(request)
    finally:
        await coordinator.aclose()

    if coordinator.audit:
        coordinator.audit.write_daily_summary()

    if isinstance(result, SourcingFailure):
        print_failure(result)
        return 1
    print_recommendation(result, settings, coordinator.selector.source_name(result.best.quote))
    return 0


def run_lookup(args: argparse.Namespace) -> int:
    """Execute lookup command.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    config = _load(args)
    if config is None:
        return 1

    if args.headed:
        config.scraping.headless = False
    if args.wait_calls:
        config.coordinator.wait_for_calls = True

    try:
        return asyncio.run(_run_lookup(config, build_request(args)))
    except Exception as e:
        logging.exception("Error during lookup")
        print(f"Error: {e}", file=sys.stderr)
        return 1


def print_labor_estimate(estimate: LaborEstimate, settings: StaticShopSettings) -> None:
    for op, hours in estimate.lines:
        print(f"{op.id:<28} {op.name:<45} {hours:>5} hrs")
    if estimate.alternatives:
        print(f"Alternatives: {', '.join(op.id for op in estimate.alternatives)}")
    for operation_id in estimate.missing:
        print(f"Not in catalog, needs a vendor call: {operation_id}")
    total = estimate.total_hours
    print(f"Total: {total} hrs at ${settings.labor_rate}/hr = ${customer_estimate(settings, labor_hours=total)}")


def search_labor(args: argparse.Namespace) -> int:
    """Search the shop labor catalog, or estimate hours for operations."""
    catalog = LaborCatalog()
    multiplier = Decimal(str(args.multiplier))
    if args.ops or args.quick:
        settings = StaticShopSettings(labor_rate=Decimal(str(args.rate)), labor_multiplier=multiplier)
        if args.ops:
            estimate = catalog.estimate([op.strip() for op in args.ops.split(",") if op.strip()], multiplier)
        else:
            estimate = catalog.quick_estimate(args.query or "", multiplier)
            if estimate is None:
                print("No matching labor operation; a vendor call can price it", file=sys.stderr)
                return 1
        print_labor_estimate(estimate, settings)
        return 0 if estimate.complete else 1

    if args.category:
        operations = catalog.by_category(args.category)
    elif args.query:
        operations = catalog.search(args.query)
    else:
        operations = catalog.all()

    if not operations:
        print("No matching labor operations", file=sys.stderr)
        return 1

    for op in operations:
        hours = catalog.labor_hours(op.id, multiplier)
        print(f"{op.id:<28} {op.name:<45} {hours:>5} hrs  [{op.category}, {op.difficulty}]")
    return 0


def list_vendors(args: argparse.Namespace) -> int:
    """List the vendor directory."""
    config_path = Path(args.config)
    directory = VendorDirectory()
    if config_path.exists():
        config = _load(args)
        if config is None:
            return 1
        try:
            directory = VendorDirectory.from_config(config.vendors)
        except ConfigError as e:
            print(f"Error: Invalid config: {e}", file=sys.stderr)
            return 1

    vendors = directory.callable_vendors() if args.callable else directory.all()
    for vendor in vendors:
        flag = "" if vendor.is_callable else " (no phone quotes)"
        print(f"{vendor.priority}. {vendor.name} - {vendor.phone_number}{flag}")
        if vendor.specialty:
            print(f"   {vendor.specialty}; {vendor.location}; {vendor.hours}")
    return 0


def show_report(args: argparse.Namespace) -> int:
    """Show report command.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code.
    """
    config = _load(args)
    if config is None:
        return 1

    audit = SourcingLogger(config.logs_dir)
    if args.date:
        summary_path: Path | None = audit.summary_path(args.date)
    else:
        summary_path = audit.latest_summary()
        if summary_path is None:
            print("No summary files found", file=sys.stderr)
            return 1

    if summary_path is None or not summary_path.exists():
        print(f"Summary not found: {summary_path}", file=sys.stderr)
        return 1

    print(summary_path.read_text())
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        description="Quote Sourcing - price parts and labor across vendors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  quote-sourcing lookup 2019 Honda Civic "brake pads" --part-number D1089
  quote-sourcing lookup 2015 Ford F-150 "alternator replacement" --labor
  quote-sourcing labor brake
  quote-sourcing labor "brake pads" --quick
  quote-sourcing labor --ops brake-pads-front,brake-rotors-front
  quote-sourcing report --date 2026-10-19
        """,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to config file (default: config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    lookup_parser = subparsers.add_parser("lookup", help="Source and select a quote")
    lookup_parser.add_argument("year", type=int, help="Vehicle model year")
    lookup_parser.add_argument("make", help="Vehicle make")
    lookup_parser.add_argument("model", help="Vehicle model")
    lookup_parser.add_argument("description", help="Part name or labor operation")
    lookup_parser.add_argument("--part-number", help="Part number, if known")
    lookup_parser.add_argument("--labor", action="store_true", help="Price a labor operation instead of a part")
    lookup_parser.add_argument("--urgent", action="store_true", help="Favor availability over price")
    lookup_parser.add_argument("--budget", action="store_true", help="Customer is budget sensitive")
    lookup_parser.add_argument(
        "--vehicle-class",
        choices=[c.value for c in VehicleClass],
        help="Vehicle class",
    )
    lookup_parser.add_argument("--quality", help="Preferred quality tier, e.g. OEM")
    lookup_parser.add_argument("--headed", action="store_true", help="Run browser in headed mode (visible)")
    lookup_parser.add_argument("--wait-calls", action="store_true", help="Wait for vendor call transcripts")
    lookup_parser.set_defaults(func=run_lookup)

    labor_parser = subparsers.add_parser("labor", help="Search the shop labor catalog")
    labor_parser.add_argument("query", nargs="?", help="Operation name, description or category")
    labor_parser.add_argument("--category", help="List one category")
    labor_parser.add_argument("--multiplier", type=float, default=1.0, help="Shop labor multiplier")
    labor_parser.add_argument("--ops", help="Comma-separated operation ids to total")
    labor_parser.add_argument("--quick", action="store_true", help="Estimate the best match for the query")
    labor_parser.add_argument("--rate", type=float, default=100.0, help="Shop labor rate per hour")
    labor_parser.set_defaults(func=search_labor)

    vendors_parser = subparsers.add_parser("vendors", help="List the vendor directory")
    vendors_parser.add_argument("--callable", action="store_true", help="Only vendors that take phone quotes")
    vendors_parser.set_defaults(func=list_vendors)

    report_parser = subparsers.add_parser(
        "report",
        help="Show daily summary report",
    )
    report_parser.add_argument(
        "--date",
        help="Date to show report for (YYYY-MM-DD format)",
    )
    report_parser.set_defaults(func=show_report)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
