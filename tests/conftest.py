"""Pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from quotesourcing.models import (
    Availability,
    ItemKind,
    ItemRequest,
    QualityTier,
    Quote,
    SourceKind,
    VehicleDescriptor,
)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def sample_config(tmp_path: Path) -> Path:
    """Create a sample config file for testing."""
    config_path = tmp_path / "config.yaml"
    config_content = f"""
cache:
  ttl_hours: 12

selection:
  weights:
    price: 0.30
    availability: 0.25
    delivery: 0.20
    quality: 0.15
    relationship: 0.10

coordinator:
  policy: thorough
  max_calls: 2

calls:
  timeout_seconds: 5
  shop_name: "Test Garage"

scraping:
  enabled: false

remote:
  enabled: false

shop:
  labor_rate: 120
  parts_markup: 25

output:
  logs_dir: {tmp_path / "logs"}
"""
    config_path.write_text(config_content)
    return config_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vehicle() -> VehicleDescriptor:
    return VehicleDescriptor(year=2019, make="Honda", model="Civic")


@pytest.fixture
def part_request() -> ItemRequest:
    return ItemRequest(kind=ItemKind.PART, description="Front brake pads", part_number="D1089")


@pytest.fixture
def labor_request() -> ItemRequest:
    return ItemRequest(kind=ItemKind.LABOR_OPERATION, description="alternator replacement")


@pytest.fixture
def make_quote() -> Callable[..., Quote]:
    """Factory for heuristic (scraped by default) part quotes."""

    def _make(**overrides: Any) -> Quote:
        values: dict[str, Any] = {
            "source_kind": SourceKind.SCRAPED,
            "vendor_id": "oreilly-1",
            "price": Decimal("54.35"),
            "availability": Availability.IN_STOCK,
            "delivery_days": 0,
            "quality": QualityTier.STANDARD,
            "confidence": 0.85,
        }
        values.update(overrides)
        if "price" in overrides and overrides["price"] is not None:
            values["price"] = Decimal(str(overrides["price"]))
        return Quote(**values)

    return _make
