"""Data models for quote sourcing and selection."""

import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ItemKind(str, Enum):
    PART = "part"
    LABOR_OPERATION = "labor_operation"


class SourceKind(str, Enum):
    SCRAPED = "scraped"
    REMOTE_PROCEDURE = "remote_procedure"
    STATIC_DATABASE = "static_database"
    VOICE_CALL = "voice_call"


# Structured sources are authoritative; heuristic ones are capped below 1.0
AUTHORITATIVE_SOURCES = frozenset({SourceKind.REMOTE_PROCEDURE, SourceKind.STATIC_DATABASE})
MAX_HEURISTIC_CONFIDENCE = 0.9


class Availability(str, Enum):
    IN_STOCK = "in_stock"
    LIMITED_STOCK = "limited_stock"
    SPECIAL_ORDER = "special_order"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"

    @classmethod
    def from_text(cls, text: str | None) -> "Availability":
        """Normalize free-text availability as printed by vendors.

        Args:
            text: Raw availability text, e.g. "In Stock (4)" or "Special Order".

        Returns:
            Matching Availability, UNKNOWN if nothing recognizable.
        """
        if not text:
            return cls.UNKNOWN
        value = text.strip().lower().replace("-", " ").replace("_", " ")
        if "out of stock" in value or "unavailable" in value or "no stock" in value:
            return cls.OUT_OF_STOCK
        if "limited" in value or "low stock" in value or "only" in value:
            return cls.LIMITED_STOCK
        if "special order" in value or "ships in" in value or "backorder" in value:
            return cls.SPECIAL_ORDER
        if "in stock" in value or "available" in value or value == "stock":
            return cls.IN_STOCK
        return cls.UNKNOWN


class QualityTier(str, Enum):
    OEM = "OEM"
    OEM_EQUIVALENT = "OEM Equivalent"
    PREMIUM = "Premium"
    STANDARD = "Standard"
    ECONOMY = "Economy"
    REMANUFACTURED = "Remanufactured"
    USED = "Used"
    UNKNOWN = "Unknown"

    @classmethod
    def from_text(cls, text: str | None) -> "QualityTier":
        """Normalize a brand/quality description to a tier."""
        if not text:
            return cls.UNKNOWN
        value = text.strip().lower()
        # Order matters: "oem equivalent" must win over "oem"
        if "oem equivalent" in value or "oe equivalent" in value or "oem-equivalent" in value:
            return cls.OEM_EQUIVALENT
        if "reman" in value or "rebuilt" in value:
            return cls.REMANUFACTURED
        if "oem" in value or "genuine" in value or "factory" in value:
            return cls.OEM
        if "premium" in value or "professional" in value:
            return cls.PREMIUM
        if "economy" in value or "value" in value or "budget" in value:
            return cls.ECONOMY
        if "used" in value or "salvage" in value:
            return cls.USED
        if "standard" in value:
            return cls.STANDARD
        return cls.UNKNOWN


@dataclass(frozen=True)
class VehicleDescriptor:
    """Vehicle identity used as part of the lookup key."""

    year: int
    make: str
    model: str

    def key(self) -> tuple[int, str, str]:
        """Normalized form; make and model compare case-insensitively."""
        return (self.year, self.make.strip().lower(), self.model.strip().lower())

    def age_years(self, today: date | None = None) -> int:
        """Age of the vehicle in model years."""
        today = today or date.today()
        return max(0, today.year - self.year)

    def __str__(self) -> str:
        return f"{self.year} {self.make} {self.model}"


@dataclass(frozen=True)
class ItemRequest:
    """A part or labor operation to be priced."""

    kind: ItemKind
    description: str
    part_number: str | None = None

    def key(self) -> tuple[str, str, str]:
        return (
            self.kind.value,
            " ".join(self.description.lower().split()),
            (self.part_number or "").strip().upper(),
        )


def lookup_key(vehicle: VehicleDescriptor, item: ItemRequest) -> str:
    """Build the cache key for a vehicle + item pair.

    Args:
        vehicle: Vehicle being serviced.
        item: Part or labor operation requested.

    Returns:
        Hex SHA-256 digest of the normalized vehicle and item.
    """
    parts = [str(p) for p in (*vehicle.key(), *item.key())]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


@dataclass
class Quote:
    """Price/availability/quality record for one item from one source."""

    source_kind: SourceKind
    vendor_id: str | None
    price: Decimal | None = None
    labor_hours: Decimal | None = None
    availability: Availability = Availability.UNKNOWN
    delivery_days: int | None = None
    quality: QualityTier = QualityTier.UNKNOWN
    confidence: float = 1.0
    captured_at: datetime = field(default_factory=utcnow)
    raw_evidence: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.source_kind in AUTHORITATIVE_SOURCES and self.confidence != 1.0:
            raise ValueError(f"{self.source_kind.value} quotes must have confidence 1.0")
        if self.source_kind not in AUTHORITATIVE_SOURCES and self.confidence > MAX_HEURISTIC_CONFIDENCE:
            raise ValueError(
                f"{self.source_kind.value} quotes are heuristic; confidence must be <= {MAX_HEURISTIC_CONFIDENCE}"
            )


@dataclass
class CacheEntry:
    """Cached winning quote for one lookup key."""

    key: str
    quote: Quote
    expires_at: datetime
    hit_count: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CacheStats:
    total_entries: int
    total_hits: int
    oldest_entry: datetime | None
    newest_entry: datetime | None


class CallState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CallState.COMPLETED, CallState.CANCELLED, CallState.FAILED)


@dataclass(frozen=True)
class CallScript:
    """Structured script handed to the voice-call platform."""

    instructions: str
    greeting: str
    vehicle_identification: str
    item_request: str
    follow_up_questions: tuple[str, ...]
    closing: str

    def to_dict(self) -> dict[str, object]:
        return {
            "instructions": self.instructions,
            "greeting": self.greeting,
            "vehicle_identification": self.vehicle_identification,
            "item_request": self.item_request,
            "follow_up_questions": list(self.follow_up_questions),
            "closing": self.closing,
        }


@dataclass
class CallSession:
    """Lifecycle of one outbound call to a vendor."""

    call_id: str
    vendor_id: str
    request: ItemRequest
    vehicle: VehicleDescriptor
    state: CallState = CallState.PENDING
    started_at: datetime = field(default_factory=utcnow)
    ended_at: datetime | None = None
    transcript: str | None = None
    result_quote: Quote | None = None
    failure_reason: str | None = None
    provider_call_id: str | None = None


@dataclass
class FailedCall:
    """A vendor call that did not produce a transcript."""

    vendor_id: str
    reason: str
    message: str
    call_id: str | None = None


@dataclass
class BatchResult:
    """Join of several independent vendor calls."""

    successful_calls: list[CallSession] = field(default_factory=list)
    failed_calls: list[FailedCall] = field(default_factory=list)

    def quotes(self) -> list[Quote]:
        return [s.result_quote for s in self.successful_calls if s.result_quote is not None]


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class VehicleClass(str, Enum):
    STANDARD = "standard"
    LUXURY = "luxury"
    PERFORMANCE = "performance"


@dataclass(frozen=True)
class SelectionContext:
    """Request-time context that tilts the selection weights."""

    urgency: Urgency = Urgency.NORMAL
    budget_sensitive: bool = False
    vehicle_age_years: int | None = None
    vehicle_class: VehicleClass | None = None
    quality_preference: str | None = None


@dataclass(frozen=True)
class ScoreBreakdown:
    price: float
    availability: float
    delivery: float
    quality: float
    relationship: float

    def as_dict(self) -> dict[str, float]:
        return {
            "price": self.price,
            "availability": self.availability,
            "delivery": self.delivery,
            "quality": self.quality,
            "relationship": self.relationship,
        }


@dataclass(frozen=True)
class ScoredQuote:
    quote: Quote
    overall_score: float  # 0-100
    breakdown: ScoreBreakdown


@dataclass(frozen=True)
class Alternative:
    scored: ScoredQuote
    reason: str


@dataclass(frozen=True)
class Recommendation:
    """Winning quote with ranked alternatives and an explanation."""

    best: ScoredQuote
    alternatives: tuple[Alternative, ...]
    rationale: str
    from_cache: bool = False


@dataclass(frozen=True)
class Vendor:
    """Parts store or labor supplier from the vendor directory."""

    vendor_id: str
    name: str
    phone_number: str
    priority: int
    specialty: str | None = None
    is_callable: bool = True
    location: str = ""
    hours: str = ""
    notes: str = ""


@dataclass(frozen=True)
class LookupRequest:
    """Inbound sourcing request."""

    vehicle: VehicleDescriptor
    item: ItemRequest
    context: SelectionContext = field(default_factory=SelectionContext)


@dataclass
class AuditEntry:
    """One line of the sourcing audit trail."""

    timestamp: str
    kind: str  # 'recommendation', 'failure' or 'call'
    vehicle: str
    item: str
    source: str
    status: str
    price: str | None = None
    labor_hours: str | None = None
    availability: str | None = None
    score: float | None = None
    detail: str = ""
