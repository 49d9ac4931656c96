"""Heuristic extraction of quotes from vendor call transcripts."""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from quotesourcing.models import (
    MAX_HEURISTIC_CONFIDENCE,
    Availability,
    QualityTier,
    Quote,
    SourceKind,
    utcnow,
)

PRICE_PATTERN = re.compile(r"\$\s?(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?")
LEAD_TIME_PATTERN = re.compile(r"(\d+)\s*(day|days|week|weeks)\b", re.IGNORECASE)
NEGATIVE_STOCK_PATTERN = re.compile(
    r"out of stock|not in stock|don'?t have (?:it|one|any)|do not have (?:it|one|any)|no stock|sold out",
    re.IGNORECASE,
)
LIMITED_PATTERN = re.compile(r"\blimited\b|only (?:\d+|one|two|three) left|last one", re.IGNORECASE)
IN_STOCK_PATTERN = re.compile(r"in stock|have it|available (?:now|today)|on the shelf", re.IGNORECASE)
AVAILABLE_PATTERN = re.compile(r"\bavailable\b", re.IGNORECASE)
SPECIAL_ORDER_PATTERN = re.compile(r"special order|order it|need to order", re.IGNORECASE)

# Ordered: "oem equivalent" must be checked before "oem"
QUALITY_KEYWORDS: tuple[tuple[re.Pattern[str], QualityTier], ...] = (
    (re.compile(r"\bo\.?e\.?m?\.? equivalent\b", re.IGNORECASE), QualityTier.OEM_EQUIVALENT),
    (re.compile(r"\breman(?:ufactured)?\b|\brebuilt\b", re.IGNORECASE), QualityTier.REMANUFACTURED),
    (re.compile(r"\boem\b|\bgenuine\b|\bfactory\b", re.IGNORECASE), QualityTier.OEM),
    (re.compile(r"\bpremium\b", re.IGNORECASE), QualityTier.PREMIUM),
    (re.compile(r"\beconomy\b|\bbudget\b", re.IGNORECASE), QualityTier.ECONOMY),
    (re.compile(r"\bused\b|\bsalvage\b", re.IGNORECASE), QualityTier.USED),
    (re.compile(r"\bstandard\b", re.IGNORECASE), QualityTier.STANDARD),
)


@dataclass(frozen=True)
class TranscriptThresholds:
    """Confidence assigned to call-derived quotes. Uncalibrated; tune per shop."""

    with_price: float = 0.8
    without_price: float = 0.3

    def __post_init__(self) -> None:
        for value in (self.with_price, self.without_price):
            if not 0.0 <= value <= MAX_HEURISTIC_CONFIDENCE:
                raise ValueError(f"Transcript confidence must be within [0, {MAX_HEURISTIC_CONFIDENCE}]")


def extract_price(transcript: str) -> Decimal | None:
    match = PRICE_PATTERN.search(transcript)
    if not match:
        return None
    return Decimal(match.group(1).replace(",", "") + (match.group(2) or ""))


def extract_lead_time(transcript: str) -> int | None:
    """Days until delivery from phrases like '3 days' or '2 weeks'."""
    match = LEAD_TIME_PATTERN.search(transcript)
    if not match:
        return None
    count = int(match.group(1))
    return count * 7 if match.group(2).lower().startswith("week") else count


def extract_availability(transcript: str) -> tuple[Availability, int | None]:
    """Classify stock status and delivery days from a transcript.

    Returns:
        (availability, delivery_days). Delivery is 0 when the part is on hand.
    """
    lead_time = extract_lead_time(transcript)

    if NEGATIVE_STOCK_PATTERN.search(transcript):
        if lead_time is not None:
            return Availability.SPECIAL_ORDER, lead_time
        return Availability.OUT_OF_STOCK, None
    if LIMITED_PATTERN.search(transcript):
        return Availability.LIMITED_STOCK, 0
    if IN_STOCK_PATTERN.search(transcript):
        return Availability.IN_STOCK, 0
    if lead_time is not None:
        return Availability.SPECIAL_ORDER, lead_time
    if AVAILABLE_PATTERN.search(transcript):
        return Availability.IN_STOCK, 0
    if SPECIAL_ORDER_PATTERN.search(transcript):
        return Availability.SPECIAL_ORDER, None
    return Availability.UNKNOWN, None


def extract_quality(transcript: str) -> QualityTier:
    for pattern, tier in QUALITY_KEYWORDS:
        if pattern.search(transcript):
            return tier
    return QualityTier.UNKNOWN


def extract_quote(
    transcript: str,
    vendor_id: str,
    captured_at: datetime | None = None,
    thresholds: TranscriptThresholds | None = None,
) -> Quote:
    """Turn a call transcript into a VoiceCall quote.

    Extraction never fails: a transcript without a recognizable price still
    yields a quote, just with low confidence.

    Args:
        transcript: Full text of the vendor conversation.
        vendor_id: Vendor that was called.
        captured_at: Time the transcript was delivered. Defaults to now.
        thresholds: Confidence values to assign.

    Returns:
        Quote with source kind VOICE_CALL and the transcript as evidence.
    """
    thresholds = thresholds or TranscriptThresholds()
    price = extract_price(transcript)
    availability, delivery_days = extract_availability(transcript)
    return Quote(
        source_kind=SourceKind.VOICE_CALL,
        vendor_id=vendor_id,
        price=price,
        availability=availability,
        delivery_days=delivery_days,
        quality=extract_quality(transcript),
        confidence=thresholds.with_price if price is not None else thresholds.without_price,
        captured_at=captured_at or utcnow(),
        raw_evidence=transcript,
    )
