"""Weighted multi-factor quote selection."""

import logging
from decimal import Decimal

from quotesourcing.config import ScoringTables, SelectionWeights
from quotesourcing.directory import GENERAL_SPECIALTY, VendorDirectory
from quotesourcing.errors import SelectionError, SelectionErrorReason
from quotesourcing.models import (
    Alternative,
    Availability,
    QualityTier,
    Quote,
    Recommendation,
    ScoreBreakdown,
    ScoredQuote,
    SelectionContext,
    SourceKind,
    Urgency,
    VehicleClass,
)

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3
NEUTRAL_SCORE = 50.0

SOURCE_LABELS = {
    SourceKind.STATIC_DATABASE: "the shop labor catalog",
    SourceKind.REMOTE_PROCEDURE: "the Nexpart API",
    SourceKind.SCRAPED: "the vendor website",
    SourceKind.VOICE_CALL: "a vendor phone call",
}


def clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


class SelectionEngine:
    """Scores competing quotes and recommends one.

    Scoring is a pure function of the quote, the request context, the
    configured weights and tables, and the vendor directory.
    """

    def __init__(
        self,
        weights: SelectionWeights | None = None,
        tables: ScoringTables | None = None,
        directory: VendorDirectory | None = None,
    ):
        """Initialize engine.

        Args:
            weights: Factor weights. Uses defaults if None.
            tables: Availability/quality tables and price decay. Uses defaults if None.
            directory: Vendor directory for the relationship score.

        Raises:
            ConfigError: If weights or tables fail validation.
        """
        self.weights = weights or SelectionWeights()
        self.tables = tables or ScoringTables()
        self.weights.validate()
        self.tables.validate()
        self.directory = directory or VendorDirectory()

    def price_score(self, quote: Quote, context: SelectionContext) -> float:
        if quote.price is None:
            return NEUTRAL_SCORE
        if context.urgency == Urgency.URGENT:
            return clamp(self.tables.urgent_price_score)
        divisor = self.tables.budget_price_divisor if context.budget_sensitive else self.tables.price_divisor
        return clamp(100 - float(quote.price) / divisor)

    def availability_score(self, quote: Quote, context: SelectionContext) -> float:
        score = self.tables.availability.get(quote.availability, NEUTRAL_SCORE)
        if context.urgency == Urgency.URGENT:
            score += 20 if quote.availability == Availability.IN_STOCK else -30
        return clamp(score)

    def delivery_score(self, quote: Quote, context: SelectionContext) -> float:
        days = quote.delivery_days
        if days is None:
            return NEUTRAL_SCORE
        if days == 0:
            score = 100.0
        elif days <= 1:
            score = 85.0
        elif days <= 3:
            score = 60.0
        elif days <= 7:
            score = 30.0
        else:
            score = 10.0

        if context.urgency == Urgency.URGENT:
            if days <= 1:
                score += 20
            elif days > 2:
                score -= 40
        return clamp(score)

    def quality_score(self, quote: Quote, context: SelectionContext) -> float:
        tier = quote.quality
        score = self.tables.quality.get(tier, NEUTRAL_SCORE)
        age = context.vehicle_age_years

        # Newer vehicles favor OEM
        if age is not None and age < 3:
            if tier == QualityTier.OEM:
                score += 20
            elif tier not in (QualityTier.OEM_EQUIVALENT, QualityTier.PREMIUM):
                score -= 20

        if age is not None and age > 10 and tier in (QualityTier.ECONOMY, QualityTier.STANDARD):
            score += 10

        if context.vehicle_class in (VehicleClass.LUXURY, VehicleClass.PERFORMANCE):
            if tier in (QualityTier.OEM, QualityTier.PREMIUM):
                score += 15
            elif tier == QualityTier.ECONOMY:
                score -= 30

        preference = (context.quality_preference or "").strip().lower()
        if preference and tier != QualityTier.UNKNOWN and preference in tier.value.lower():
            score += 25
        return clamp(score)

    def relationship_score(self, quote: Quote, context: SelectionContext) -> float:
        vendor = self.directory.get(quote.vendor_id)
        if vendor is None:
            return NEUTRAL_SCORE
        score = 50.0 + (10 - vendor.priority) * 5
        if vendor.priority <= 2:
            score += 20
        if vendor.specialty and vendor.specialty != GENERAL_SPECIALTY:
            score += 10
        return clamp(score)

    def score(self, quote: Quote, context: SelectionContext | None = None) -> ScoredQuote:
        """Compute sub-scores and the weighted overall score for one quote."""
        context = context or SelectionContext()
        breakdown = ScoreBreakdown(
            price=self.price_score(quote, context),
            availability=self.availability_score(quote, context),
            delivery=self.delivery_score(quote, context),
            quality=self.quality_score(quote, context),
            relationship=self.relationship_score(quote, context),
        )
        weights = self.weights.as_dict()
        total = sum(value * weights[name] for name, value in breakdown.as_dict().items())
        return ScoredQuote(quote=quote, overall_score=clamp(round(total, 2)), breakdown=breakdown)

    def rank(self, quotes: list[Quote], context: SelectionContext | None = None) -> list[ScoredQuote]:
        """Score and order quotes best first.

        Ties on overall score go to higher confidence, then lower price
        (priced quotes ahead of unpriced), then input order.
        """
        scored = [self.score(q, context) for q in quotes]
        order = sorted(
            range(len(scored)),
            key=lambda i: (
                -scored[i].overall_score,
                -scored[i].quote.confidence,
                scored[i].quote.price is None,
                scored[i].quote.price if scored[i].quote.price is not None else Decimal("0"),
                i,
            ),
        )
        return [scored[i] for i in order]

    def select(self, quotes: list[Quote], context: SelectionContext | None = None) -> Recommendation:
        """Recommend the best quote with up to three alternatives.

        Args:
            quotes: Candidate quotes for the same request. Must not be empty.
            context: Request-time context (urgency, budget, vehicle).

        Returns:
            Recommendation with the winner, alternatives and a rationale.

        Raises:
            SelectionError: NO_CANDIDATES if quotes is empty.
        """
        if not quotes:
            raise SelectionError(SelectionErrorReason.NO_CANDIDATES, "select() requires at least one quote")
        context = context or SelectionContext()
        ranked = self.rank(quotes, context)
        best = ranked[0]
        alternatives = tuple(
            Alternative(scored=s, reason=self._alternative_reason(s, best)) for s in ranked[1 : 1 + MAX_ALTERNATIVES]
        )
        return Recommendation(
            best=best,
            alternatives=alternatives,
            rationale=self._rationale(best, ranked, context),
        )

    def _alternative_reason(self, candidate: ScoredQuote, best: ScoredQuote) -> str:
        alt, top = candidate.quote, best.quote
        if alt.price is not None and top.price is not None and alt.price < top.price * Decimal("0.9"):
            return "cheaper"
        if alt.availability == Availability.IN_STOCK and top.availability != Availability.IN_STOCK:
            return "better availability"
        if alt.delivery_days is not None and (top.delivery_days is None or alt.delivery_days < top.delivery_days):
            return "faster delivery"
        if self.tables.quality.get(alt.quality, 0) > self.tables.quality.get(top.quality, 0):
            return "higher quality"
        return "close overall score"

    def source_name(self, quote: Quote) -> str:
        vendor = self.directory.get(quote.vendor_id)
        if vendor is not None:
            return vendor.name
        return quote.vendor_id or SOURCE_LABELS[quote.source_kind]

    def _describe_factor(self, factor: str, score: float, quote: Quote) -> str:
        if factor == "price":
            return "Excellent price point" if score >= 80 else "Reasonable price"
        if factor == "availability":
            return "Part is in stock and ready" if score >= 90 else "Good availability"
        if factor == "delivery":
            return "Fastest delivery time" if score >= 90 else "Reasonable delivery time"
        if factor == "quality":
            if score >= 90:
                return f"High-quality part ({quote.quality.value})"
            return "Good quality"
        return "Excellent relationship with this vendor" if score >= 80 else "Good working relationship"

    def _rationale(self, best: ScoredQuote, ranked: list[ScoredQuote], context: SelectionContext) -> str:
        quote = best.quote
        factors = sorted(best.breakdown.as_dict().items(), key=lambda item: item[1], reverse=True)
        top_factor, top_score = factors[0]
        cited = [(top_factor, top_score)]
        second_factor, second_score = factors[1]
        if second_score >= 70 and second_score >= top_score - 10:
            cited.append((second_factor, second_score))
        reasons = "; ".join(self._describe_factor(f, s, quote) for f, s in cited)

        sentences = [f"Recommended: {self.source_name(quote)} (score {best.overall_score:.2f}). {reasons}."]

        prices = [s.quote.price for s in ranked if s.quote.price is not None]
        if quote.price is not None and quote.price <= min(prices) * Decimal("1.1"):
            sentences.append(f"The price of ${quote.price:.2f} is competitive with the other options.")

        if quote.availability == Availability.IN_STOCK:
            if context.urgency == Urgency.URGENT:
                sentences.append("The part is available immediately, which is critical for this urgent job.")
            else:
                sentences.append("The part is available immediately.")

        if context.urgency == Urgency.URGENT:
            sentences.append("Availability and delivery speed were prioritized over the lowest price.")
        elif context.budget_sensitive:
            sentences.append("This balances price and quality within the budget.")
        else:
            sentences.append("This offers the best overall value considering price, quality, and availability.")
        return " ".join(sentences)
