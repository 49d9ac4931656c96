"""Shop settings collaborator."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from quotesourcing.config import ShopConfig


class ShopSettings(Protocol):
    """Labor rate and markup policy owned by the shop."""

    @property
    def labor_rate(self) -> Decimal: ...

    @property
    def labor_multiplier(self) -> Decimal: ...

    @property
    def parts_markup(self) -> Decimal: ...


@dataclass(frozen=True)
class StaticShopSettings:
    labor_rate: Decimal = Decimal("100")
    labor_multiplier: Decimal = Decimal("1.0")
    parts_markup: Decimal = Decimal("0")

    @classmethod
    def from_config(cls, shop: ShopConfig) -> "StaticShopSettings":
        return cls(
            labor_rate=Decimal(str(shop.labor_rate)),
            labor_multiplier=Decimal(str(shop.labor_multiplier)),
            parts_markup=Decimal(str(shop.parts_markup)),
        )


def customer_estimate(
    settings: ShopSettings,
    price: Decimal | None = None,
    labor_hours: Decimal | None = None,
) -> Decimal:
    """Customer-facing cost of a quote: marked-up parts plus labor at the shop rate.

    Args:
        settings: Shop rate and markup policy.
        price: Raw part price, if any.
        labor_hours: Raw labor hours, if any.

    Returns:
        Estimate rounded to cents.
    """
    total = Decimal("0")
    if price is not None:
        total += price * (Decimal("1") + settings.parts_markup / Decimal("100"))
    if labor_hours is not None:
        total += labor_hours * settings.labor_rate
    return total.quantize(Decimal("0.01"))
