"""
Cart pricing.

All arithmetic is done in integer minor units; fractional minor units are
rounded half-up where they first appear (percentage coupon, tax).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from django.conf import settings

from catalog.money import round_minor, to_major, to_minor
from catalog.services import ResolvedLine
from coupons.validators import CouponInvalid, check_applicable, discount_minor

from .exceptions import OutOfStock


@dataclass(frozen=True)
class Quote:
    """Priced cart, in minor units."""
    subtotal_minor: int
    discount_minor: int
    coupon_discount_minor: int
    shipping_minor: int
    tax_minor: int
    coupon_error: Optional[CouponInvalid] = None

    @property
    def total_minor(self) -> int:
        return (
            self.subtotal_minor
            - self.discount_minor
            - self.coupon_discount_minor
            + self.shipping_minor
            + self.tax_minor
        )

    @property
    def subtotal(self) -> Decimal:
        return to_major(self.subtotal_minor)

    @property
    def discount(self) -> Decimal:
        return to_major(self.discount_minor)

    @property
    def coupon_discount(self) -> Decimal:
        return to_major(self.coupon_discount_minor)

    @property
    def shipping_charge(self) -> Decimal:
        return to_major(self.shipping_minor)

    @property
    def tax(self) -> Decimal:
        return to_major(self.tax_minor)

    @property
    def total(self) -> Decimal:
        return to_major(self.total_minor)


def ensure_in_stock(lines: List[ResolvedLine]) -> None:
    for line in lines:
        entry = line.entry
        if not entry.is_in_stock or (
            entry.available_stock is not None and line.quantity > entry.available_stock
        ):
            raise OutOfStock(
                f"{entry.name} is out of stock or has insufficient quantity.",
                item=f"{entry.ref.kind}:{entry.ref.id}",
            )


def shipping_for(subtotal_minor: int) -> int:
    if subtotal_minor >= to_minor(settings.CHECKOUT_FREE_SHIPPING_THRESHOLD):
        return 0
    return to_minor(settings.CHECKOUT_FLAT_SHIPPING_CHARGE)


def price_cart(lines: List[ResolvedLine], coupon=None, now=None, user_usage_count=None) -> Quote:
    """
    Price resolved cart lines.

    An inapplicable coupon does not fail pricing: the quote carries a zero
    coupon discount and the CouponInvalid in ``coupon_error``.

    Raises:
        OutOfStock: when any line is unavailable or exceeds available stock
    """
    ensure_in_stock(lines)

    subtotal = sum(to_minor(line.unit_price) * line.quantity for line in lines)

    coupon_amount = 0
    coupon_error = None
    if coupon is not None:
        try:
            check_applicable(coupon, subtotal, now=now, user_usage_count=user_usage_count)
            coupon_amount = discount_minor(coupon, subtotal)
        except CouponInvalid as e:
            coupon_error = e

    tax = round_minor(Decimal(subtotal - coupon_amount) * Decimal(str(settings.CHECKOUT_TAX_RATE)))

    return Quote(
        subtotal_minor=subtotal,
        discount_minor=0,
        coupon_discount_minor=coupon_amount,
        shipping_minor=shipping_for(subtotal),
        tax_minor=tax,
        coupon_error=coupon_error,
    )
