"""
Coupon validation and discount calculation.

A coupon that fails validation never blocks checkout: callers catch
CouponInvalid and continue with a zero discount, keeping the reason for
display.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.db.models import F, Q
from django.utils import timezone

from catalog.money import round_minor, to_major, to_minor

from .models import Coupon

logger = logging.getLogger(__name__)


class CouponInvalid(Exception):
    """Raised when a coupon cannot be applied to a given order."""

    NOT_FOUND = 'NOT_FOUND'
    INACTIVE = 'INACTIVE'
    NOT_STARTED = 'NOT_STARTED'
    EXPIRED = 'EXPIRED'
    USAGE_EXHAUSTED = 'USAGE_EXHAUSTED'
    PER_USER_EXHAUSTED = 'PER_USER_EXHAUSTED'
    BELOW_MINIMUM = 'BELOW_MINIMUM'

    def __init__(self, reason: str, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


def find_coupon(code: str) -> Coupon:
    """Look a coupon up by code, ignoring case and surrounding whitespace."""
    coupon = Coupon.objects.filter(code__iexact=(code or '').strip()).first()
    if coupon is None:
        raise CouponInvalid(CouponInvalid.NOT_FOUND, "Invalid coupon code.")
    return coupon


def discount_minor(coupon: Coupon, subtotal_minor: int) -> int:
    """
    Discount in minor units for a subtotal in minor units.

    Percentage discounts are capped at max_discount when it is set; no
    discount ever exceeds the subtotal.
    """
    if coupon.discount_type == Coupon.DiscountType.PERCENTAGE:
        amount = round_minor(Decimal(subtotal_minor) * coupon.discount_value / 100)
        if coupon.max_discount is not None:
            amount = min(amount, to_minor(coupon.max_discount))
    else:
        amount = to_minor(coupon.discount_value)
    return max(0, min(amount, subtotal_minor))


def check_applicable(
    coupon: Coupon,
    subtotal_minor: int,
    now: Optional[datetime] = None,
    user_usage_count: Optional[int] = None,
) -> None:
    """Raise CouponInvalid with the first unmet condition, in display priority order."""
    now = now or timezone.now()

    if not coupon.is_active:
        raise CouponInvalid(CouponInvalid.INACTIVE, "This coupon is no longer active.")
    if coupon.start_date and coupon.start_date > now:
        raise CouponInvalid(CouponInvalid.NOT_STARTED, "This coupon is not yet active.")
    if coupon.end_date and coupon.end_date < now:
        raise CouponInvalid(CouponInvalid.EXPIRED, "This coupon has expired.")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise CouponInvalid(CouponInvalid.USAGE_EXHAUSTED, "This coupon has reached its usage limit.")
    if (
        user_usage_count is not None
        and coupon.per_user_limit
        and user_usage_count >= coupon.per_user_limit
    ):
        raise CouponInvalid(CouponInvalid.PER_USER_EXHAUSTED, "You have already used this coupon.")
    if coupon.min_order_amount is not None and subtotal_minor < to_minor(coupon.min_order_amount):
        raise CouponInvalid(
            CouponInvalid.BELOW_MINIMUM,
            f"Minimum order amount of {coupon.min_order_amount} required.",
        )


def validate_coupon(
    coupon: Coupon,
    subtotal: Decimal,
    now: Optional[datetime] = None,
    user_usage_count: Optional[int] = None,
) -> Decimal:
    """
    Validate a coupon against a candidate subtotal.

    Args:
        coupon: Coupon being applied
        subtotal: Order subtotal in major units
        now: Evaluation time (defaults to timezone.now())
        user_usage_count: Prior uses by the signed-in customer, if known

    Returns:
        Decimal: discount amount in major units

    Raises:
        CouponInvalid: when any applicability condition is unmet
    """
    subtotal_minor = to_minor(subtotal)
    check_applicable(coupon, subtotal_minor, now=now, user_usage_count=user_usage_count)
    return to_major(discount_minor(coupon, subtotal_minor))


def claim_coupon_use(coupon: Coupon) -> bool:
    """
    Consume one use of the coupon.

    Returns False (and changes nothing) when a concurrent checkout took the
    last available use first.
    """
    claimed = Coupon.objects.filter(pk=coupon.pk).filter(
        Q(usage_limit__isnull=True) | Q(usage_count__lt=F('usage_limit'))
    ).update(usage_count=F('usage_count') + 1)
    if not claimed:
        logger.info(f"Coupon {coupon.code} ran out of uses during checkout")
    return bool(claimed)


def release_coupon_use(coupon: Coupon) -> None:
    """Give back a use consumed by an order that was rolled back."""
    Coupon.objects.filter(pk=coupon.pk, usage_count__gt=0).update(usage_count=F('usage_count') - 1)
