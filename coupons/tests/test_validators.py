from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from coupons.models import Coupon
from coupons.validators import (
    CouponInvalid,
    claim_coupon_use,
    discount_minor,
    find_coupon,
    release_coupon_use,
    validate_coupon,
)

pytestmark = pytest.mark.django_db


def test_code_is_stored_upper_case_and_found_case_insensitively(make_coupon):
    make_coupon(code='welcome50 ')
    assert find_coupon('Welcome50').code == 'WELCOME50'


def test_unknown_code(make_coupon):
    with pytest.raises(CouponInvalid) as exc:
        find_coupon('NOPE')
    assert exc.value.reason == CouponInvalid.NOT_FOUND


def test_percentage_discount_capped_at_max_discount(make_coupon):
    coupon = make_coupon(discount_value=Decimal('10'), max_discount=Decimal('150'))
    assert validate_coupon(coupon, Decimal('2000.00')) == Decimal('150.00')


def test_percentage_discount_rounds_half_up(make_coupon):
    coupon = make_coupon(discount_value=Decimal('12.5'))
    # 12.5% of 10.01 = 1.25125 -> 1.25
    assert validate_coupon(coupon, Decimal('10.01')) == Decimal('1.25')
    # 12.5% of 0.20 = 0.025 -> 0.03
    assert discount_minor(coupon, 20) == 3


def test_fixed_discount_never_exceeds_subtotal(make_coupon):
    coupon = make_coupon(discount_type=Coupon.DiscountType.FIXED, discount_value=Decimal('500'))
    assert validate_coupon(coupon, Decimal('300.00')) == Decimal('300.00')


def test_inactive_coupon(make_coupon):
    coupon = make_coupon(is_active=False)
    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(coupon, Decimal('1000'))
    assert exc.value.reason == CouponInvalid.INACTIVE


def test_activity_window_bounds(make_coupon):
    now = timezone.now()
    upcoming = make_coupon(code='SOON', start_date=now + timedelta(days=1))
    expired = make_coupon(code='OLD', end_date=now - timedelta(seconds=1))
    open_ended = make_coupon(code='OPEN', start_date=now - timedelta(days=1))

    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(upcoming, Decimal('1000'), now=now)
    assert exc.value.reason == CouponInvalid.NOT_STARTED

    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(expired, Decimal('1000'), now=now)
    assert exc.value.reason == CouponInvalid.EXPIRED

    assert validate_coupon(open_ended, Decimal('1000'), now=now) == Decimal('100.00')


def test_usage_exhausted(make_coupon):
    coupon = make_coupon(usage_limit=2, usage_count=2)
    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(coupon, Decimal('1000'))
    assert exc.value.reason == CouponInvalid.USAGE_EXHAUSTED


def test_per_user_limit(make_coupon):
    coupon = make_coupon(per_user_limit=1)
    assert validate_coupon(coupon, Decimal('1000'), user_usage_count=0) == Decimal('100.00')
    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(coupon, Decimal('1000'), user_usage_count=1)
    assert exc.value.reason == CouponInvalid.PER_USER_EXHAUSTED


def test_below_minimum_order_amount(make_coupon):
    coupon = make_coupon(min_order_amount=Decimal('5000'))
    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(coupon, Decimal('4999.99'))
    assert exc.value.reason == CouponInvalid.BELOW_MINIMUM
    assert validate_coupon(coupon, Decimal('5000.00')) == Decimal('500.00')


def test_claim_stops_at_usage_limit(make_coupon):
    coupon = make_coupon(usage_limit=1)
    assert claim_coupon_use(coupon) is True
    assert claim_coupon_use(coupon) is False
    coupon.refresh_from_db()
    assert coupon.usage_count == 1


def test_release_gives_back_a_use(make_coupon):
    coupon = make_coupon(usage_limit=1, usage_count=1)
    release_coupon_use(coupon)
    coupon.refresh_from_db()
    assert coupon.usage_count == 0
    release_coupon_use(coupon)
    coupon.refresh_from_db()
    assert coupon.usage_count == 0
