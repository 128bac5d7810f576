"""
Coupon preview endpoint.

Lets the checkout page show the discount a code would give before the order
is placed. The real discount is recomputed server-side during checkout.
"""

from django_ratelimit.decorators import ratelimit
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from catalog.money import to_minor

from .serializers import CouponPreviewSerializer
from .validators import CouponInvalid, find_coupon, validate_coupon


def _prior_uses(request, coupon):
    # Imported lazily: orders depends on coupons, not the other way round.
    from orders.models import Order

    if not request.user.is_authenticated:
        return None
    return Order.objects.coupon_uses_by(request.user, coupon.code)


@api_view(['POST'])
@permission_classes([AllowAny])
@ratelimit(key='ip', rate='30/m', method='POST')
def preview_coupon(request):
    """
    Validate a coupon code against a cart total.

    Returns the discount on success, or a 400 with a machine-readable reason.
    """
    serializer = CouponPreviewSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    code = serializer.validated_data['code']
    cart_total = serializer.validated_data['cart_total']

    try:
        coupon = find_coupon(code)
        discount = validate_coupon(coupon, cart_total, user_usage_count=_prior_uses(request, coupon))
    except CouponInvalid as e:
        return Response(
            {'valid': False, 'detail': e.message, 'code': e.reason},
            status=status.HTTP_400_BAD_REQUEST,
        )

    return Response({
        'valid': True,
        'coupon': {
            'code': coupon.code,
            'description': coupon.description,
            'discount_type': coupon.discount_type,
            'discount_value': str(coupon.discount_value),
            'max_discount': str(coupon.max_discount) if coupon.max_discount is not None else None,
            'min_order_amount': str(coupon.min_order_amount) if coupon.min_order_amount is not None else None,
        },
        'discount': str(discount),
        'applies': to_minor(discount) > 0,
    })
