"""
Checkout and order API views.

Security features:
- Rate limiting on checkout, payment verification and order actions
- Customers see and cancel only their own orders; staff see all
- Only staff change order status
- Audit log entry for every state-changing call
"""

import logging

from django.conf import settings
from django.utils.decorators import method_decorator
from django_filters.rest_framework import DjangoFilterBackend
from django_ratelimit.decorators import ratelimit
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from audit.models import AuditLog
from audit.utils import log_action
from cart.services import get_cart_lines

from .checkout import CheckoutOrchestrator, CheckoutRequest
from .confirmation import PaymentConfirmationHandler
from .exceptions import AdapterError, CheckoutValidationError, InvalidTransition, OrderError
from .models import Order
from .retry import call_with_retry
from .serializers import (
    CheckoutRequestSerializer,
    OrderCancelSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentConfirmationSerializer,
    ShippingQuoteSerializer,
)
from .shipping import get_shipping_carrier, quote_shipping
from .state_machine import ConcurrentTransition, transition

logger = logging.getLogger(__name__)


def error_response(error: OrderError) -> Response:
    return Response({'detail': error.message, 'code': error.code}, status=error.status_code)


def conflict_response() -> Response:
    return Response(
        {'detail': 'Order was changed by another request. Please retry.', 'code': 'CONFLICT'},
        status=status.HTTP_409_CONFLICT,
    )


@method_decorator(ratelimit(key='ip', rate='10/m', method='POST'), name='post')
class CheckoutView(APIView):
    """
    Place an order from the request body or the caller's cart.

    Guests are identified by the cart session cookie.
    """

    permission_classes = [AllowAny]

    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = request.user if request.user.is_authenticated else None
        session_key = request.COOKIES.get(settings.CART_SESSION_COOKIE)
        lines = serializer.cart_lines()
        if lines is None:
            lines = get_cart_lines(user=user, session_key=session_key)

        checkout_request = CheckoutRequest(
            lines=lines,
            shipping_address=data['shipping_address'],
            billing_address=data.get('billing_address'),
            payment_method=data['payment_method'],
            coupon_code=data.get('coupon_code') or None,
            notes=data.get('notes', ''),
            idempotency_key=request.headers.get('Idempotency-Key') or data.get('idempotency_key') or None,
            user=user,
            cart_session_key=session_key,
        )

        try:
            result = CheckoutOrchestrator().checkout(checkout_request)
        except OrderError as e:
            log_action(request, 'CHECKOUT', 'ORDER', None, AuditLog.Status.FAILURE, {'code': e.code, 'error': e.message})
            return error_response(e)
        except ConcurrentTransition:
            log_action(request, 'CHECKOUT', 'ORDER', None, AuditLog.Status.FAILURE, {'code': 'CONFLICT'})
            return conflict_response()

        log_action(
            request, 'CHECKOUT', 'ORDER', str(result.order.pk), AuditLog.Status.SUCCESS,
            {'order_number': result.order.order_number, 'total': str(result.order.total), 'replayed': result.replayed},
        )
        return Response(
            result.as_dict(),
            status=status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED,
        )


@method_decorator(ratelimit(key='ip', rate='20/m', method='POST'), name='post')
class PaymentVerificationView(APIView):
    """Payment callback from the gateway webhook or the client redirect."""

    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PaymentConfirmationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = PaymentConfirmationHandler().confirm(
                order_id=data['order_id'],
                gateway_order_id=data['gateway_order_id'],
                gateway_payment_id=data['gateway_payment_id'],
                signature=data['signature'],
            )
        except OrderError as e:
            log_action(
                request, 'VERIFY_PAYMENT', 'ORDER', str(data['order_id']), AuditLog.Status.FAILURE,
                {'code': e.code, 'gateway_payment_id': data['gateway_payment_id']},
            )
            return error_response(e)
        except ConcurrentTransition:
            return conflict_response()

        log_action(
            request, 'VERIFY_PAYMENT', 'ORDER', str(result.order.pk), AuditLog.Status.SUCCESS,
            {'gateway_payment_id': data['gateway_payment_id'], 'already_paid': result.already_paid},
        )
        return Response(result.as_dict())


@method_decorator(ratelimit(key='ip', rate='30/m', method='POST'), name='post')
class ShippingQuoteView(APIView):
    """
    Delivery availability and shipping charge for a pincode.

    Falls back to the standard checkout charge when the carrier is unavailable.
    """

    permission_classes = [AllowAny]

    def post(self, request):
        serializer = ShippingQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        return Response(quote_shipping(
            data['pincode'],
            data['cart_total'],
            weight_kg=data.get('weight'),
            cod=data['cod'],
        ))


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Orders of the signed-in customer (all orders for staff).

    Filterable by ``status`` and ``payment_status``.
    """

    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['status', 'payment_status', 'payment_method']

    def get_queryset(self):
        queryset = Order.objects.prefetch_related('items', 'timeline')
        if self.request.user.is_staff:
            return queryset
        return queryset.for_customer(self.request.user)

    @action(detail=True, methods=['post'])
    @method_decorator(ratelimit(key='user', rate='10/m', method='POST'))
    def cancel(self, request, pk=None):
        """
        Cancel an order that has not shipped yet; committed stock is restored once.
        """
        order = self.get_object()
        if not order.can_be_cancelled():
            return error_response(InvalidTransition(f"Order cannot be cancelled in current status: {order.status}."))

        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data['reason']

        try:
            transition(
                order,
                status=Order.OrderStatus.CANCELLED,
                description=reason or "Order cancelled at customer request.",
            )
        except OrderError as e:
            log_action(request, 'CANCEL', 'ORDER', str(order.pk), AuditLog.Status.FAILURE, {'code': e.code})
            return error_response(e)
        except ConcurrentTransition:
            return conflict_response()

        log_action(request, 'CANCEL', 'ORDER', str(order.pk), AuditLog.Status.SUCCESS, {'reason': reason})
        return Response({
            'detail': 'Order cancelled successfully.',
            'order': OrderSerializer(order).data,
        })

    @action(detail=True, methods=['post'], permission_classes=[IsAdminUser])
    @method_decorator(ratelimit(key='user', rate='30/m', method='POST'))
    def update_status(self, request, pk=None):
        """
        Move an order along its lifecycle (staff only).

        Accepts a new status and/or payment status, an optional timeline
        title/description/location and carrier details (AWB, courier,
        tracking URL) written in the same change.
        """
        order = self.get_object()
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        previous_status = order.status

        try:
            changed = transition(
                order,
                status=data.get('status'),
                payment_status=data.get('payment_status'),
                title=data.get('title'),
                description=data['description'],
                location=data['location'],
                extra_fields=serializer.extra_fields(),
                append_entry=data['append_entry'],
            )
        except OrderError as e:
            log_action(
                request, 'UPDATE_STATUS', 'ORDER', str(order.pk), AuditLog.Status.FAILURE,
                {
                    'code': e.code,
                    'requested': data.get('status'),
                    'requested_payment': data.get('payment_status'),
                    'previous_status': previous_status,
                },
            )
            return error_response(e)
        except ConcurrentTransition:
            return conflict_response()

        log_action(
            request, 'UPDATE_STATUS', 'ORDER', str(order.pk), AuditLog.Status.SUCCESS,
            {
                'new_status': order.status,
                'payment_status': order.payment_status,
                'previous_status': previous_status,
                'changed': changed,
            },
        )
        return Response({
            'detail': 'Order status updated successfully.' if changed else 'Order status unchanged.',
            'order': OrderSerializer(order).data,
        })

    @action(detail=True, methods=['get'])
    def tracking(self, request, pk=None):
        """Live carrier status for the order's air waybill."""
        order = self.get_object()
        if not order.awb_number:
            return error_response(CheckoutValidationError("Tracking is not available for this order yet."))

        try:
            info = call_with_retry(get_shipping_carrier().track, order.awb_number)
        except AdapterError as e:
            logger.warning(f"Tracking lookup failed for {order.order_number}: {e}")
            return Response(
                {'detail': 'Tracking service is unavailable. Please try again later.', 'code': 'TRACKING_UNAVAILABLE'},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response({
            'order_number': order.order_number,
            'awb_number': order.awb_number,
            'courier_name': order.courier_name,
            'tracking_url': order.tracking_url,
            'status': info.status,
            'tracking': info.raw,
        })
