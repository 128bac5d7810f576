"""
Checkout orchestration.

Turns cart lines into a priced PENDING order and then either opens a payment
intent with the gateway (online payment) or confirms the order straight away
(cash on delivery).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from catalog.money import to_minor
from catalog.refs import CartLine, PrebuiltPCRef, ProductRef
from catalog.services import CatalogItemNotFound, resolve_line
from cart.services import clear_cart
from coupons.validators import CouponInvalid, claim_coupon_use, find_coupon, release_coupon_use

from .exceptions import AdapterError, CheckoutValidationError, InventoryConflict, OutOfStock, PaymentInitFailed
from .gateways import GatewayIntent, PaymentGatewayAdapter, get_payment_gateway
from .inventory import InventoryLedger
from .models import Order, OrderItem
from .pricing import price_cart
from .retry import call_with_retry
from .shipping import enqueue_shipment
from .state_machine import record_placed, transition

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {
    'COD': Order.PaymentMethod.CASH_ON_DELIVERY,
    'CASH_ON_DELIVERY': Order.PaymentMethod.CASH_ON_DELIVERY,
    'ONLINE': Order.PaymentMethod.ONLINE,
}

REQUIRED_ADDRESS_FIELDS = ('full_name', 'mobile', 'address_line1', 'city', 'state', 'pincode')


@dataclass
class CheckoutRequest:
    lines: List[CartLine]
    shipping_address: dict
    payment_method: str
    billing_address: Optional[dict] = None
    coupon_code: Optional[str] = None
    notes: str = ''
    idempotency_key: Optional[str] = None
    user: object = None
    cart_session_key: Optional[str] = None


@dataclass
class CheckoutResult:
    order: Order
    gateway_intent: Optional[GatewayIntent] = None
    coupon_error: Optional[CouponInvalid] = None
    replayed: bool = False

    def as_dict(self):
        data = {
            'order_id': self.order.pk,
            'order_number': self.order.order_number,
            'total': str(self.order.total),
            'payment_method': self.order.payment_method,
            'status': self.order.status,
            'payment_status': self.order.payment_status,
            'gateway_intent': self.gateway_intent.as_dict() if self.gateway_intent else None,
        }
        if self.coupon_error is not None:
            data['coupon_error'] = {'code': self.coupon_error.reason, 'detail': self.coupon_error.message}
        return data


def _validate_address(address, label):
    if not isinstance(address, dict):
        raise CheckoutValidationError(f"{label} address is required.")
    missing = [name for name in REQUIRED_ADDRESS_FIELDS if not str(address.get(name) or '').strip()]
    if missing:
        raise CheckoutValidationError(f"{label} address is missing: {', '.join(missing)}.", fields=missing)


class CheckoutOrchestrator:

    def __init__(self, gateway: Optional[PaymentGatewayAdapter] = None, ledger: Optional[InventoryLedger] = None):
        self._gateway = gateway
        self.ledger = ledger or InventoryLedger()

    @property
    def gateway(self) -> PaymentGatewayAdapter:
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    def checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """
        Place an order.

        Raises:
            CheckoutValidationError: empty cart, bad address, unknown item or payment method
            OutOfStock: a line cannot be covered by current stock
            PaymentInitFailed: the gateway could not open a payment; no order remains
        """
        payment_method = self._validate(request)

        if request.idempotency_key:
            existing = self._find_replay(request)
            if existing is not None:
                return existing

        try:
            lines = [resolve_line(line) for line in request.lines]
        except CatalogItemNotFound as e:
            raise CheckoutValidationError(str(e), item=f"{e.ref.kind}:{e.ref.id}")

        coupon, coupon_error, prior_uses = None, None, None
        if request.coupon_code:
            try:
                coupon = find_coupon(request.coupon_code)
            except CouponInvalid as e:
                coupon_error = e
            else:
                if request.user is not None and request.user.is_authenticated:
                    prior_uses = Order.objects.coupon_uses_by(request.user, coupon.code)

        quote = price_cart(lines, coupon=coupon, user_usage_count=prior_uses)
        self.ledger.reserve(lines)
        coupon_error = coupon_error or quote.coupon_error

        try:
            with transaction.atomic():
                coupon_claimed = False
                if quote.coupon_discount_minor > 0:
                    coupon_claimed = claim_coupon_use(coupon)
                    if not coupon_claimed:
                        coupon_error = CouponInvalid(
                            CouponInvalid.USAGE_EXHAUSTED, "This coupon has reached its usage limit.",
                        )
                        quote = price_cart(lines)
                order = self._create_order(request, payment_method, lines, quote, coupon if coupon_claimed else None)
        except IntegrityError:
            replay = self._find_replay(request) if request.idempotency_key else None
            if replay is None:
                raise
            return replay

        logger.info(
            f"Order {order.order_number} placed: total {order.total} "
            f"{settings.CHECKOUT_CURRENCY}, {order.payment_method}"
        )

        if payment_method == Order.PaymentMethod.ONLINE:
            intent = self._open_payment(order, coupon_claimed, coupon)
            return CheckoutResult(order=order, gateway_intent=intent, coupon_error=coupon_error)

        self._confirm_cash_on_delivery(order, coupon_claimed, coupon)
        clear_cart(user=request.user, session_key=request.cart_session_key)
        return CheckoutResult(order=order, coupon_error=coupon_error)

    def _validate(self, request):
        if not request.lines:
            raise CheckoutValidationError("Cart is empty.")
        if any(line.quantity < 1 for line in request.lines):
            raise CheckoutValidationError("Quantity must be at least 1.")
        payment_method = PAYMENT_METHODS.get(str(request.payment_method or '').upper())
        if payment_method is None:
            raise CheckoutValidationError(f"Unsupported payment method: {request.payment_method}.")
        _validate_address(request.shipping_address, "Shipping")
        if request.billing_address:
            _validate_address(request.billing_address, "Billing")
        return payment_method

    def _find_replay(self, request) -> Optional[CheckoutResult]:
        order = Order.objects.filter(idempotency_key=request.idempotency_key).first()
        if order is None:
            return None
        user_id = request.user.pk if request.user is not None and request.user.is_authenticated else None
        if order.user_id != user_id:
            raise CheckoutValidationError("Idempotency key has already been used.")

        intent = None
        if order.payment_method == Order.PaymentMethod.ONLINE and order.gateway_order_id:
            intent = GatewayIntent(
                intent_id=order.gateway_order_id,
                client_secret=getattr(self.gateway, 'key_id', ''),
                amount_minor=to_minor(order.total),
                currency=settings.CHECKOUT_CURRENCY,
            )
        logger.info(f"Checkout replayed for idempotency key {request.idempotency_key}: {order.order_number}")
        return CheckoutResult(order=order, gateway_intent=intent, replayed=True)

    def _create_order(self, request, payment_method, lines, quote, coupon) -> Order:
        user = request.user if request.user is not None and request.user.is_authenticated else None
        order = Order.objects.create(
            user=user,
            cart_session_key=request.cart_session_key or '',
            idempotency_key=request.idempotency_key or None,
            payment_method=payment_method,
            payment_status=(
                Order.PaymentStatus.COD_PENDING
                if payment_method == Order.PaymentMethod.CASH_ON_DELIVERY
                else Order.PaymentStatus.PENDING
            ),
            subtotal=quote.subtotal,
            discount=quote.discount,
            coupon_discount=quote.coupon_discount,
            shipping_charge=quote.shipping_charge,
            tax=quote.tax,
            coupon=coupon,
            coupon_code=coupon.code if coupon else '',
            shipping_address=request.shipping_address,
            billing_address=request.billing_address or None,
            customer_notes=request.notes or '',
        )
        for line in lines:
            OrderItem.objects.create(
                order=order,
                product_id=line.ref.id if isinstance(line.ref, ProductRef) else None,
                prebuilt_pc_id=line.ref.id if isinstance(line.ref, PrebuiltPCRef) else None,
                variation_id=line.variation_id,
                name=line.entry.name,
                sku=line.entry.sku,
                variation_name=line.variation_name or '',
                unit_price=line.unit_price,
                quantity=line.quantity,
            )
        record_placed(order)
        return order

    def _discard(self, order, coupon_claimed, coupon):
        with transaction.atomic():
            order.delete()
            if coupon_claimed:
                release_coupon_use(coupon)
        logger.info(f"Order {order.order_number} discarded")

    def _open_payment(self, order, coupon_claimed, coupon) -> GatewayIntent:
        try:
            intent = call_with_retry(
                self.gateway.create_intent,
                to_minor(order.total),
                settings.CHECKOUT_CURRENCY,
                order.order_number,
                metadata={'order_id': order.pk, 'order_number': order.order_number},
            )
        except AdapterError as e:
            logger.error(f"Payment intent creation failed for {order.order_number}: {e}")
            self._discard(order, coupon_claimed, coupon)
            raise PaymentInitFailed()

        Order.objects.filter(pk=order.pk).update(gateway_order_id=intent.intent_id)
        order.gateway_order_id = intent.intent_id
        return intent

    def _confirm_cash_on_delivery(self, order, coupon_claimed, coupon):
        try:
            with transaction.atomic():
                self.ledger.commit(order)
                transition(
                    order,
                    status=Order.OrderStatus.CONFIRMED,
                    description="Your cash on delivery order has been confirmed.",
                    ledger=self.ledger,
                )
                enqueue_shipment(order)
        except InventoryConflict as e:
            logger.warning(f"Stock ran out while confirming {order.order_number}: {e}")
            self._discard(order, coupon_claimed, coupon)
            raise OutOfStock()
