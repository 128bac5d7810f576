"""
Payment confirmation.

Safe to call any number of times for the same payment: the webhook and the
client redirect may both deliver it. Only the call that moves the order from
unpaid to PAID commits stock, clears the cart and queues the shipment.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction

from cart.services import clear_cart

from .exceptions import InvalidOperation, InvalidTransition, InventoryConflict, OrderNotFound, VerificationFailed
from .gateways import PaymentGatewayAdapter, get_payment_gateway
from .inventory import InventoryLedger
from .models import Order
from .shipping import enqueue_shipment
from .state_machine import ConcurrentTransition, transition

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationResult:
    order: Order
    already_paid: bool = False

    def as_dict(self):
        return {
            'success': True,
            'order_id': self.order.pk,
            'order_number': self.order.order_number,
            'order_status': self.order.status,
            'payment_status': self.order.payment_status,
        }


class PaymentConfirmationHandler:

    def __init__(self, gateway: Optional[PaymentGatewayAdapter] = None, ledger: Optional[InventoryLedger] = None):
        self._gateway = gateway
        self.ledger = ledger or InventoryLedger()

    @property
    def gateway(self) -> PaymentGatewayAdapter:
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    def confirm(self, order_id, gateway_order_id, gateway_payment_id, signature) -> ConfirmationResult:
        """
        Verify a payment callback and confirm the order.

        Raises:
            OrderNotFound: no such order
            InvalidOperation: cash on delivery order, or order no longer awaiting payment
            VerificationFailed: bad signature or gateway order mismatch (order marked FAILED)
            InventoryConflict: paid but stock could not be committed (order left unconfirmed)
        """
        try:
            order = Order.objects.get(pk=order_id)
        except (Order.DoesNotExist, ValueError, TypeError):
            raise OrderNotFound()

        if order.is_cash_on_delivery:
            raise InvalidOperation("Cash on delivery orders do not accept online payment verification.")

        if order.payment_status == Order.PaymentStatus.PAID:
            return ConfirmationResult(order=order, already_paid=True)

        if not self._is_authentic(order, gateway_order_id, gateway_payment_id, signature):
            self._mark_failed(order)
            raise VerificationFailed()

        if order.status != Order.OrderStatus.PENDING:
            logger.critical(
                f"Verified payment {gateway_payment_id} received for order {order.order_number} "
                f"in status {order.status}; manual reconciliation required"
            )
            raise InvalidOperation(f"Order {order.order_number} is no longer awaiting payment.")

        try:
            confirmed = self._confirm(order, gateway_payment_id, signature)
        except InventoryConflict as e:
            logger.critical(
                f"Payment {gateway_payment_id} captured for order {order.order_number} "
                f"but stock could not be committed: {e}; manual reconciliation required"
            )
            Order.objects.filter(pk=order.pk).update(
                gateway_payment_id=gateway_payment_id,
                gateway_signature=signature,
            )
            raise
        except ConcurrentTransition:
            order.refresh_from_db()
            if order.payment_status != Order.PaymentStatus.PAID:
                raise
            confirmed = False

        if not confirmed:
            return ConfirmationResult(order=order, already_paid=True)

        clear_cart(user=order.user, session_key=order.cart_session_key)
        logger.info(f"Payment {gateway_payment_id} confirmed order {order.order_number}")
        return ConfirmationResult(order=order)

    def _is_authentic(self, order, gateway_order_id, gateway_payment_id, signature) -> bool:
        if not order.gateway_order_id or not hmac.compare_digest(
            order.gateway_order_id.encode(), str(gateway_order_id or '').encode(),
        ):
            return False
        return self.gateway.verify_signature(gateway_order_id, gateway_payment_id, signature)

    def _mark_failed(self, order):
        try:
            transition(
                order,
                payment_status=Order.PaymentStatus.FAILED,
                title="Payment Failed",
                description="Payment verification failed.",
                append_entry=True,
                ledger=self.ledger,
            )
        except (InvalidTransition, ConcurrentTransition) as e:
            logger.warning(f"Could not mark payment failed for {order.order_number}: {e}")
        logger.warning(f"Payment verification failed for order {order.order_number}")

    def _confirm(self, order, gateway_payment_id, signature) -> bool:
        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            if locked.payment_status == Order.PaymentStatus.PAID:
                order.refresh_from_db()
                return False

            self.ledger.commit(locked)
            transition(
                locked,
                status=Order.OrderStatus.CONFIRMED,
                payment_status=Order.PaymentStatus.PAID,
                title="Payment Successful",
                description=f"Payment {gateway_payment_id} received. Your order has been confirmed.",
                extra_fields={
                    'gateway_payment_id': gateway_payment_id,
                    'gateway_signature': signature,
                },
                ledger=self.ledger,
            )
            enqueue_shipment(locked)

        order.refresh_from_db()
        return True
