"""
Order status transitions.

Every accepted transition is one transaction that updates the order with a
compare-and-swap on its current (status, payment_status) and appends exactly
one timeline entry. Cancellation and refund restore stock through the
inventory ledger in the same transaction and close any queued shipment.
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from .exceptions import InvalidTransition
from .inventory import InventoryLedger
from .models import Order, OrderTimelineEntry, ShipmentTask

logger = logging.getLogger(__name__)

S = Order.OrderStatus
P = Order.PaymentStatus

TRANSITIONS = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED, S.RETURNED, S.REFUNDED},
    S.CONFIRMED: {S.PROCESSING, S.SHIPPED, S.CANCELLED, S.RETURNED, S.REFUNDED},
    S.PROCESSING: {S.SHIPPED, S.CANCELLED, S.RETURNED, S.REFUNDED},
    S.SHIPPED: {S.OUT_FOR_DELIVERY, S.DELIVERED, S.RETURNED, S.REFUNDED},
    S.OUT_FOR_DELIVERY: {S.DELIVERED, S.RETURNED, S.REFUNDED},
    S.DELIVERED: {S.RETURNED, S.REFUNDED},
    S.RETURNED: {S.REFUNDED},
    S.CANCELLED: set(),
    S.REFUNDED: set(),
}

PAYMENT_TRANSITIONS = {
    P.PENDING: {P.PAID, P.FAILED},
    P.COD_PENDING: {P.PAID, P.FAILED},
    P.FAILED: {P.PAID, P.FAILED},
    P.PAID: {P.REFUNDED},
    P.REFUNDED: set(),
}

TERMINAL_STATUSES = {S.CANCELLED, S.REFUNDED}
CANCELLABLE_STATUSES = {S.PENDING, S.CONFIRMED, S.PROCESSING}

STATUS_TITLES = {
    S.PENDING: "Order Placed",
    S.CONFIRMED: "Order Confirmed",
    S.PROCESSING: "Order Processing",
    S.SHIPPED: "Order Shipped",
    S.OUT_FOR_DELIVERY: "Out for Delivery",
    S.DELIVERED: "Order Delivered",
    S.CANCELLED: "Order Cancelled",
    S.RETURNED: "Order Returned",
    S.REFUNDED: "Order Refunded",
}

PAYMENT_TITLES = {
    P.PAID: "Payment Successful",
    P.FAILED: "Payment Failed",
    P.REFUNDED: "Payment Refunded",
}

# Timestamp written the first time the order enters a status.
STATUS_TIMESTAMPS = {
    S.SHIPPED: 'shipped_at',
    S.DELIVERED: 'delivered_at',
    S.CANCELLED: 'cancelled_at',
}


class ConcurrentTransition(Exception):
    """The order changed between reading and writing it."""


def can_cancel(status) -> bool:
    return status in CANCELLABLE_STATUSES


def can_transition(current, new) -> bool:
    return new in TRANSITIONS.get(current, set())


def record_placed(order: Order) -> OrderTimelineEntry:
    """Initial timeline entry, written together with the order."""
    return OrderTimelineEntry.objects.create(
        order=order,
        status=order.status,
        title=STATUS_TITLES[S.PENDING],
        description="Your order has been placed successfully.",
    )


def transition(
    order: Order,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    title: Optional[str] = None,
    description: str = '',
    location: str = '',
    extra_fields: Optional[dict] = None,
    append_entry: bool = False,
    ledger=None,
) -> bool:
    """
    Move an order to a new status and/or payment status.

    Args:
        order: Order to change; refreshed in place on success
        status: Target order status, or None to keep it
        payment_status: Target payment status, or None to keep it
        title: Timeline title; defaults to the status (or payment) title
        description: Timeline description
        location: Optional timeline location
        extra_fields: Other order columns to write in the same update
        append_entry: Append a timeline entry even when nothing changes
        ledger: InventoryLedger used to restore stock on cancel/refund

    Returns:
        bool: True when the order was changed or an entry appended

    Raises:
        InvalidTransition: when the target is not reachable from the current state
        ConcurrentTransition: when another writer changed the order first
    """
    with transaction.atomic():
        current = Order.objects.select_for_update().get(pk=order.pk)

        new_status = status or current.status
        new_payment = payment_status or current.payment_status
        status_changes = new_status != current.status
        payment_changes = new_payment != current.payment_status

        if status_changes and not can_transition(current.status, new_status):
            raise InvalidTransition(
                f"Cannot change order from {current.status} to {new_status}.",
                current=current.status,
                requested=new_status,
            )
        if payment_changes and new_payment not in PAYMENT_TRANSITIONS.get(current.payment_status, set()):
            raise InvalidTransition(
                f"Cannot change payment from {current.payment_status} to {new_payment}.",
                current=current.payment_status,
                requested=new_payment,
            )
        # Refunding a paid order refunds the payment as well.
        if new_status == S.REFUNDED and current.payment_status == P.PAID:
            new_payment = P.REFUNDED
            payment_changes = True

        if not (status_changes or payment_changes or append_entry):
            return False

        now = timezone.now()
        changes = dict(extra_fields or {})
        changes['status'] = new_status
        changes['payment_status'] = new_payment
        changes['updated_at'] = now

        timestamp_field = STATUS_TIMESTAMPS.get(new_status)
        if status_changes and timestamp_field and getattr(current, timestamp_field) is None:
            changes[timestamp_field] = now
        if new_payment == P.PAID and current.paid_at is None:
            changes['paid_at'] = now

        updated = Order.objects.filter(
            pk=current.pk,
            status=current.status,
            payment_status=current.payment_status,
        ).update(**changes)
        if not updated:
            raise ConcurrentTransition(f"Order {current.order_number} changed concurrently.")

        if title is None:
            if status_changes or not payment_changes:
                title = STATUS_TITLES[new_status]
            else:
                title = PAYMENT_TITLES.get(new_payment, STATUS_TITLES[new_status])

        OrderTimelineEntry.objects.create(
            order=current,
            status=new_status,
            title=title,
            description=description or '',
            location=location or '',
        )

        if status_changes and new_status in TERMINAL_STATUSES:
            (ledger or InventoryLedger()).restore(current)
            ShipmentTask.objects.filter(order=current, status=ShipmentTask.Status.PENDING).update(
                status=ShipmentTask.Status.FAILED,
                last_error=f"Order {new_status.lower()} before shipment registration",
                updated_at=now,
            )

    logger.info(
        f"Order {current.order_number}: {current.status}/{current.payment_status} -> "
        f"{new_status}/{new_payment}"
    )
    order.refresh_from_db()
    return True
