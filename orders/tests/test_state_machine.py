import pytest

from orders.exceptions import InvalidTransition
from orders.inventory import InventoryLedger
from orders.models import Order, OrderTimelineEntry, ShipmentTask
from orders.state_machine import transition

pytestmark = pytest.mark.django_db

S = Order.OrderStatus
P = Order.PaymentStatus


def titles(order):
    return list(order.timeline.values_list('title', flat=True))


def test_happy_path_appends_one_entry_per_transition(make_product, make_order):
    order = make_order([(make_product(), 1)])

    for status in (S.CONFIRMED, S.PROCESSING, S.SHIPPED, S.OUT_FOR_DELIVERY, S.DELIVERED):
        assert transition(order, status=status) is True
        assert order.status == status

    assert titles(order) == [
        'Order Placed',
        'Order Confirmed',
        'Order Processing',
        'Order Shipped',
        'Out for Delivery',
        'Order Delivered',
    ]
    assert order.shipped_at is not None
    assert order.delivered_at >= order.shipped_at >= order.created_at


def test_illegal_transition_changes_nothing(make_product, make_order):
    order = make_order([(make_product(), 1)])
    transition(order, status=S.CONFIRMED)
    transition(order, status=S.SHIPPED)
    transition(order, status=S.DELIVERED)

    with pytest.raises(InvalidTransition):
        transition(order, status=S.PENDING)

    order.refresh_from_db()
    assert order.status == S.DELIVERED
    assert order.timeline.count() == 4


def test_return_and_refund_reachable_before_shipping(make_product, make_order):
    confirmed = make_order([(make_product(), 1)])
    transition(confirmed, status=S.CONFIRMED)
    pending = make_order([(make_product(), 1)])

    assert transition(confirmed, status=S.RETURNED) is True
    assert transition(pending, status=S.REFUNDED) is True

    assert (confirmed.status, pending.status) == (S.RETURNED, S.REFUNDED)
    assert titles(confirmed)[-1] == 'Order Returned'
    assert pending.payment_status == P.PENDING


def test_cancellation_only_before_shipping(make_product, make_order):
    order = make_order([(make_product(), 1)])
    transition(order, status=S.CONFIRMED)
    transition(order, status=S.SHIPPED)

    assert order.can_be_cancelled() is False
    with pytest.raises(InvalidTransition):
        transition(order, status=S.CANCELLED)


def test_same_status_is_a_no_op_unless_entry_requested(make_product, make_order):
    order = make_order([(make_product(), 1)])
    transition(order, status=S.CONFIRMED)
    transition(order, status=S.SHIPPED)
    shipped_at = order.shipped_at

    assert transition(order, status=S.SHIPPED) is False
    assert order.timeline.count() == 3

    assert transition(order, status=S.SHIPPED, title='Arrived at hub', location='Mumbai', append_entry=True) is True
    order.refresh_from_db()
    assert order.shipped_at == shipped_at
    latest = order.timeline.last()
    assert (latest.title, latest.location) == ('Arrived at hub', 'Mumbai')


def test_cancel_restores_committed_stock_once(make_product, make_order):
    a = make_product(stock=5)
    b = make_product(stock=5)
    order = make_order([(a, 2), (b, 1)])
    InventoryLedger().commit(order)
    transition(order, status=S.CONFIRMED)

    assert transition(order, status=S.CANCELLED, description='Changed my mind') is True
    assert transition(order, status=S.CANCELLED) is False

    a.refresh_from_db()
    b.refresh_from_db()
    assert (a.stock_quantity, b.stock_quantity) == (5, 5)
    assert order.cancelled_at is not None
    assert titles(order)[-1] == 'Order Cancelled'


def test_refund_of_paid_order_refunds_payment(make_product, make_order):
    product = make_product(stock=3)
    order = make_order([(product, 1)])
    InventoryLedger().commit(order)
    transition(order, status=S.CONFIRMED, payment_status=P.PAID)
    assert order.paid_at is not None

    transition(order, status=S.REFUNDED)

    assert (order.status, order.payment_status) == (S.REFUNDED, P.REFUNDED)
    product.refresh_from_db()
    assert product.stock_quantity == 3


def test_payment_status_rules(make_product, make_order):
    order = make_order([(make_product(), 1)])
    transition(order, payment_status=P.FAILED)
    transition(order, payment_status=P.PAID)

    with pytest.raises(InvalidTransition):
        transition(order, payment_status=P.PENDING)
    assert titles(order)[1:] == ['Payment Failed', 'Payment Successful']


def test_timeline_entries_are_append_only(make_product, make_order):
    order = make_order([(make_product(), 1)])
    entry = order.timeline.get()
    entry.title = 'Edited'

    with pytest.raises(ValueError):
        entry.save()
    with pytest.raises(ValueError):
        entry.delete()
    assert OrderTimelineEntry.objects.get(pk=entry.pk).title == 'Order Placed'


def test_address_snapshot_is_immutable(make_product, make_order):
    order = Order.objects.get(pk=make_order([(make_product(), 1)]).pk)
    order.admin_notes = 'Customer called'
    order.save()

    order.shipping_address = dict(order.shipping_address, city='Pune')
    with pytest.raises(ValueError):
        order.save()


def test_cancel_closes_queued_shipment(make_product, make_order):
    order = make_order([(make_product(), 1)], payment_method=Order.PaymentMethod.CASH_ON_DELIVERY)
    transition(order, status=S.CONFIRMED)
    ShipmentTask.objects.create(order=order)

    transition(order, status=S.CANCELLED)

    task = ShipmentTask.objects.get(order=order)
    assert task.status == ShipmentTask.Status.FAILED
    assert 'cancelled' in task.last_error
