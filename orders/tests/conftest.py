from decimal import Decimal

import pytest

from catalog.refs import CartLine, ProductRef
from orders.checkout import CheckoutOrchestrator, CheckoutRequest
from orders.models import Order, OrderItem
from orders.state_machine import record_placed


@pytest.fixture
def make_order(db, address):
    """Order with items written directly, bypassing checkout and the ledger."""

    def _make(items, payment_method=Order.PaymentMethod.ONLINE, **kwargs):
        subtotal = sum((product.price * qty for product, qty in items), Decimal('0.00'))
        kwargs.setdefault(
            'payment_status',
            Order.PaymentStatus.COD_PENDING
            if payment_method == Order.PaymentMethod.CASH_ON_DELIVERY
            else Order.PaymentStatus.PENDING,
        )
        order = Order.objects.create(
            payment_method=payment_method,
            subtotal=subtotal,
            shipping_address=address,
            **kwargs,
        )
        for product, qty in items:
            OrderItem.objects.create(
                order=order,
                product=product,
                name=product.name,
                sku=product.sku,
                unit_price=product.price,
                quantity=qty,
            )
        record_placed(order)
        return order

    return _make


@pytest.fixture
def place_order(db, gateway, address):
    """Run a real checkout with the sandbox gateway."""

    def _place(lines, payment_method='ONLINE', gateway_override=None, **kwargs):
        request = CheckoutRequest(
            lines=[
                line if isinstance(line, CartLine) else CartLine(item=ProductRef(line[0].pk), quantity=line[1])
                for line in lines
            ],
            shipping_address=kwargs.pop('shipping_address', address),
            payment_method=payment_method,
            **kwargs,
        )
        return CheckoutOrchestrator(gateway=gateway_override or gateway).checkout(request)

    return _place
