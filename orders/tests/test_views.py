from decimal import Decimal

import pytest

from audit.models import AuditLog
from cart.models import CartItem
from cart.services import get_or_create_cart
from orders.exceptions import PermanentAdapterError
from orders.models import Order
from orders.state_machine import ConcurrentTransition

pytestmark = pytest.mark.django_db

CHECKOUT_URL = '/api/checkout/'
VERIFY_URL = '/api/checkout/verify-payment/'


def checkout_body(product, address, **overrides):
    body = {
        'items': [{'product_id': product.pk, 'quantity': 2}],
        'shipping_address': address,
        'payment_method': 'COD',
    }
    body.update(overrides)
    return body


def test_checkout_cash_on_delivery(api_client, user, product, address):
    api_client.force_authenticate(user)

    response = api_client.post(CHECKOUT_URL, checkout_body(product, address), format='json')

    assert response.status_code == 201, response.data
    assert response.data['status'] == 'CONFIRMED'
    assert response.data['payment_status'] == 'COD_PENDING'
    assert response.data['total'] == '2459.00'  # 2000 + 99 + 360
    assert response.data['gateway_intent'] is None
    log = AuditLog.objects.get(action='CHECKOUT')
    assert (log.status, log.user, log.resource_id) == (AuditLog.Status.SUCCESS, user, str(response.data['order_id']))


def test_guest_checkout_uses_cart_when_items_omitted(api_client, product, address):
    cart = get_or_create_cart(session_key='guest-cookie')
    CartItem.objects.create(cart=cart, product=product, quantity=1)
    api_client.cookies['cart_session_id'] = 'guest-cookie'

    body = checkout_body(product, address)
    del body['items']
    response = api_client.post(CHECKOUT_URL, body, format='json')

    assert response.status_code == 201, response.data
    order = Order.objects.get(pk=response.data['order_id'])
    assert order.user is None
    assert order.items.get().quantity == 1
    assert not CartItem.objects.filter(cart=cart).exists()


def test_checkout_with_empty_cart(api_client, product, address):
    body = checkout_body(product, address)
    del body['items']
    response = api_client.post(CHECKOUT_URL, body, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'VALIDATION_ERROR'
    assert AuditLog.objects.get(action='CHECKOUT').status == AuditLog.Status.FAILURE


def test_checkout_rejects_line_with_two_targets(api_client, product, prebuilt_pc, address):
    body = checkout_body(product, address, items=[
        {'product_id': product.pk, 'prebuilt_pc_id': prebuilt_pc.pk, 'quantity': 1},
    ])
    response = api_client.post(CHECKOUT_URL, body, format='json')
    assert response.status_code == 400


def test_checkout_out_of_stock(api_client, make_product, address):
    product = make_product(stock=1)
    response = api_client.post(CHECKOUT_URL, checkout_body(product, address), format='json')

    assert response.status_code == 409
    assert response.data['code'] == 'OUT_OF_STOCK'
    assert not Order.objects.exists()


def test_idempotency_key_header_replays(api_client, product, address):
    body = checkout_body(product, address)

    first = api_client.post(CHECKOUT_URL, body, format='json', HTTP_IDEMPOTENCY_KEY='k-1')
    second = api_client.post(CHECKOUT_URL, body, format='json', HTTP_IDEMPOTENCY_KEY='k-1')

    assert (first.status_code, second.status_code) == (201, 200)
    assert first.data['order_id'] == second.data['order_id']
    product.refresh_from_db()
    assert product.stock_quantity == 8


def test_online_checkout_then_payment_verification(api_client, user, product, address, sign_payment):
    api_client.force_authenticate(user)
    placed = api_client.post(CHECKOUT_URL, checkout_body(product, address, payment_method='ONLINE'), format='json')
    assert placed.status_code == 201, placed.data
    intent = placed.data['gateway_intent']
    assert intent['client_secret'] == 'sandbox_key'
    assert intent['amount'] == 245900

    body = {
        'order_id': placed.data['order_id'],
        'gateway_order_id': intent['intent_id'],
        'gateway_payment_id': 'pay_9',
        'signature': sign_payment(intent['intent_id'], 'pay_9'),
    }
    first = api_client.post(VERIFY_URL, body, format='json')
    second = api_client.post(VERIFY_URL, body, format='json')

    assert first.status_code == second.status_code == 200
    assert first.data['success'] is True
    assert first.data['order_status'] == 'CONFIRMED'
    assert second.data == first.data
    product.refresh_from_db()
    assert product.stock_quantity == 8


def test_payment_verification_with_bad_signature(api_client, product, address):
    placed = api_client.post(CHECKOUT_URL, checkout_body(product, address, payment_method='ONLINE'), format='json')

    response = api_client.post(VERIFY_URL, {
        'order_id': placed.data['order_id'],
        'gateway_order_id': placed.data['gateway_intent']['intent_id'],
        'gateway_payment_id': 'pay_9',
        'signature': 'forged',
    }, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'VERIFICATION_FAILED'
    assert Order.objects.get(pk=placed.data['order_id']).payment_status == 'FAILED'


def test_customers_see_only_their_orders(api_client, user, other_user, product, place_order):
    mine = place_order([(product, 1)], user=user).order
    place_order([(product, 1)], user=other_user)
    api_client.force_authenticate(user)

    response = api_client.get('/api/orders/')

    assert response.status_code == 200
    assert [row['order_number'] for row in response.data['results']] == [mine.order_number]
    detail = api_client.get(f'/api/orders/{mine.pk}/')
    assert [entry['title'] for entry in detail.data['timeline']] == ['Order Placed']
    assert detail.data['items'][0]['unit_price'] == '1000.00'


def test_orders_filter_by_status(api_client, staff_user, product, place_order):
    place_order([(product, 1)], payment_method='COD')
    place_order([(product, 1)], payment_method='ONLINE')
    api_client.force_authenticate(staff_user)

    response = api_client.get('/api/orders/', {'status': 'CONFIRMED'})

    assert [row['status'] for row in response.data['results']] == ['CONFIRMED']


def test_orders_require_authentication(api_client):
    assert api_client.get('/api/orders/').status_code in (401, 403)


def test_owner_cancels_and_stock_comes_back(api_client, user, product, place_order):
    order = place_order([(product, 3)], payment_method='COD', user=user).order
    api_client.force_authenticate(user)

    response = api_client.post(f'/api/orders/{order.pk}/cancel/', {'reason': 'Found it cheaper'}, format='json')
    again = api_client.post(f'/api/orders/{order.pk}/cancel/', {}, format='json')

    assert response.status_code == 200
    assert response.data['order']['status'] == 'CANCELLED'
    assert response.data['order']['timeline'][-1]['description'] == 'Found it cheaper'
    assert again.status_code == 400
    assert again.data['code'] == 'INVALID_TRANSITION'
    product.refresh_from_db()
    assert product.stock_quantity == 10


def test_cannot_cancel_someone_elses_order(api_client, user, other_user, product, place_order):
    order = place_order([(product, 1)], user=other_user).order
    api_client.force_authenticate(user)

    response = api_client.post(f'/api/orders/{order.pk}/cancel/', {}, format='json')

    assert response.status_code == 404
    assert Order.objects.get(pk=order.pk).status == 'PENDING'


def test_status_update_is_staff_only(api_client, user, product, place_order):
    order = place_order([(product, 1)], payment_method='COD', user=user).order
    api_client.force_authenticate(user)

    response = api_client.post(f'/api/orders/{order.pk}/update_status/', {'status': 'SHIPPED'}, format='json')

    assert response.status_code == 403


def test_staff_ships_order_with_tracking_details(api_client, staff_user, product, place_order):
    order = place_order([(product, 1)], payment_method='COD').order
    api_client.force_authenticate(staff_user)

    response = api_client.post(f'/api/orders/{order.pk}/update_status/', {
        'status': 'SHIPPED',
        'description': 'Handed over to courier',
        'location': 'Bengaluru hub',
        'awb_number': 'AWB777',
        'courier_name': 'Delhivery',
    }, format='json')

    assert response.status_code == 200, response.data
    order.refresh_from_db()
    assert (order.status, order.awb_number, order.courier_name) == ('SHIPPED', 'AWB777', 'Delhivery')
    assert order.shipped_at is not None
    entry = order.timeline.last()
    assert (entry.title, entry.location) == ('Order Shipped', 'Bengaluru hub')
    assert AuditLog.objects.filter(action='UPDATE_STATUS', status=AuditLog.Status.SUCCESS).exists()


def test_staff_cannot_make_illegal_transition(api_client, staff_user, product, place_order):
    order = place_order([(product, 1)]).order
    api_client.force_authenticate(staff_user)

    response = api_client.post(f'/api/orders/{order.pk}/update_status/', {'status': 'DELIVERED'}, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'INVALID_TRANSITION'


def test_tracking(api_client, user, product, place_order):
    order = place_order([(product, 1)], payment_method='COD', user=user).order
    api_client.force_authenticate(user)

    assert api_client.get(f'/api/orders/{order.pk}/tracking/').status_code == 400

    Order.objects.filter(pk=order.pk).update(awb_number='AWB777', courier_name='Delhivery')
    response = api_client.get(f'/api/orders/{order.pk}/tracking/')

    assert response.status_code == 200
    assert (response.data['awb_number'], response.data['status']) == ('AWB777', 'In Transit')


def test_coupon_discount_in_checkout_response(api_client, product, address, make_coupon):
    make_coupon(code='SAVE10', max_discount=Decimal('150'))
    response = api_client.post(
        CHECKOUT_URL,
        checkout_body(product, address, items=[{'product_id': product.pk, 'quantity': 2}], coupon_code='save10'),
        format='json',
    )
    assert response.status_code == 201
    assert response.data['total'] == '2282.00'
    assert 'coupon_error' not in response.data


def test_staff_marks_delivered_cod_order_paid(api_client, staff_user, product, place_order):
    order = place_order([(product, 1)], payment_method='COD').order
    api_client.force_authenticate(staff_user)
    url = f'/api/orders/{order.pk}/update_status/'
    for step in ('SHIPPED', 'DELIVERED'):
        assert api_client.post(url, {'status': step}, format='json').status_code == 200

    response = api_client.post(url, {'status': 'DELIVERED', 'payment_status': 'PAID'}, format='json')

    assert response.status_code == 200, response.data
    order.refresh_from_db()
    assert (order.status, order.payment_status) == ('DELIVERED', 'PAID')
    paid_at = order.paid_at
    assert paid_at is not None
    assert order.timeline.last().title == 'Payment Successful'

    again = api_client.post(url, {'payment_status': 'PAID'}, format='json')
    assert again.data['detail'] == 'Order status unchanged.'
    order.refresh_from_db()
    assert order.paid_at == paid_at


def test_status_update_needs_status_or_payment_status(api_client, staff_user, product, place_order):
    order = place_order([(product, 1)], payment_method='COD').order
    api_client.force_authenticate(staff_user)

    response = api_client.post(f'/api/orders/{order.pk}/update_status/', {'description': 'noop'}, format='json')

    assert response.status_code == 400


def test_checkout_conflict_is_reported(api_client, product, address, monkeypatch):
    def changed_concurrently(*args, **kwargs):
        raise ConcurrentTransition("changed")

    monkeypatch.setattr('orders.checkout.transition', changed_concurrently)

    response = api_client.post(CHECKOUT_URL, checkout_body(product, address), format='json')

    assert response.status_code == 409
    assert response.data['code'] == 'CONFLICT'
    product.refresh_from_db()
    assert product.stock_quantity == 10


def test_shipping_quote(api_client):
    response = api_client.post('/api/checkout/shipping/', {'pincode': '110001', 'cart_total': '2000'}, format='json')

    assert response.status_code == 200
    assert response.data['serviceable'] is True
    assert response.data['shipping']['courier_name'] == 'Delhivery Surface'


def test_shipping_quote_falls_back_when_carrier_is_down(api_client, settings):
    settings.SHIPPING_CARRIER = {
        'BACKEND': 'orders.tests.fakes.StubCarrier',
        'OPTIONS': {'quote_error': PermanentAdapterError('credentials not configured')},
    }

    response = api_client.post('/api/checkout/shipping/', {'pincode': '110001', 'cart_total': '2000'}, format='json')

    assert response.status_code == 200
    assert response.data['shipping']['charge'] == '99.00'


def test_shipping_quote_rejects_bad_pincode(api_client):
    response = api_client.post('/api/checkout/shipping/', {'pincode': '1100'}, format='json')
    assert response.status_code == 400
