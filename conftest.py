"""
Shared pytest fixtures.

Outbound services are replaced by in-process doubles: the sandbox payment
gateway and a stub shipping carrier. No test touches the network.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from catalog.models import PrebuiltPC, Product
from coupons.models import Coupon
from orders.gateways import SandboxGateway, sign

TEST_GATEWAY_SECRET = 'test-gateway-secret'


@pytest.fixture(autouse=True)
def storefront_settings(settings):
    settings.RATELIMIT_ENABLE = False
    settings.CHECKOUT_CURRENCY = 'INR'
    settings.CHECKOUT_FREE_SHIPPING_THRESHOLD = Decimal('10000')
    settings.CHECKOUT_FLAT_SHIPPING_CHARGE = Decimal('99')
    settings.CHECKOUT_TAX_RATE = Decimal('0.18')
    settings.PAYMENT_GATEWAY = {
        'BACKEND': 'orders.gateways.SandboxGateway',
        'OPTIONS': {'key_id': 'sandbox_key', 'key_secret': TEST_GATEWAY_SECRET},
    }
    settings.SHIPPING_CARRIER = {
        'BACKEND': 'orders.tests.fakes.StubCarrier',
        'OPTIONS': {},
    }
    settings.ADAPTER_RETRY = {'ATTEMPTS': 3, 'BASE_DELAY': 0, 'MAX_DELAY': 0}
    settings.SHIPMENT_RETRY = {'MAX_ATTEMPTS': 3, 'BASE_DELAY': 30, 'MAX_DELAY': 300, 'LEASE_SECONDS': 120}
    return settings


@pytest.fixture
def gateway():
    return SandboxGateway(key_id='sandbox_key', key_secret=TEST_GATEWAY_SECRET)


@pytest.fixture
def sign_payment():
    def _sign(gateway_order_id, gateway_payment_id):
        return sign(TEST_GATEWAY_SECRET, gateway_order_id, gateway_payment_id)
    return _sign


@pytest.fixture
def make_product(db):
    counter = {'n': 0}

    def _make(price='1000.00', stock=10, **kwargs):
        counter['n'] += 1
        n = counter['n']
        kwargs.setdefault('name', f'Component {n}')
        kwargs.setdefault('slug', f'component-{n}')
        kwargs.setdefault('sku', f'SKU-{n:04d}')
        return Product.objects.create(price=Decimal(price), stock_quantity=stock, **kwargs)

    return _make


@pytest.fixture
def product(make_product):
    return make_product(name='RTX 4070 Graphics Card', price='1000.00', stock=10)


@pytest.fixture
def prebuilt_pc(db):
    return PrebuiltPC.objects.create(
        name='Gaming Rig Pro',
        slug='gaming-rig-pro',
        selling_price=Decimal('85000.00'),
        weight_kg=Decimal('12.50'),
    )


@pytest.fixture
def make_coupon(db):
    def _make(code='SAVE10', **kwargs):
        kwargs.setdefault('discount_type', Coupon.DiscountType.PERCENTAGE)
        kwargs.setdefault('discount_value', Decimal('10'))
        return Coupon.objects.create(code=code, **kwargs)
    return _make


@pytest.fixture
def address():
    return {
        'full_name': 'Asha Verma',
        'mobile': '9876543210',
        'address_line1': '12 MG Road',
        'address_line2': 'Flat 4B',
        'landmark': '',
        'city': 'Bengaluru',
        'state': 'Karnataka',
        'pincode': '560001',
        'country': 'India',
    }


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(
        username='customer', email='customer@example.com', password='pass-1234-word',
    )


@pytest.fixture
def other_user(db):
    return get_user_model().objects.create_user(
        username='someone-else', email='else@example.com', password='pass-1234-word',
    )


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(
        username='staff', email='staff@example.com', password='pass-1234-word', is_staff=True,
    )


@pytest.fixture
def api_client():
    return APIClient()
