"""
Shipping carrier adapters and the shipment queue.

Carrier registration never runs on the payment confirmation path: the
confirmation transaction writes a ShipmentTask, and ShipmentDispatcher works
those off later, retrying transient carrier failures with backoff.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Callable, List, Optional

import requests
from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone
from django.utils.module_loading import import_string

from catalog.money import to_major, to_minor

from .exceptions import AdapterError, PermanentAdapterError, TransientAdapterError
from .models import Order, ShipmentTask
from .pricing import shipping_for
from .retry import backoff_delay, call_with_retry
from .transport import request_json

logger = logging.getLogger(__name__)

DEFAULT_LENGTH_CM = 30
DEFAULT_BREADTH_CM = 20
DEFAULT_HEIGHT_CM = 15
DEFAULT_WEIGHT_KG = Decimal('2')
DEFAULT_COD_CHARGE = Decimal('50.00')
DEFAULT_COURIER_NAME = 'Standard Delivery'

# Orders in any other status are not handed to the carrier.
SHIPPABLE_STATUSES = {Order.OrderStatus.CONFIRMED, Order.OrderStatus.PROCESSING}


@dataclass(frozen=True)
class ShipmentRegistration:
    carrier_order_id: str
    shipment_id: str


@dataclass(frozen=True)
class TrackingInfo:
    awb: str
    status: str
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CourierOption:
    courier_name: str
    charge: Decimal
    cod_charge: Decimal = Decimal('0')
    estimated_days: Optional[int] = None


class ShippingAdapter(ABC):

    @abstractmethod
    def register_shipment(self, snapshot: dict) -> ShipmentRegistration:
        """Create the carrier-side order for an order snapshot."""

    @abstractmethod
    def track(self, awb: str) -> TrackingInfo:
        """Current carrier status for an air waybill number."""

    @abstractmethod
    def quote(self, pincode: str, weight_kg: Decimal, cod: bool = False) -> List[CourierOption]:
        """
        Couriers that deliver to ``pincode`` from the pickup location.

        An empty list means the pincode is not serviceable.
        """


class LeasedCredential:
    """
    A bearer token with an expiry, refreshed by one caller at a time.

    Readers see either the old or the new (token, expiry) pair, never a mix.
    """

    def __init__(self, fetch: Callable[[], str], ttl_seconds: float, clock=time.monotonic):
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._clock = clock
        self._lease = None
        self._lock = threading.Lock()

    def get(self) -> str:
        lease = self._lease
        if lease and lease[1] > self._clock():
            return lease[0]
        with self._lock:
            lease = self._lease
            if lease and lease[1] > self._clock():
                return lease[0]
            token = self._fetch()
            self._lease = (token, self._clock() + self._ttl)
            return token

    def invalidate(self, token: str) -> None:
        """Drop the lease if it still holds ``token``."""
        with self._lock:
            if self._lease and self._lease[0] == token:
                self._lease = None


class ShiprocketCarrier(ShippingAdapter):
    """Shiprocket external API (https://apidocs.shiprocket.in/)."""

    base_url = 'https://apiv2.shiprocket.in/v1/external'
    # Tokens are valid for 10 days; renew a day early.
    token_ttl = 9 * 24 * 60 * 60

    def __init__(self, email='', password='', pickup_location='Primary', pickup_pincode='400001',
                 base_url=None, session=None, timeout=None):
        self.email = email
        self.password = password
        self.pickup_location = pickup_location
        self.pickup_pincode = pickup_pincode
        self.base_url = (base_url or self.base_url).rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.credential = LeasedCredential(self._login, self.token_ttl)

    def _login(self) -> str:
        if not (self.email and self.password):
            raise PermanentAdapterError("Shiprocket credentials are not configured")
        data = request_json(
            self.session,
            'POST',
            f"{self.base_url}/auth/login",
            timeout=self.timeout,
            json={'email': self.email, 'password': self.password},
        )
        if not data.get('token'):
            raise PermanentAdapterError("Shiprocket login returned no token")
        return data['token']

    def _call(self, method, path, **kwargs):
        token = self.credential.get()
        try:
            return self._send(method, path, token, **kwargs)
        except PermanentAdapterError as e:
            if e.status_code != 401:
                raise
            logger.info("Shiprocket token rejected; logging in again")
            self.credential.invalidate(token)
            return self._send(method, path, self.credential.get(), **kwargs)

    def _send(self, method, path, token, **kwargs):
        return request_json(
            self.session,
            method,
            f"{self.base_url}{path}",
            timeout=self.timeout,
            headers={'Authorization': f"Bearer {token}"},
            **kwargs,
        )

    def register_shipment(self, snapshot):
        payload = dict(snapshot, pickup_location=self.pickup_location)
        data = self._call('POST', '/orders/create/adhoc', json=payload)
        if not data.get('order_id'):
            raise PermanentAdapterError(data.get('message') or "Failed to create Shiprocket order")
        return ShipmentRegistration(
            carrier_order_id=str(data['order_id']),
            shipment_id=str(data.get('shipment_id') or ''),
        )

    def track(self, awb):
        data = self._call('GET', f"/courier/track/awb/{awb}")
        tracking = data.get('tracking_data')
        if not tracking:
            raise PermanentAdapterError("No tracking data available")
        events = tracking.get('shipment_track') or [{}]
        status = events[0].get('current_status') or str(tracking.get('shipment_status', ''))
        return TrackingInfo(awb=awb, status=status, raw=tracking)

    def quote(self, pincode, weight_kg, cod=False):
        data = self._call(
            'GET',
            '/courier/serviceability/',
            params={
                'pickup_postcode': self.pickup_pincode,
                'delivery_postcode': pincode,
                'weight': str(weight_kg),
                'cod': 1 if cod else 0,
            },
        )
        couriers = (data.get('data') or {}).get('available_courier_companies') or []
        return [
            CourierOption(
                courier_name=courier.get('courier_name') or 'Courier',
                charge=to_major(to_minor(courier.get('freight_charge') or 0)),
                cod_charge=to_major(to_minor(courier.get('cod_charges') or 0)),
                estimated_days=_days(courier.get('estimated_delivery_days')),
            )
            for courier in couriers
        ]


def _days(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_shipping_carrier() -> ShippingAdapter:
    config = settings.SHIPPING_CARRIER
    backend = import_string(config['BACKEND'])
    return backend(**config.get('OPTIONS', {}))


def _option_dict(option: CourierOption, free: bool) -> dict:
    return {
        'courier_name': option.courier_name,
        'charge': '0.00' if free else str(option.charge),
        'cod_charge': str(option.cod_charge),
        'estimated_days': option.estimated_days,
    }


def quote_shipping(pincode: str, cart_total, weight_kg=None, cod=False, carrier=None) -> dict:
    """
    Delivery options and shipping charge for a pincode.

    Carts above the free-shipping threshold ship free. When the carrier cannot
    be reached the checkout's own flat charge is quoted instead.
    """
    subtotal_minor = to_minor(cart_total)
    standard_minor = shipping_for(subtotal_minor)
    free = standard_minor == 0
    carrier = carrier or get_shipping_carrier()

    try:
        options = call_with_retry(carrier.quote, pincode, weight_kg or DEFAULT_WEIGHT_KG, cod)
    except AdapterError as e:
        logger.warning(f"Shipping quote for pincode {pincode} failed: {e}; quoting standard charges")
        return {
            'serviceable': True,
            'shipping': {
                'courier_name': DEFAULT_COURIER_NAME,
                'charge': str(to_major(standard_minor)),
                'cod_charge': str(DEFAULT_COD_CHARGE if cod else Decimal('0.00')),
                'estimated_days': None,
                'is_free_shipping': free,
            },
            'express_option': None,
        }

    if not options:
        return {'serviceable': False, 'detail': 'Delivery is not available for this pincode.'}

    cheapest = min(options, key=lambda option: option.charge)
    timed = [option for option in options if option.estimated_days is not None]
    fastest = min(timed, key=lambda option: option.estimated_days) if timed else None

    return {
        'serviceable': True,
        'shipping': dict(_option_dict(cheapest, free), is_free_shipping=free),
        'express_option': _option_dict(fastest, free) if fastest and fastest is not cheapest else None,
    }


def _address_fields(prefix, address):
    return {
        f'{prefix}_customer_name': address.get('full_name', ''),
        f'{prefix}_address': address.get('address_line1', ''),
        f'{prefix}_address_2': address.get('address_line2') or '',
        f'{prefix}_city': address.get('city', ''),
        f'{prefix}_pincode': address.get('pincode', ''),
        f'{prefix}_state': address.get('state', ''),
        f'{prefix}_country': address.get('country') or 'India',
        f'{prefix}_phone': address.get('mobile', ''),
    }


def _order_weight(items) -> Decimal:
    weights = []
    for item in items:
        target = item.product or item.prebuilt_pc
        if target is None or not target.weight_kg:
            return DEFAULT_WEIGHT_KG
        weights.append(target.weight_kg * item.quantity)
    return sum(weights, Decimal('0')) or DEFAULT_WEIGHT_KG


def build_shipment_payload(order: Order) -> dict:
    """
    Carrier order snapshot for a confirmed order.

    Billing falls back to the shipping address; package dimensions use
    fixed defaults and weight falls back to 2 kg when any item has none.
    """
    items = list(order.items.select_related('product', 'prebuilt_pc'))
    shipping = order.shipping_address or {}
    billing = order.billing_address or shipping

    payload = {
        'order_id': order.order_number,
        'order_date': timezone.localdate(order.created_at).isoformat(),
        'shipping_is_billing': not order.billing_address,
        'order_items': [
            {
                'name': item.name,
                'sku': item.sku or str(item.pk),
                'units': item.quantity,
                'selling_price': float(item.unit_price),
            }
            for item in items
        ],
        'payment_method': 'COD' if order.is_cash_on_delivery else 'Prepaid',
        'sub_total': float(order.subtotal),
        'shipping_charges': float(order.shipping_charge),
        'total_discount': float(order.discount + order.coupon_discount),
        'length': DEFAULT_LENGTH_CM,
        'breadth': DEFAULT_BREADTH_CM,
        'height': DEFAULT_HEIGHT_CM,
        'weight': float(_order_weight(items)),
    }
    payload.update(_address_fields('billing', billing))
    payload.update(_address_fields('shipping', shipping))
    if order.user_id and order.user.email:
        payload['billing_email'] = order.user.email
    if order.customer_notes:
        payload['comment'] = order.customer_notes[:500]
    return payload


def enqueue_shipment(order: Order) -> ShipmentTask:
    """Queue carrier registration; call inside the confirming transaction."""
    task, _ = ShipmentTask.objects.get_or_create(order=order)
    return task


class ShipmentDispatcher:
    """Claims due shipment tasks and registers them with the carrier."""

    def __init__(self, carrier: Optional[ShippingAdapter] = None, config: Optional[dict] = None):
        self.carrier = carrier or get_shipping_carrier()
        self.config = config or settings.SHIPMENT_RETRY

    def _claimable(self, now):
        return Q(status=ShipmentTask.Status.PENDING) | Q(
            status=ShipmentTask.Status.IN_PROGRESS, locked_until__lt=now,
        )

    def claim(self, task_id, now) -> bool:
        return bool(
            ShipmentTask.objects.filter(self._claimable(now), pk=task_id).update(
                status=ShipmentTask.Status.IN_PROGRESS,
                locked_until=now + timedelta(seconds=self.config['LEASE_SECONDS']),
                attempts=F('attempts') + 1,
                updated_at=now,
            )
        )

    def process_due(self, now=None, limit=20) -> dict:
        """
        Work off due shipment tasks.

        Returns:
            dict: counts of tasks that were ``done``, ``retried``, ``failed``
            and ``skipped`` (order no longer shippable)
        """
        now = now or timezone.now()
        counts = {'done': 0, 'retried': 0, 'failed': 0, 'skipped': 0}

        due = list(
            ShipmentTask.objects.filter(self._claimable(now), next_attempt_at__lte=now)
            .order_by('next_attempt_at')
            .values_list('pk', flat=True)[:limit]
        )
        for task_id in due:
            if not self.claim(task_id, now):
                continue
            task = ShipmentTask.objects.select_related('order', 'order__user').get(pk=task_id)
            try:
                outcome = self.process(task, now)
            except Exception as e:
                logger.error(
                    f"Unexpected error registering shipment for {task.order.order_number}: {e}",
                    exc_info=True,
                )
                outcome = self._retry(task, now, e)
            counts[outcome] += 1
        return counts

    def process(self, task: ShipmentTask, now) -> str:
        order = task.order
        if order.status not in SHIPPABLE_STATUSES:
            logger.info(f"Skipping shipment for {order.order_number}: order is {order.status}")
            ShipmentTask.objects.filter(pk=task.pk).update(
                status=ShipmentTask.Status.FAILED,
                locked_until=None,
                last_error=f"Order is {order.status}; shipment not registered",
                updated_at=now,
            )
            return 'skipped'

        try:
            registration = self.carrier.register_shipment(build_shipment_payload(order))
        except TransientAdapterError as e:
            return self._retry(task, now, e)
        except AdapterError as e:
            return self._fail(task, now, e)

        Order.objects.filter(pk=order.pk).update(
            carrier_order_id=registration.carrier_order_id,
            shipment_id=registration.shipment_id,
            updated_at=now,
        )
        ShipmentTask.objects.filter(pk=task.pk).update(
            status=ShipmentTask.Status.DONE,
            locked_until=None,
            last_error='',
            updated_at=now,
        )
        logger.info(
            f"Shipment registered for {order.order_number}: "
            f"carrier order {registration.carrier_order_id}"
        )
        return 'done'

    def _retry(self, task, now, error) -> str:
        if task.attempts >= self.config['MAX_ATTEMPTS']:
            return self._fail(task, now, error)
        delay = backoff_delay(task.attempts - 1, self.config['BASE_DELAY'], self.config['MAX_DELAY'])
        logger.warning(
            f"Shipment registration for {task.order.order_number} failed "
            f"(attempt {task.attempts}): {error}; retrying in {delay}s"
        )
        ShipmentTask.objects.filter(pk=task.pk).update(
            status=ShipmentTask.Status.PENDING,
            next_attempt_at=now + timedelta(seconds=delay),
            locked_until=None,
            last_error=str(error),
            updated_at=now,
        )
        return 'retried'

    def _fail(self, task, now, error) -> str:
        logger.error(
            f"Shipment registration for {task.order.order_number} failed permanently "
            f"after {task.attempts} attempt(s): {error}"
        )
        ShipmentTask.objects.filter(pk=task.pk).update(
            status=ShipmentTask.Status.FAILED,
            locked_until=None,
            last_error=str(error),
            updated_at=now,
        )
        return 'failed'
