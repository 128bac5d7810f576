"""
Payment gateway adapters.

The checkout and confirmation code depend only on PaymentGatewayAdapter;
the concrete backend is chosen by the PAYMENT_GATEWAY setting.
"""

import hashlib
import hmac
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import PermanentAdapterError
from .transport import request_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayIntent:
    """Provider-side payment session the client completes off-band."""
    intent_id: str
    client_secret: str
    amount_minor: int
    currency: str

    def as_dict(self):
        return {
            'intent_id': self.intent_id,
            'client_secret': self.client_secret,
            'amount': self.amount_minor,
            'currency': self.currency,
        }


def sign(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id`` under the server-held secret."""
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentGatewayAdapter(ABC):

    @abstractmethod
    def create_intent(self, amount_minor: int, currency: str, reference: str, metadata: Optional[dict] = None) -> GatewayIntent:
        """
        Open a payment session for ``amount_minor`` in ``currency``.

        Raises:
            TransientAdapterError / PermanentAdapterError
        """

    @abstractmethod
    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """Pure check of a callback signature; never calls the network."""


class HmacSignatureMixin:
    key_secret = ''

    def verify_signature(self, gateway_order_id, gateway_payment_id, signature):
        if not (self.key_secret and gateway_order_id and gateway_payment_id and signature):
            return False
        expected = sign(self.key_secret, gateway_order_id, gateway_payment_id)
        return hmac.compare_digest(expected.encode(), str(signature).encode())


class RazorpayGateway(HmacSignatureMixin, PaymentGatewayAdapter):
    """Razorpay Orders API over HTTPS."""

    base_url = 'https://api.razorpay.com/v1'

    def __init__(self, key_id='', key_secret='', base_url=None, session=None, timeout=None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = (base_url or self.base_url).rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    def create_intent(self, amount_minor, currency, reference, metadata=None):
        data = request_json(
            self.session,
            'POST',
            f"{self.base_url}/orders",
            timeout=self.timeout,
            json={
                'amount': amount_minor,
                'currency': currency,
                'receipt': reference,
                'notes': {k: str(v) for k, v in (metadata or {}).items()},
            },
        )
        if not data.get('id'):
            raise PermanentAdapterError("Razorpay order response has no id")
        logger.info(f"Razorpay order {data['id']} created for {reference}")
        return GatewayIntent(
            intent_id=data['id'],
            # Public key the client checkout widget is opened with.
            client_secret=self.key_id,
            amount_minor=int(data.get('amount', amount_minor)),
            currency=data.get('currency', currency),
        )


class SandboxGateway(HmacSignatureMixin, PaymentGatewayAdapter):
    """
    In-process gateway for development and tests.

    Intents are local ids; callers produce a valid callback signature with
    ``sign(key_secret, intent_id, payment_id)``.
    """

    def __init__(self, key_id='sandbox', key_secret='sandbox-secret', **kwargs):
        self.key_id = key_id or 'sandbox'
        self.key_secret = key_secret or 'sandbox-secret'

    def create_intent(self, amount_minor, currency, reference, metadata=None):
        return GatewayIntent(
            intent_id=f"sandbox_order_{uuid.uuid4().hex[:14]}",
            client_secret=self.key_id,
            amount_minor=amount_minor,
            currency=currency,
        )


def get_payment_gateway() -> PaymentGatewayAdapter:
    config = settings.PAYMENT_GATEWAY
    backend = import_string(config['BACKEND'])
    return backend(**config.get('OPTIONS', {}))
