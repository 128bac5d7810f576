import pytest

from orders.exceptions import PermanentAdapterError, TransientAdapterError
from orders.gateways import RazorpayGateway, SandboxGateway, get_payment_gateway, sign
from orders.retry import backoff_delay, call_with_retry

from .fakes import FakeResponse, FakeSession


def test_signature_is_hmac_of_order_and_payment_ids(gateway, sign_payment):
    signature = sign_payment('order_1', 'pay_1')

    assert gateway.verify_signature('order_1', 'pay_1', signature) is True
    assert gateway.verify_signature('order_1', 'pay_2', signature) is False
    assert gateway.verify_signature('order_1', 'pay_1', signature.upper()) is False
    assert gateway.verify_signature('order_1', 'pay_1', '') is False


def test_signature_depends_on_server_secret():
    assert sign('secret-a', 'o', 'p') != sign('secret-b', 'o', 'p')
    other = SandboxGateway(key_secret='secret-b')
    assert other.verify_signature('o', 'p', sign('secret-a', 'o', 'p')) is False


def test_gateway_backend_comes_from_settings():
    gateway = get_payment_gateway()
    assert isinstance(gateway, SandboxGateway)
    assert gateway.key_id == 'sandbox_key'


def test_razorpay_creates_order_in_minor_units():
    session = FakeSession([FakeResponse(200, {'id': 'order_RZP1', 'amount': 228200, 'currency': 'INR'})])
    gateway = RazorpayGateway(key_id='rzp_test', key_secret='s3cret', session=session, timeout=3)

    intent = gateway.create_intent(228200, 'INR', 'ORD-20260101-ABCDEF1234', metadata={'order_id': 5})

    call = session.calls[0]
    assert (call['method'], call['url']) == ('POST', 'https://api.razorpay.com/v1/orders')
    assert call['json'] == {
        'amount': 228200,
        'currency': 'INR',
        'receipt': 'ORD-20260101-ABCDEF1234',
        'notes': {'order_id': '5'},
    }
    assert call['timeout'] == 3
    assert session.auth == ('rzp_test', 's3cret')
    assert (intent.intent_id, intent.client_secret, intent.amount_minor) == ('order_RZP1', 'rzp_test', 228200)


@pytest.mark.parametrize('response, error', [
    (FakeResponse(502), TransientAdapterError),
    (FakeResponse(400, {'error': {'description': 'bad amount'}}), PermanentAdapterError),
    (FakeResponse(200, {'status': 'created'}), PermanentAdapterError),
])
def test_razorpay_error_mapping(response, error):
    gateway = RazorpayGateway(key_id='k', key_secret='s', session=FakeSession([response]), timeout=1)
    with pytest.raises(error):
        gateway.create_intent(100, 'INR', 'ref')


def test_backoff_is_exponential_and_capped():
    assert [backoff_delay(n, 0.5, 4) for n in range(5)] == [0.5, 1.0, 2.0, 4, 4]


def test_call_with_retry_retries_transient_errors_only():
    delays = []
    outcomes = [TransientAdapterError('timeout'), TransientAdapterError('503'), 'ok']

    def flaky():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert call_with_retry(flaky, attempts=3, base_delay=0.5, max_delay=4, sleep=delays.append) == 'ok'
    assert delays == [0.5, 1.0]


def test_call_with_retry_gives_up_after_attempts():
    calls = []

    def always_down():
        calls.append(1)
        raise TransientAdapterError('down')

    with pytest.raises(TransientAdapterError):
        call_with_retry(always_down, attempts=2, base_delay=0, max_delay=0, sleep=lambda s: None)
    assert len(calls) == 2


def test_call_with_retry_does_not_retry_permanent_errors():
    calls = []

    def rejected():
        calls.append(1)
        raise PermanentAdapterError('bad request', status_code=400)

    with pytest.raises(PermanentAdapterError):
        call_with_retry(rejected, attempts=5, sleep=lambda s: None)
    assert len(calls) == 1
