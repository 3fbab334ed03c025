import pytest
import requests
from unittest.mock import Mock

from scoreboard.billing.lemonsqueezy import (
    NOT_FOUND,
    UPSTREAM_ERROR,
    LemonSqueezyClient,
    LemonSqueezyError,
    parse_subscription,
    parse_variant,
)
from scoreboard.billing.webhook_security import compute_signature, verify_lemonsqueezy_signature

pytestmark = pytest.mark.payment


def subscription_payload(**attributes):
    attrs = {
        'status': 'active',
        'status_formatted': 'Active',
        'variant_id': 2001,
        'product_id': 555,
        'order_id': 777,
        'customer_id': 4242,
        'user_email': 'customer@example.com',
        'user_name': 'Casey Customer',
        'card_brand': 'visa',
        'card_last_four': '4242',
        'payment_processor': 'stripe',
        'test_mode': True,
        'cancelled': False,
        'created_at': '2024-01-15T10:00:00.000000Z',
        'renews_at': '2024-02-15T10:00:00.000000Z',
        'ends_at': None,
        'first_subscription_item': {'price': 800, 'currency': 'USD'},
        'urls': {
            'customer_portal': 'https://store.example.com/billing',
            'update_payment_method': 'https://store.example.com/billing/card',
        },
    }
    attrs.update(attributes)
    return {'data': {'type': 'subscriptions', 'id': '98765', 'attributes': attrs}}


def fake_response(status_code=200, payload=None, text=''):
    response = Mock()
    response.status_code = status_code
    response.content = b'{}' if payload is not None else b''
    response.text = text
    response.json.return_value = payload
    return response


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(http):
    return LemonSqueezyClient('secret-key', 'https://api.lemonsqueezy.test/v1/', timeout=5, session=http)


class TestParsing:

    def test_parse_subscription(self):
        remote = parse_subscription(subscription_payload())

        assert remote.id == '98765'
        assert remote.variant_id == '2001'
        assert remote.customer_id == '4242'
        assert remote.price_cents == 800
        assert remote.currency == 'USD'
        assert remote.renews_at.year == 2024
        assert remote.renews_at.tzinfo is not None
        assert remote.ends_at is None
        assert remote.customer_portal_url == 'https://store.example.com/billing'
        assert remote.customer_portal_update_subscription_url is None

    def test_missing_price_is_none(self):
        remote = parse_subscription(subscription_payload(first_subscription_item=None))
        assert remote.price_cents is None

    def test_unparseable_timestamp_is_dropped(self):
        remote = parse_subscription(subscription_payload(renews_at='next tuesday'))
        assert remote.renews_at is None

    def test_missing_attributes_is_upstream_error(self):
        with pytest.raises(LemonSqueezyError) as exc_info:
            parse_subscription({'data': {'id': '1'}})
        assert exc_info.value.kind == UPSTREAM_ERROR

    def test_parse_variant(self):
        variant = parse_variant({
            'data': {'id': 1001, 'attributes': {'name': 'Supporter', 'price': '400', 'interval': 'month'}}
        })
        assert variant.id == '1001'
        assert variant.price_cents == 400
        assert variant.interval == 'month'


class TestClient:

    def test_get_subscription_sends_json_api_request(self, client, http):
        http.request.return_value = fake_response(payload=subscription_payload())

        remote = client.get_subscription('98765')

        assert remote.status == 'active'
        args, kwargs = http.request.call_args
        assert args == ('GET', 'https://api.lemonsqueezy.test/v1/subscriptions/98765')
        assert kwargs['headers']['Authorization'] == 'Bearer secret-key'
        assert kwargs['headers']['Accept'] == 'application/vnd.api+json'
        assert kwargs['timeout'] == 5

    def test_404_is_not_found(self, client, http):
        http.request.return_value = fake_response(status_code=404, text='{"errors": []}')

        with pytest.raises(LemonSqueezyError) as exc_info:
            client.get_subscription('missing')

        assert exc_info.value.kind == NOT_FOUND
        assert exc_info.value.is_not_found

    @pytest.mark.parametrize('status_code', [401, 422, 500, 503])
    def test_other_errors_are_upstream(self, client, http, status_code):
        http.request.return_value = fake_response(status_code=status_code, text='boom')

        with pytest.raises(LemonSqueezyError) as exc_info:
            client.get_subscription('98765')

        assert exc_info.value.kind == UPSTREAM_ERROR
        assert exc_info.value.status_code == status_code

    def test_transport_failure_is_upstream(self, client, http):
        http.request.side_effect = requests.Timeout('timed out')

        with pytest.raises(LemonSqueezyError) as exc_info:
            client.get_variant('1001')

        assert exc_info.value.kind == UPSTREAM_ERROR
        assert http.request.call_count == 1

    def test_invalid_json_is_upstream(self, client, http):
        response = fake_response(payload={})
        response.json.side_effect = ValueError('not json')
        http.request.return_value = response

        with pytest.raises(LemonSqueezyError) as exc_info:
            client.get_variant('1001')
        assert exc_info.value.kind == UPSTREAM_ERROR

    def test_cancel_without_body_returns_none(self, client, http):
        http.request.return_value = fake_response(status_code=204)
        assert client.cancel_subscription('98765') is None
        assert http.request.call_args[0][0] == 'DELETE'

    def test_cancel_echoes_subscription(self, client, http):
        http.request.return_value = fake_response(payload=subscription_payload(
            status='cancelled', cancelled=True, ends_at='2024-02-15T10:00:00Z'
        ))
        remote = client.cancel_subscription('98765')
        assert remote.cancelled is True
        assert remote.ends_at.day == 15

    def test_update_variant_sends_numeric_id(self, client, http):
        http.request.return_value = fake_response(payload=subscription_payload(variant_id=3001))

        client.update_subscription_variant('98765', '3001')

        args, kwargs = http.request.call_args
        assert args[0] == 'PATCH'
        assert kwargs['json']['data']['attributes']['variant_id'] == 3001
        assert kwargs['json']['data']['id'] == '98765'


class TestWebhookSignature:

    def test_valid_signature(self):
        body = b'{"meta": {"event_name": "subscription_updated"}}'
        signature = compute_signature(body, 'whsec')
        assert verify_lemonsqueezy_signature(body, signature, 'whsec') is True

    def test_tampered_body_is_rejected(self):
        signature = compute_signature(b'{"a": 1}', 'whsec')
        assert verify_lemonsqueezy_signature(b'{"a": 2}', signature, 'whsec') is False

    @pytest.mark.parametrize('signature, secret', [(None, 'whsec'), ('', 'whsec'), ('abc', None)])
    def test_missing_inputs_are_rejected(self, signature, secret):
        assert verify_lemonsqueezy_signature(b'{}', signature, secret) is False
