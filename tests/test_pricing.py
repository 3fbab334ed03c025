import pytest
from unittest.mock import patch

from scoreboard.billing.lemonsqueezy import UPSTREAM_ERROR, LemonSqueezyError
from scoreboard.extensions import db
from scoreboard.models import AdminAuditLog, TierPricing
from scoreboard.services.pricing_service import PricingService

pytestmark = pytest.mark.payment

CATALOG_CENTS = {
    '1001': 400, '1002': 4000,
    '2001': 800, '2002': 8000,
    '3001': 2300, '3002': 23000,
    '4001': 4800, '4002': 48000,
}


@pytest.fixture
def priced_client(billing_client, remote_variant):
    def get_variant(variant_id):
        return remote_variant(variant_id, CATALOG_CENTS[variant_id])
    billing_client.get_variant.side_effect = get_variant
    return billing_client


class TestPricingSync:

    def test_sync_creates_all_rows(self, app, admin, priced_client):
        summary = PricingService().sync_from_provider(priced_client, admin.id)

        assert summary['synced_count'] == 8
        assert summary['changes_count'] == 8
        assert summary['errors'] == []
        assert TierPricing.query.count() == 8
        row = TierPricing.query.filter_by(tier='legend', billing_interval='yearly').one()
        assert row.amount_cents == 23000
        assert row.external_variant_id == '3002'
        assert row.last_synced_at is not None

    def test_resync_reports_only_changes(self, app, admin, priced_client, remote_variant):
        service = PricingService()
        service.sync_from_provider(priced_client, admin.id)

        changed = dict(CATALOG_CENTS, **{'2001': 900})
        priced_client.get_variant.side_effect = lambda vid: remote_variant(vid, changed[vid])

        summary = service.sync_from_provider(priced_client, admin.id)

        assert summary['changes_count'] == 1
        assert summary['price_changes'] == [{
            'tier': 'champion',
            'billing_interval': 'monthly',
            'old_amount_cents': 800,
            'new_amount_cents': 900,
        }]
        assert TierPricing.query.count() == 8

    def test_provider_errors_are_collected(self, app, admin, priced_client, remote_variant):
        def flaky(variant_id):
            if variant_id == '3001':
                raise LemonSqueezyError(UPSTREAM_ERROR, 'boom')
            return remote_variant(variant_id, CATALOG_CENTS[variant_id])
        priced_client.get_variant.side_effect = flaky

        summary = PricingService().sync_from_provider(priced_client, admin.id)

        assert summary['synced_count'] == 7
        assert summary['errors'] == [{
            'tier': 'legend',
            'billing_interval': 'monthly',
            'variant_id': '3001',
            'error': UPSTREAM_ERROR,
        }]

    def test_unconfigured_variants_are_skipped(self, app, admin, priced_client):
        app.config['LEMONSQUEEZY_YEARLY_LEGEND_VARIANT_ID'] = ''

        summary = PricingService().sync_from_provider(priced_client, admin.id)

        assert summary['skipped_count'] == 1
        assert summary['synced_count'] == 7

    def test_sync_is_audited(self, app, admin, priced_client):
        PricingService().sync_from_provider(priced_client, admin.id)

        entry = AdminAuditLog.query.one()
        assert entry.action == 'sync_pricing'
        assert entry.action_label == 'Synced pricing from LemonSqueezy'
        assert entry.details['synced_count'] == 8


class TestPriceReads:

    def test_static_prices_before_sync(self, app):
        prices = {p['tier']: p for p in PricingService().get_all_prices()}

        assert set(prices) == {'supporter', 'champion', 'legend', 'hall_of_famer'}
        assert prices['hall_of_famer']['yearly']['amount_cents'] == 48000
        assert prices['hall_of_famer']['yearly']['last_synced_at'] is None

    def test_synced_prices_override_static(self, app):
        db.session.add(TierPricing(tier='supporter', billing_interval='monthly', amount_cents=500))
        db.session.commit()

        prices = {p['tier']: p for p in PricingService().get_all_prices()}

        assert prices['supporter']['monthly']['amount_cents'] == 500
        assert prices['supporter']['yearly']['amount_cents'] == 4000

    def test_public_pricing_endpoint(self, client):
        body = client.get('/api/pricing').get_json()
        assert len(body['prices']) == 4
        assert body['catalog'][0]['tier'] == 'supporter'


@pytest.mark.integration
def test_admin_pricing_sync_route(client, admin, auth_headers, priced_client):
    with patch('scoreboard.routes.admin_routes.get_billing_client', return_value=priced_client):
        response = client.post('/api/admin/pricing/sync', headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.get_json()['synced_count'] == 8
