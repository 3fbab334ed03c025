import pytest
from datetime import timedelta
from unittest.mock import patch

from scoreboard.billing.lemonsqueezy import UPSTREAM_ERROR, LemonSqueezyError
from scoreboard.extensions import db
from scoreboard.models import Scoreboard, ScoreboardEntry, Subscription
from scoreboard.utils.timeutils import utcnow

pytestmark = pytest.mark.integration


@pytest.fixture
def headers(user, auth_headers):
    return auth_headers(user)


@pytest.fixture
def supporter_headers(user, make_subscription, headers):
    make_subscription(user, status='active', tier='legend', amount_cents=2300,
                      external_subscription_id='98765', external_variant_id='3001')
    return headers


class TestScoreboardCrud:

    def test_requires_token(self, client):
        assert client.get('/api/scoreboards').status_code == 401

    def test_create_and_list(self, client, headers):
        response = client.post('/api/scoreboards', json={'title': 'Weekly Quiz'}, headers=headers)

        assert response.status_code == 201
        assert response.get_json()['scoreboard']['visibility'] == 'public'

        body = client.get('/api/scoreboards', headers=headers).get_json()
        assert [s['title'] for s in body['scoreboards']] == ['Weekly Quiz']
        assert body['is_supporter'] is False
        assert body['remaining_public_scoreboards'] == 1
        assert body['limits']['max_entries_per_scoreboard'] == 50

    def test_title_is_required(self, client, headers):
        response = client.post('/api/scoreboards', json={'title': '  '}, headers=headers)
        assert response.status_code == 400

    def test_third_public_board_is_denied_on_free_plan(self, client, user, headers, make_scoreboard):
        make_scoreboard(user)
        make_scoreboard(user)

        response = client.post('/api/scoreboards', json={'title': 'One too many'}, headers=headers)

        assert response.status_code == 403
        body = response.get_json()
        assert body['error'] == 'limit_reached'
        assert body['upgrade_url'] == '/supporter-plan'
        assert Scoreboard.query.filter_by(owner_id=user.id).count() == 2

    def test_supporter_creates_private_board_with_custom_theme(self, client, supporter_headers):
        response = client.post('/api/scoreboards', json={
            'title': 'Members only',
            'visibility': 'private',
            'custom_styles': {'preset': 'custom', 'accent': '#123456'},
        }, headers=supporter_headers)

        assert response.status_code == 201

    def test_locked_board_update_is_denied(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, is_locked=True)

        response = client.patch(f'/api/scoreboards/{board.id}', json={'title': 'Renamed'}, headers=headers)

        assert response.status_code == 403
        assert response.get_json()['error'] == 'locked'

    def test_update_title(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user)
        response = client.patch(f'/api/scoreboards/{board.id}', json={'title': 'Renamed'}, headers=headers)
        assert response.get_json()['scoreboard']['title'] == 'Renamed'

    def test_other_owners_private_board_is_hidden(self, client, make_user, headers, make_scoreboard):
        stranger = make_user()
        private = make_scoreboard(stranger, visibility='private')
        public = make_scoreboard(stranger)

        assert client.get(f'/api/scoreboards/{private.id}', headers=headers).status_code == 404
        assert client.get(f'/api/scoreboards/{public.id}', headers=headers).status_code == 200
        assert client.delete(f'/api/scoreboards/{public.id}', headers=headers).status_code == 404

    def test_owner_view_of_private_board_on_free_plan_is_locked(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, visibility='private')
        response = client.get(f'/api/scoreboards/{board.id}', headers=headers)
        assert response.status_code == 403
        assert response.get_json()['error'] == 'locked'

    def test_delete_removes_entries(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, entries=3)

        response = client.delete(f'/api/scoreboards/{board.id}', headers=headers)

        assert response.status_code == 200
        assert ScoreboardEntry.query.count() == 0


class TestEntries:

    def test_add_entry(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user)

        response = client.post(f'/api/scoreboards/{board.id}/entries',
                               json={'name': 'Ada', 'score': 42}, headers=headers)

        assert response.status_code == 201
        assert response.get_json()['entry']['score'] == 42

    def test_fifty_first_entry_is_denied(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, entries=50)

        response = client.post(f'/api/scoreboards/{board.id}/entries',
                               json={'name': 'Late', 'score': 1}, headers=headers)

        assert response.status_code == 403
        assert response.get_json()['error'] == 'limit_reached'
        assert board.entries.count() == 50

    def test_bulk_import_is_all_or_nothing(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, entries=40)
        entries = [{'name': f'Player {i}', 'score': i} for i in range(11)]

        response = client.post(f'/api/scoreboards/{board.id}/entries/bulk',
                               json={'entries': entries}, headers=headers)

        assert response.status_code == 403
        assert 'Currently 40 entries, trying to add 11' in response.get_json()['message']
        assert board.entries.count() == 40

    def test_bulk_import_within_limit(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, entries=40)
        entries = [{'name': f'Player {i}', 'score': i} for i in range(10)]

        response = client.post(f'/api/scoreboards/{board.id}/entries/bulk',
                               json={'entries': entries}, headers=headers)

        assert response.status_code == 201
        assert response.get_json()['count'] == 10

    def test_bulk_import_validates_every_entry(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user)
        response = client.post(f'/api/scoreboards/{board.id}/entries/bulk',
                               json={'entries': [{'name': 'ok'}, {'score': 3}]}, headers=headers)
        assert response.status_code == 400
        assert response.get_json()['message'].startswith('Entry 2')

    def test_supporter_has_no_entry_cap(self, client, user, supporter_headers, make_scoreboard):
        board = make_scoreboard(user, entries=50)
        response = client.post(f'/api/scoreboards/{board.id}/entries',
                               json={'name': 'Extra', 'score': 1}, headers=supporter_headers)
        assert response.status_code == 201

    def test_update_and_delete_entry(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user, entries=1)
        entry = board.entries.first()

        updated = client.patch(f'/api/scoreboards/{board.id}/entries/{entry.id}',
                               json={'score': 99}, headers=headers)
        assert updated.get_json()['entry']['score'] == 99

        deleted = client.delete(f'/api/scoreboards/{board.id}/entries/{entry.id}', headers=headers)
        assert deleted.status_code == 200
        assert board.entries.count() == 0


class TestUnlockAndDowngrade:

    def test_downgrade_locks_boards_on_profile_load(self, client, make_user, auth_headers,
                                                    make_subscription, make_scoreboard):
        former = make_user(was_supporter=True)
        make_subscription(former, status='expired')
        boards = [make_scoreboard(former) for _ in range(3)]

        body = client.get('/api/billing/status', headers=auth_headers(former)).get_json()

        assert body['is_supporter'] is False
        assert body['downgraded'] is True
        assert all(db.session.get(Scoreboard, b.id).is_locked for b in boards)

        again = client.get('/api/billing/status', headers=auth_headers(former)).get_json()
        assert again['downgraded'] is False

    def test_unlock_respects_public_cap(self, client, user, headers, make_scoreboard):
        first = make_scoreboard(user, is_locked=True)
        second = make_scoreboard(user, is_locked=True)
        third = make_scoreboard(user, is_locked=True)

        assert client.post(f'/api/scoreboards/{first.id}/unlock', headers=headers).status_code == 200
        assert client.post(f'/api/scoreboards/{second.id}/unlock', headers=headers).status_code == 200
        response = client.post(f'/api/scoreboards/{third.id}/unlock', headers=headers)

        assert response.status_code == 403
        assert db.session.get(Scoreboard, third.id).is_locked is True

    def test_lock_all(self, client, user, headers, make_scoreboard):
        make_scoreboard(user)
        make_scoreboard(user)
        body = client.post('/api/scoreboards/lock-all', headers=headers).get_json()
        assert body['locked_count'] == 2


class TestKiosk:

    def test_free_user_cannot_configure_kiosk(self, client, user, headers, make_scoreboard):
        board = make_scoreboard(user)
        response = client.put(f'/api/scoreboards/{board.id}/kiosk', json={'enabled': True}, headers=headers)
        assert response.status_code == 403
        assert response.get_json()['message'] == 'Kiosk mode requires a Supporter plan.'

    def test_supporter_configures_kiosk(self, client, user, supporter_headers, make_scoreboard):
        board = make_scoreboard(user)

        response = client.put(f'/api/scoreboards/{board.id}/kiosk',
                              json={'enabled': True, 'slide_duration_seconds': 15},
                              headers=supporter_headers)

        assert response.status_code == 200
        assert response.get_json()['kiosk_config']['slide_duration_seconds'] == 15
        fetched = client.get(f'/api/scoreboards/{board.id}/kiosk', headers=supporter_headers).get_json()
        assert fetched['kiosk_config']['enabled'] is True

    @pytest.mark.parametrize('duration', [2, 301, '10', True])
    def test_slide_duration_bounds(self, client, user, supporter_headers, make_scoreboard, duration):
        board = make_scoreboard(user)
        response = client.put(f'/api/scoreboards/{board.id}/kiosk',
                              json={'slide_duration_seconds': duration}, headers=supporter_headers)
        assert response.status_code == 400


class TestEmbed:

    def test_embed_shows_powered_by_for_free_owner(self, client, user, make_scoreboard):
        board = make_scoreboard(user, entries=2)

        body = client.get(f'/api/embed/{board.id}').get_json()

        assert body['show_powered_by'] is True
        assert [e['score'] for e in body['entries']] == [1.0, 0.0]

    def test_embed_hides_powered_by_for_supporter(self, client, user, make_subscription, make_scoreboard):
        make_subscription(user, is_gifted=True, tier='appreciation', amount_cents=0,
                          gifted_expires_at=utcnow() + timedelta(days=5))
        board = make_scoreboard(user)

        assert client.get(f'/api/embed/{board.id}').get_json()['show_powered_by'] is False

    def test_private_embed_is_forbidden(self, client, user, make_scoreboard):
        board = make_scoreboard(user, visibility='private')
        response = client.get(f'/api/embed/{board.id}')
        assert response.status_code == 403
        assert response.get_json()['message'] == 'Scoreboard not public'

    def test_missing_embed_is_404(self, client):
        assert client.get('/api/embed/does-not-exist').status_code == 404


@pytest.mark.payment
class TestChangePlan:

    def test_change_plan_updates_local_row(self, client, user, supporter_headers, billing_client,
                                           remote_subscription):
        billing_client.update_subscription_variant.return_value = remote_subscription(
            variant_id='4002', price_cents=48000
        )

        with patch('scoreboard.routes.billing_routes.get_billing_client', return_value=billing_client):
            response = client.post('/api/billing/change-plan',
                                   json={'tier': 'hall_of_famer', 'billing_interval': 'yearly'},
                                   headers=supporter_headers)

        assert response.status_code == 200
        row = Subscription.query.filter_by(user_id=user.id).one()
        assert (row.tier, row.billing_interval, row.amount_cents) == ('hall_of_famer', 'yearly', 48000)
        billing_client.update_subscription_variant.assert_called_once_with('98765', '4002')

    def test_provider_outage_hides_detail(self, client, supporter_headers, billing_client):
        billing_client.update_subscription_variant.side_effect = LemonSqueezyError(
            UPSTREAM_ERROR, 'Billing provider returned HTTP 500', 500
        )

        with patch('scoreboard.routes.billing_routes.get_billing_client', return_value=billing_client):
            response = client.post('/api/billing/change-plan',
                                   json={'tier': 'champion', 'billing_interval': 'monthly'},
                                   headers=supporter_headers)

        assert response.status_code == 502
        assert 'HTTP 500' not in response.get_json()['message']

    def test_appreciation_is_not_purchasable(self, client, supporter_headers):
        response = client.post('/api/billing/change-plan',
                               json={'tier': 'appreciation', 'billing_interval': 'monthly'},
                               headers=supporter_headers)
        assert response.status_code == 400
