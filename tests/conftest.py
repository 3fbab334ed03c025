import pytest
from datetime import timedelta
from unittest.mock import Mock

from faker import Faker
from flask_jwt_extended import create_access_token

from scoreboard import create_app
from scoreboard.billing.lemonsqueezy import LemonSqueezyClient, RemoteSubscription, RemoteVariant
from scoreboard.extensions import db
from scoreboard.models import Scoreboard, ScoreboardEntry, Subscription, User
from scoreboard.models.user import ROLE_SYSTEM_ADMIN, ROLE_USER
from scoreboard.utils.timeutils import utcnow

# Initialize Faker for generating test data
fake = Faker()


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (exercises the HTTP layer)"
    )
    config.addinivalue_line(
        "markers",
        "db: mark test as database-intensive"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )


@pytest.fixture()
def app():
    """Application with a fresh in-memory database per test"""
    app = create_app("testing")
    app.config.update(
        TESTING=True,
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(hours=1),
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make_user(role=ROLE_USER, email=None, full_name=None, was_supporter=False):
        user = User(
            email=email or fake.unique.email().lower(),
            full_name=full_name or fake.name(),
            role=role,
            was_supporter=was_supporter,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture()
def user(make_user):
    return make_user()


@pytest.fixture()
def admin(make_user):
    return make_user(role=ROLE_SYSTEM_ADMIN, email="admin@scoreboard.test", full_name="Site Admin")


@pytest.fixture()
def auth_headers(app):
    def _auth_headers(account):
        token = create_access_token(identity=account.id)
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers


@pytest.fixture()
def make_subscription(app):
    def _make_subscription(user, **overrides):
        fields = {
            'status': 'active',
            'tier': 'supporter',
            'billing_interval': 'monthly',
            'amount_cents': 400,
            'currency': 'USD',
            'is_gifted': False,
        }
        fields.update(overrides)
        subscription = Subscription(user_id=user.id, **fields)
        db.session.add(subscription)
        db.session.commit()
        return subscription
    return _make_subscription


@pytest.fixture()
def make_scoreboard(app):
    def _make_scoreboard(owner, entries=0, **overrides):
        fields = {
            'title': fake.sentence(nb_words=3),
            'visibility': 'public',
            'is_locked': False,
        }
        fields.update(overrides)
        scoreboard = Scoreboard(owner_id=owner.id, **fields)
        db.session.add(scoreboard)
        db.session.flush()
        for i in range(entries):
            db.session.add(ScoreboardEntry(scoreboard_id=scoreboard.id, name=f"Player {i}", score=i))
        db.session.commit()
        return scoreboard
    return _make_scoreboard


@pytest.fixture()
def billing_client():
    """LemonSqueezy client double; no network in tests"""
    return Mock(spec=LemonSqueezyClient)


@pytest.fixture()
def remote_subscription():
    def _remote_subscription(**overrides):
        fields = {
            'id': '98765',
            'status': 'active',
            'status_formatted': 'Active',
            'variant_id': '2001',
            'product_id': '555',
            'order_id': '777',
            'customer_id': '4242',
            'user_email': 'customer@example.com',
            'user_name': 'Casey Customer',
            'price_cents': 800,
            'currency': 'USD',
            'card_brand': 'visa',
            'card_last_four': '4242',
            'payment_processor': 'stripe',
            'test_mode': True,
            'cancelled': False,
            'created_at': utcnow() - timedelta(days=30),
            'renews_at': utcnow() + timedelta(days=30),
            'ends_at': None,
            'customer_portal_url': 'https://store.example.com/billing',
            'update_payment_method_url': None,
            'customer_portal_update_subscription_url': None,
        }
        fields.update(overrides)
        return RemoteSubscription(**fields)
    return _remote_subscription


@pytest.fixture()
def remote_variant():
    def _remote_variant(variant_id, price_cents, interval='month'):
        return RemoteVariant(id=str(variant_id), name='Plan', price_cents=price_cents,
                             interval=interval, status='published')
    return _remote_variant
