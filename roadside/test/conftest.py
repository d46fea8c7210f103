"""
Pytest configuration and fixtures for the dispatch engine tests
"""
import itertools
import os

# Console logging only; must be set before roadside.logger is imported
os.environ.setdefault('LOG_DIR', '')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

import pytest

from roadside import create_app
from roadside import db as _db
from roadside.buisness.dispatching.errors import PaymentGatewayError
from roadside.buisness.settlement.gateway import (
    GatewayOrder,
    GatewayRefund,
    expected_signature,
    to_minor_units,
)

GATEWAY_SECRET = 'test-gateway-secret'

# Bengaluru city centre; every fixture position is a few km from here
CENTER = (12.9716, 77.5946)


class FakeGateway:
    """In-memory stand-in for the Razorpay client"""

    def __init__(self, secret=GATEWAY_SECRET):
        self.secret = secret
        self.orders = []
        self.refunds = []
        self.fail_orders = False
        self._ids = itertools.count(1)

    def create_order(self, amount, currency, receipt, notes=None):
        if self.fail_orders:
            raise PaymentGatewayError("Payment gateway unreachable: ConnectError")
        order = GatewayOrder(
            order_id=f"order_{next(self._ids):06d}",
            amount_minor=to_minor_units(amount),
            currency=currency,
            receipt=receipt,
        )
        self.orders.append(order)
        return order

    def verify_signature(self, order_id, payment_id, signature):
        return bool(signature) and expected_signature(self.secret, order_id, payment_id) == signature

    def refund(self, gateway_payment_id, amount, notes=None):
        refund = GatewayRefund(
            refund_id=f"rfnd_{next(self._ids):06d}",
            amount_minor=to_minor_units(amount),
            status='processed',
        )
        self.refunds.append(refund)
        return refund

    def callback_for(self, order_id, payment_id='pay_test_1'):
        """What the checkout widget posts back after a successful payment"""
        return {
            'razorpay_order_id': order_id,
            'razorpay_payment_id': payment_id,
            'razorpay_signature': expected_signature(self.secret, order_id, payment_id),
        }


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(tmp_path, gateway):
    """Create Flask application over a throwaway SQLite file"""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'roadside_test.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'RATELIMIT_ENABLED': False,
        'PAYMENT_GATEWAY_CLIENT': gateway,
        'RAZORPAY_KEY_ID': 'rzp_test_key',
    })

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def engine(app):
    return app.extensions['dispatch_engine']


@pytest.fixture
def client(app):
    """Create Flask test client"""
    from flask import g
    from flask.testing import FlaskClient

    class _ActorScopedClient(FlaskClient):
        # The app fixture holds one app context open, so requests share `g`;
        # drop Flask-Login's cached actor so each request resolves its own.
        def open(self, *args, **kwargs):
            g.pop('_login_user', None)
            return super().open(*args, **kwargs)

    app.test_client_class = _ActorScopedClient
    return app.test_client()


@pytest.fixture
def make_user(db):
    """Factory for users; mechanics default to available with a position"""
    from roadside.data.core.user_info.user import User

    counter = itertools.count(1)

    def _make(role='customer', latitude=None, longitude=None, rating=0.0, is_active=True,
              is_available=None, name=None):
        n = next(counter)
        user = User(
            name=name or f"{role.title()} {n}",
            email=f"{role}{n}@example.com",
            role=role,
            is_active=is_active,
            is_available=(role == User.ROLE_MECHANIC) if is_available is None else is_available,
            latitude=latitude,
            longitude=longitude,
            rating=rating,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user('customer')


@pytest.fixture
def admin(make_user):
    return make_user('admin')


@pytest.fixture
def mechanic(make_user):
    return make_user('mechanic', latitude=CENTER[0] + 0.01, longitude=CENTER[1], rating=4.5)


def request_details(**overrides):
    details = {
        'issue_type': 'flat_tire',
        'description': 'Rear left tyre is flat on the ring road',
        'vehicle': {'type': 'car', 'model': 'Swift', 'plate': 'ka01ab1234'},
        'location': {'latitude': CENTER[0], 'longitude': CENTER[1], 'address': 'MG Road'},
        'quotation': 500,
    }
    details.update(overrides)
    return details


@pytest.fixture
def make_request(engine, customer):
    """Factory for pending requests created through the engine"""

    def _make(owner=None, **overrides):
        return engine.create_request((owner or customer).id, request_details(**overrides))

    return _make


def auth_header(user_id):
    """Bearer header for an actor; needs an app context"""
    from roadside.auth import issue_actor_token
    return {'Authorization': f"Bearer {issue_actor_token(user_id)}"}
