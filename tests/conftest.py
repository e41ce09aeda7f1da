from datetime import date
from decimal import Decimal

import pytest

from app import create_app
from auth import RequestContext, register_user
from bookings import BookingManager
from config import TestConfig
from models import ROLE_ADMIN, Garden, db
from validation import PaymentInfo

TODAY = date(2026, 3, 15)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    app.extensions['booking_manager'] = BookingManager(today=lambda: TODAY)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def manager(app):
    return app.extensions['booking_manager']


@pytest.fixture
def admin(app):
    return register_user('admin@example.com', 'secret-admin', 'Admin', role=ROLE_ADMIN)


@pytest.fixture
def alice(app):
    return register_user('alice@example.com', 'secret-alice', 'Alice')


@pytest.fixture
def bob(app):
    return register_user('bob@example.com', 'secret-bob', 'Bob')


@pytest.fixture
def admin_ctx(admin):
    return RequestContext(user_id=admin.id, role=admin.role)


@pytest.fixture
def alice_ctx(alice):
    return RequestContext(user_id=alice.id)


@pytest.fixture
def bob_ctx(bob):
    return RequestContext(user_id=bob.id)


@pytest.fixture
def make_garden(admin):
    def _make(total_plots=3, price='25.00', name='Riverside Allotments'):
        garden = Garden(
            owner_id=admin.id,
            name=name,
            description='Raised beds with a shared shed',
            address='1 River Rd, Budapest',
            latitude=47.4979,
            longitude=19.0402,
            base_price_per_month=Decimal(price),
            total_plots=total_plots,
            available_plots=total_plots,
            amenities=['water', 'tools'],
        )
        db.session.add(garden)
        db.session.commit()
        return garden
    return _make


@pytest.fixture
def card():
    return PaymentInfo(card_number='4111 1111 1111 1111', expiry_month=12, expiry_year=2028, cvv='123')


def plots_left(garden_id):
    db.session.expire_all()
    return db.session.get(Garden, garden_id).available_plots
