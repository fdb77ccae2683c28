"""
Pytest fixtures for fuelshift backend tests.

Provides an in-memory database, a per-test table wipe, station/dispenser
factories and identity headers for the test client.
"""

from decimal import Decimal

import pytest

from fuelshift import create_app
from fuelshift.extensions import db
from fuelshift.models import Dispenser, Station
from fuelshift.services import notification_service, policy_service
from fuelshift.services import shift_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables, dispatcher and policy cache for each test."""
    with app.app_context():
        db.session.rollback()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        notification_service.init_app(app)
        policy_service.init_app(app)

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def events(db_session):
    """Collect every dispatched engine event."""
    received = []
    for event_type in notification_service.EVENT_TYPES:
        notification_service.subscribe(event_type, received.append)
    return received


@pytest.fixture(scope='function')
def station(db_session):
    station = Station(name="Highway 7", code="HW7", location="Km 42")
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def other_station(db_session):
    station = Station(name="Ring Road", code="RR1")
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def dispenser(db_session, station):
    dispenser = Dispenser(
        station_id=station.id,
        dispenser_code="D-01",
        fuel_type="PETROL",
        unit_price=Decimal("100.00"),
    )
    db_session.add(dispenser)
    db_session.commit()
    return dispenser


@pytest.fixture(scope='function')
def active_shift(dispenser):
    """Scenario baseline: opened at 1000.0 on a 100/unit dispenser."""
    return shift_service.open_shift(dispenser.id, "op-1", "MORNING", "1000.0")


@pytest.fixture(scope='function')
def flagged_shift(active_shift):
    """Closed 500 short: 150 units sold, 14500 handed in."""
    return shift_service.close_shift(active_shift.id, "1150.0", actual_cash="14500")


def actor_headers(user_id: str, role: str, station_id: int | None = None) -> dict:
    """Identity headers as forwarded by the gateway."""
    headers = {'X-User-Id': user_id, 'X-User-Role': role}
    if station_id is not None:
        headers['X-Station-Id'] = str(station_id)
    return headers
