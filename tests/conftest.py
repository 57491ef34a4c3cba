from datetime import date, time, timedelta

import pytest
from flask_jwt_extended import create_access_token
from passlib.hash import pbkdf2_sha256

from dinebook import create_app, db
from dinebook.config import TestingConfig
from dinebook.models import (
    Admin, User, Restaurant, RestaurantOperatingHours, Floorplan, TableInstance
)
from dinebook.services import build_booking_service, Actor


BOOKING_DATE = date.today() + timedelta(days=7)
TABLE_IDS = ["t1", "t2", "t3", "t4", "t5"]


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify_status_change(self, booking, new_status, previous_status):
        self.calls.append((booking.id, new_status, previous_status))


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        # A file database is shared by every connection; :memory: is not.
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'bookings.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {"timeout": 30, "check_same_thread": False}
        }

    app = create_app(Config)
    with app.app_context():
        db.create_all()
        seed(app)
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def seed(app):
    password = pbkdf2_sha256.hash("password123")
    owner = Admin(first_name="Olivia", last_name="Owner", email="owner@example.com",
                  password=password)
    rival = Admin(first_name="Ravi", last_name="Rival", email="rival@example.com",
                  password=password)
    alice = User(first_name="Alice", last_name="Diner", email="alice@example.com",
                 password=password, phone="+6612345678")
    bob = User(first_name="Bob", last_name="Guest", email="bob@example.com",
               password=password)
    db.session.add_all([owner, rival, alice, bob])
    db.session.flush()

    restaurant = Restaurant(name="Basil House", timezone="UTC", admin_id=owner.id)
    other = Restaurant(name="Rival Grill", timezone="UTC", admin_id=rival.id)
    db.session.add_all([restaurant, other])
    db.session.flush()

    for day in range(7):
        db.session.add(RestaurantOperatingHours(
            restaurant_id=restaurant.id, day_of_week=day,
            opening_time=time(10, 0), closing_time=time(23, 0)))

    main_floor = Floorplan(restaurant_id=restaurant.id, name="Main floor", is_active=True)
    old_floor = Floorplan(restaurant_id=restaurant.id, name="Old terrace", is_active=False)
    other_floor = Floorplan(restaurant_id=other.id, name="Hall", is_active=True)
    db.session.add_all([main_floor, old_floor, other_floor])
    db.session.flush()

    for table_id in TABLE_IDS:
        db.session.add(TableInstance(restaurant_id=restaurant.id, floorplan_id=main_floor.id,
                                     table_id=table_id, capacity=4))
    db.session.add(TableInstance(restaurant_id=restaurant.id, floorplan_id=old_floor.id,
                                 table_id="x1", capacity=2))
    db.session.add(TableInstance(restaurant_id=other.id, floorplan_id=other_floor.id,
                                 table_id="t1", capacity=4))
    db.session.commit()

    app.config["SEED"] = {
        "owner_id": owner.id,
        "rival_id": rival.id,
        "alice_id": alice.id,
        "bob_id": bob.id,
        "restaurant_id": restaurant.id,
        "other_restaurant_id": other.id,
    }


@pytest.fixture
def seed_ids(app):
    return app.config["SEED"]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(app, notifier):
    return build_booking_service(notifier=notifier)


@pytest.fixture
def owner(seed_ids):
    return Actor(str(seed_ids["owner_id"]), "admin")


@pytest.fixture
def rival(seed_ids):
    return Actor(str(seed_ids["rival_id"]), "admin")


@pytest.fixture
def alice(seed_ids):
    return Actor(str(seed_ids["alice_id"]), "user")


@pytest.fixture
def bob(seed_ids):
    return Actor(str(seed_ids["bob_id"]), "user")


@pytest.fixture
def make_booking(service, seed_ids):
    """Create a booking for a customer; defaults to Alice on t1 18:00-20:00."""

    def _make(table_id="t1", start_time="18:00", end_time="20:00", guest_count=4,
              user="alice", booking_date=BOOKING_DATE, restaurant_id=None):
        user_obj = db.session.get(User, seed_ids[f"{user}_id"])
        return service.create_booking({
            "restaurant_id": restaurant_id or seed_ids["restaurant_id"],
            "table_id": table_id,
            "date": booking_date,
            "start_time": start_time,
            "end_time": end_time,
            "guest_count": guest_count,
            "customer": {
                "user_id": user_obj.id,
                "name": user_obj.full_name,
                "email": user_obj.email,
                "phone": user_obj.phone,
            },
        })

    return _make


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(identity, role):
        token = create_access_token(identity=str(identity), additional_claims={"role": role})
        return {"Authorization": f"Bearer {token}"}

    return _headers
