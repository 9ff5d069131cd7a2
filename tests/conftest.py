from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from food_service import db
from food_service.config import Settings
from food_service.main import create_app
from food_service.models import (
    CustomerLocation,
    Item,
    Order,
    OrderDetail,
    OrderStatus,
    Restaurant,
    User,
    UserRole,
    utcnow,
)
from food_service.security import create_access_token, hash_password


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        sweep_enabled=False,
    )


@pytest.fixture
def engine(settings):
    engine = db.make_engine(settings.database_url)
    db.init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
def db_session(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def seed(db_session, settings):
    """Two customers and an admin, two restaurants with items, one address per customer."""
    password = hash_password("secret", settings.bcrypt_rounds)
    alice = User(name="Alice", email="alice@example.com", password=password, role=UserRole.CUSTOMER)
    bob = User(name="Bob", email="bob@example.com", password=password, role=UserRole.CUSTOMER)
    admin = User(name="Admin", email="admin@example.com", password=password, role=UserRole.ADMIN)
    db_session.add_all([alice, bob, admin])
    db_session.flush()

    pizza = Restaurant(restaurant_id=1, name="Pizza Place", preparing_time=10, delivery_time=25, category="Pizza")
    sushi = Restaurant(restaurant_id=2, name="Sushi Bar", category="Japanese")
    db_session.add_all([pizza, sushi])
    db_session.flush()

    db_session.add_all(
        [
            Item(item_id=5, restaurant_id=1, name="Margherita", price=9.50, image="/img/margherita.jpg"),
            Item(item_id=6, restaurant_id=1, name="Garlic Bread", price=4.00),
            Item(item_id=7, restaurant_id=2, name="Salmon Roll", price=12.00),
            Item(item_id=8, restaurant_id=2, name="Seasonal Special", price=15.00, availability=False),
        ]
    )
    alice_home = CustomerLocation(user_id=alice.user_id, street="1 Main St", building="A", city="Springfield", floor="2")
    bob_home = CustomerLocation(user_id=bob.user_id, street="9 Elm St", city="Shelbyville")
    db_session.add_all([alice_home, bob_home])
    db_session.commit()

    return {
        "alice": alice,
        "bob": bob,
        "admin": admin,
        "alice_home": alice_home,
        "bob_home": bob_home,
    }


@pytest.fixture
def tokens(seed, settings):
    return {name: create_access_token(seed[name], settings) for name in ("alice", "bob", "admin")}


@pytest.fixture
def headers(tokens):
    return {name: {"Authorization": f"Bearer {token}"} for name, token in tokens.items()}


@pytest.fixture
def make_order(db_session):
    """Insert an order directly, ``minutes_ago`` old, with (item_id, quantity, price) lines."""

    def _make(user, location, lines=((5, 1, 9.50),), minutes_ago=0, status=OrderStatus.PREPARING, total=None):
        order = Order(
            user_id=user.user_id,
            location_id=location.location_id,
            order_date=utcnow() - timedelta(minutes=minutes_ago),
            status=status,
            total_amount=total if total is not None else sum(q * p for _, q, p in lines),
            payment_method="Card",
        )
        db_session.add(order)
        db_session.flush()
        for item_id, quantity, price in lines:
            db_session.add(OrderDetail(order_id=order.order_id, item_id=item_id, quantity=quantity, price=price))
        db_session.commit()
        return order

    return _make


@pytest.fixture
def status_of(db_session):
    def _status(order_id):
        db_session.expire_all()
        return db_session.get(Order, order_id).status

    return _status
