from datetime import datetime

import pytest
from sqlalchemy import event, select, update

from food_service.models import Order, OrderStatus, Review, User, UserRole
from food_service.routes.reviews import aggregate_rating


# ----- infra -----

def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "food-service", "sweeper": False}


def test_metrics_exposed(client, seed, headers):
    client.get("/restaurants")

    body = client.get("/metrics").text

    assert "http_requests_total" in body
    assert "order_sweep_runs_total" in body


def test_correlation_id_is_echoed_in_errors(client):
    r = client.get("/orders/history", headers={"X-Correlation-Id": "abc-123"})

    assert r.status_code == 401
    assert r.json()["detail"]["correlationId"] == "abc-123"


# ----- auth -----

def test_register_and_login(client, db_session):
    r = client.post("/api/auth/register", json={"email": "Carol@Example.com", "password": "pw123", "phone": "555"})
    assert r.status_code == 201

    user = db_session.execute(select(User).where(User.email == "carol@example.com")).scalar_one()
    assert user.name == "carol"
    assert user.role == UserRole.CUSTOMER
    assert user.password != "pw123"

    token = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "pw123"}).json()["token"]
    profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert profile.status_code == 200
    assert profile.json()["email"] == "carol@example.com"
    assert profile.json()["phone"] == "555"


def test_register_duplicate_email(client, seed):
    r = client.post("/api/auth/register", json={"email": "alice@example.com", "password": "x"})

    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "EMAIL_TAKEN"


def test_login_wrong_password(client, seed):
    r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong"})

    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "INVALID_CREDENTIALS"


def test_login_unknown_user(client):
    r = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "x"})

    assert r.status_code == 401


def test_expired_token(client, seed, settings):
    from dataclasses import replace

    from food_service.security import create_access_token

    token = create_access_token(seed["alice"], replace(settings, jwt_lifetime_seconds=-10))
    r = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert r.status_code == 403


def test_update_user(client, seed, headers):
    uid = seed["alice"].user_id

    own = client.put(f"/users/{uid}", json={"name": "Alicia"}, headers=headers["alice"])
    other = client.put(f"/users/{uid}", json={"name": "Mallory"}, headers=headers["bob"])

    assert own.status_code == 200
    assert own.json()["name"] == "Alicia"
    assert other.status_code == 403


# ----- locations -----

def test_locations(client, seed, headers):
    r = client.post(
        "/locations",
        json={"street": "5 Oak Ave", "city": "Springfield", "apartment": "3B"},
        headers=headers["alice"],
    )
    assert r.status_code == 201
    new_id = r.json()["locationId"]

    mine = client.get("/locations", headers=headers["alice"]).json()
    theirs = client.get("/locations", headers=headers["bob"]).json()

    assert [loc["location_id"] for loc in mine] == [seed["alice_home"].location_id, new_id]
    assert mine[1]["apartment"] == "3B"
    assert [loc["street"] for loc in theirs] == ["9 Elm St"]


def test_location_requires_street_and_city(client, seed, headers):
    r = client.post("/locations", json={"street": "5 Oak Ave"}, headers=headers["alice"])

    assert r.status_code == 422


# ----- restaurants and items -----

def test_list_restaurants_with_display_eta(client, seed):
    restaurants = client.get("/restaurants").json()

    assert [r["name"] for r in restaurants] == ["Pizza Place", "Sushi Bar"]
    assert restaurants[0]["eta_minutes"] == 35
    assert restaurants[1]["eta_minutes"] is None
    assert restaurants[0]["status"] == "open"


def test_restaurant_items(client, seed):
    items = client.get("/restaurants/1/items").json()

    assert [i["item_id"] for i in items] == [5, 6]
    assert items[0]["price"] == 9.5


def test_missing_restaurant(client, seed):
    assert client.get("/restaurants/42").status_code == 404


def test_admin_restaurant_and_item_crud(client, seed, headers):
    created = client.post(
        "/admin/create-restaurant",
        json={"name": "Taco Stand", "status": "busy", "opening_time": "10:00:00", "preparing_time": 5},
        headers=headers["admin"],
    )
    assert created.status_code == 201
    rid = created.json()["id"]

    updated = client.put(f"/admin/restaurant/{rid}", json={"status": "closed"}, headers=headers["admin"])
    assert updated.json()["status"] == "closed"
    assert updated.json()["eta_minutes"] == 5

    item = client.post(
        "/admin/create-item",
        json={"restaurant_id": rid, "name": "Taco", "price": 3.5},
        headers=headers["admin"],
    )
    assert item.status_code == 201
    iid = item.json()["id"]

    assert client.put(f"/admin/item/{iid}", json={"availability": False}, headers=headers["admin"]).json()[
        "availability"
    ] is False
    assert client.delete(f"/admin/item/{iid}", headers=headers["admin"]).status_code == 200
    assert client.delete(f"/admin/restaurant/{rid}", headers=headers["admin"]).status_code == 200
    assert client.get(f"/restaurants/{rid}").status_code == 404


def test_admin_routes_reject_customers(client, seed, headers):
    r = client.post("/admin/create-restaurant", json={"name": "Nope"}, headers=headers["alice"])

    assert r.status_code == 403


def test_ordered_items_cannot_be_deleted(client, seed, headers, make_order):
    make_order(seed["alice"], seed["alice_home"], lines=((5, 1, 9.50),))

    assert client.delete("/admin/item/5", headers=headers["admin"]).status_code == 409
    assert client.delete("/admin/restaurant/1", headers=headers["admin"]).status_code == 409


def test_create_item_for_missing_restaurant(client, seed, headers):
    r = client.post(
        "/admin/create-item",
        json={"restaurant_id": 99, "name": "Ghost", "price": 1},
        headers=headers["admin"],
    )

    assert r.status_code == 404


# ----- reviews -----

@pytest.mark.parametrize(
    "ratings,expected",
    [
        ({"5": 4, "6": 5}, 5),
        ({"5": 4, "6": 4, "7": 5}, 4),
        ({"5": "3", "6": 0, "7": "bad"}, 3),
        ({"5": 0}, None),
        ({}, None),
    ],
)
def test_aggregate_rating(ratings, expected):
    assert aggregate_rating(ratings) == expected


def test_submit_review(client, seed, headers, make_order, db_session):
    order = make_order(seed["alice"], seed["alice_home"], status=OrderStatus.DELIVERED)

    r = client.post(
        "/reviews/1/review",
        json={"order_id": order.order_id, "item_ratings": {"5": 5, "6": 4}, "comment": "Great"},
        headers=headers["alice"],
    )

    assert r.status_code == 200
    assert r.json() == {"message": "Review submitted", "rating": 5}
    review = db_session.execute(select(Review)).scalar_one()
    assert review.order_id == order.order_id
    assert review.comment == "Great"


def test_review_for_someone_elses_order(client, seed, headers, make_order):
    order = make_order(seed["bob"], seed["bob_home"])

    r = client.post(
        "/reviews/1/review",
        json={"order_id": order.order_id, "item_ratings": {"5": 5}},
        headers=headers["alice"],
    )

    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "ORDER_NOT_OWNED"


def test_review_validation(client, seed, headers):
    no_ratings = client.post("/reviews/1/review", json={"item_ratings": {"5": 0}}, headers=headers["alice"])
    bad_order = client.post(
        "/reviews/1/review",
        json={"order_id": 999, "item_ratings": {"5": 4}},
        headers=headers["alice"],
    )

    assert no_ratings.status_code == 400
    assert no_ratings.json()["detail"]["code"] == "NO_VALID_RATINGS"
    assert bad_order.status_code == 400
    assert bad_order.json()["detail"]["code"] == "INVALID_ORDER"


def test_ratings_summary(client, seed, headers):
    client.post("/reviews/1/review", json={"item_ratings": {"5": 4}}, headers=headers["alice"])
    client.post("/reviews/1/review", json={"item_ratings": {"5": 5}}, headers=headers["bob"])
    client.post("/reviews/2/review", json={"item_ratings": {"7": 5}}, headers=headers["bob"])

    summary = client.get("/reviews/ratings").json()

    assert summary == [
        {"restaurant_id": 2, "avg_rating": 5.0, "review_count": 1},
        {"restaurant_id": 1, "avg_rating": 4.5, "review_count": 2},
    ]


# ----- sales -----

def _set_order_date(db_session, order, when):
    db_session.execute(update(Order).where(Order.order_id == order.order_id).values(order_date=when))
    db_session.commit()


def test_daily_and_monthly_sales(client, seed, headers, make_order, db_session):
    a = make_order(seed["alice"], seed["alice_home"], total=10.00)
    b = make_order(seed["bob"], seed["bob_home"], total=20.50)
    c = make_order(seed["alice"], seed["alice_home"], total=5.00)
    _set_order_date(db_session, a, datetime(2026, 3, 1, 9, 0))
    _set_order_date(db_session, b, datetime(2026, 3, 1, 18, 30))
    _set_order_date(db_session, c, datetime(2026, 2, 14, 12, 0))

    daily = client.get("/sales/daily", headers=headers["admin"]).json()
    one_day = client.get("/sales/daily", params={"date": "2026-03-01"}, headers=headers["admin"]).json()
    monthly = client.get("/sales/monthly", headers=headers["admin"]).json()
    february = client.get("/sales/monthly", params={"month": "2026-02"}, headers=headers["admin"]).json()

    assert daily == [
        {"day": "2026-03-01", "total_sales": 30.5, "orders_count": 2},
        {"day": "2026-02-14", "total_sales": 5.0, "orders_count": 1},
    ]
    assert one_day == [daily[0]]
    assert monthly == [
        {"month": "2026-03", "total_sales": 30.5, "orders_count": 2},
        {"month": "2026-02", "total_sales": 5.0, "orders_count": 1},
    ]
    assert february == [monthly[1]]


def test_sales_rejects_bad_month(client, seed, headers):
    r = client.get("/sales/monthly", params={"month": "March"}, headers=headers["admin"])

    assert r.status_code == 422


def test_sales_is_admin_only(client, seed, headers):
    assert client.get("/sales/daily", headers=headers["alice"]).status_code == 403


def test_sales_are_summed_by_the_database(client, seed, headers, make_order, engine):
    make_order(seed["alice"], seed["alice_home"], total=10.00)
    make_order(seed["bob"], seed["bob_home"], total=20.50)
    statements = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", capture)
    try:
        daily = client.get("/sales/daily", headers=headers["admin"]).json()
        monthly = client.get("/sales/monthly", headers=headers["admin"]).json()
    finally:
        event.remove(engine, "before_cursor_execute", capture)

    sales_queries = [s for s in statements if "FROM orders" in s]
    assert len(sales_queries) == 2
    assert all("sum(orders.total_amount)" in s and "GROUP BY" in s for s in sales_queries)
    assert [(d["total_sales"], d["orders_count"]) for d in daily] == [(30.5, 2)]
    assert [(m["total_sales"], m["orders_count"]) for m in monthly] == [(30.5, 2)]
