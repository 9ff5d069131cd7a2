"""
Order placement and the three read projections over orders:

* admin list      -- every order with the customer's name and its lines
* customer history -- the caller's orders, lines and contributing restaurants
* tracking view   -- one owned order with lines, restaurant and address

Line prices always come from ``order_details.price``, the price captured at
checkout, never from the live ``items.price``.
"""
import logging
from collections import OrderedDict, defaultdict
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from . import schemas
from .lifecycle import check_transition
from .metrics import ORDER_STATUS_TRANSITIONS
from .models import CustomerLocation, Item, Order, OrderDetail, OrderStatus, Restaurant, User

logger = logging.getLogger("food-service.orders")

DEFAULT_PAYMENT_METHOD = "Cash"


class OrderError(Exception):
    code = "ORDER_ERROR"


class EmptyOrder(OrderError):
    code = "EMPTY_ORDER"


class InvalidLocation(OrderError):
    code = "INVALID_LOCATION"


class InvalidItem(OrderError):
    code = "INVALID_ITEM"

    def __init__(self, item_ids: Iterable[int], reason: str):
        self.item_ids = sorted(item_ids)
        self.reason = reason
        super().__init__(f"{reason}: {self.item_ids}")


class OrderNotFound(OrderError):
    code = "ORDER_NOT_FOUND"


# ----- Create -----

def _merge_lines(items: List[schemas.OrderItemRequest]) -> "OrderedDict[int, schemas.OrderItemRequest]":
    # (order_id, item_id) is the line key, so repeated cart entries collapse into one line
    merged: "OrderedDict[int, schemas.OrderItemRequest]" = OrderedDict()
    for it in items:
        if it.item_id in merged:
            prev = merged[it.item_id]
            merged[it.item_id] = prev.model_copy(update={"quantity": prev.quantity + it.quantity})
        else:
            merged[it.item_id] = it
    return merged


def create_order(
    db_sess,
    user_id: int,
    items: List[schemas.OrderItemRequest],
    location_id: Optional[int],
    payment_method: Optional[str],
    total_amount: float,
) -> int:
    """Persist an order and all of its lines in one transaction.

    Every line is validated before anything is written; a bad line rejects the
    whole order instead of leaving a partially persisted cart behind.
    """
    if not items:
        raise EmptyOrder("No items in order")

    location = db_sess.get(CustomerLocation, location_id) if location_id is not None else None
    if location is None or location.user_id != user_id:
        raise InvalidLocation("Delivery address is missing or does not belong to the user")

    lines = _merge_lines(items)
    catalog: Dict[int, Item] = {
        item.item_id: item
        for item in db_sess.execute(select(Item).where(Item.item_id.in_(list(lines)))).scalars()
    }
    missing = set(lines) - set(catalog)
    if missing:
        raise InvalidItem(missing, "unknown item")
    unavailable = {item_id for item_id, item in catalog.items() if not item.availability}
    if unavailable:
        raise InvalidItem(unavailable, "item not available")

    order = Order(
        user_id=user_id,
        location_id=location.location_id,
        status=OrderStatus.PREPARING,
        total_amount=total_amount,
        payment_method=payment_method or DEFAULT_PAYMENT_METHOD,
    )
    try:
        db_sess.add(order)
        db_sess.flush()  # get order_id

        for item_id, line in lines.items():
            db_sess.add(
                OrderDetail(
                    order_id=order.order_id,
                    item_id=item_id,
                    quantity=line.quantity,
                    price=line.price if line.price is not None else catalog[item_id].price,
                )
            )
        db_sess.commit()
    except SQLAlchemyError as e:
        db_sess.rollback()
        logger.warning(f"Order for user {user_id} rolled back, no lines kept: {e}")
        raise

    return order.order_id


# ----- Line projections -----

def _lines_by_order(db_sess, order_ids: List[int]) -> Dict[int, List[schemas.HistoryItem]]:
    if not order_ids:
        return {}
    rows = db_sess.execute(
        select(
            OrderDetail.order_id,
            OrderDetail.item_id,
            OrderDetail.quantity,
            OrderDetail.price,
            Item.name,
            Item.image,
            Restaurant.restaurant_id,
            Restaurant.name.label("restaurant_name"),
        )
        .join(Item, OrderDetail.item_id == Item.item_id, isouter=True)
        .join(Restaurant, Item.restaurant_id == Restaurant.restaurant_id, isouter=True)
        .where(OrderDetail.order_id.in_(order_ids))
        .order_by(OrderDetail.order_id, OrderDetail.item_id)
    ).all()

    lines: Dict[int, List[schemas.HistoryItem]] = defaultdict(list)
    for r in rows:
        lines[r.order_id].append(
            schemas.HistoryItem(
                item_id=r.item_id,
                name=r.name,
                price=float(r.price),
                quantity=r.quantity,
                image=r.image,
                restaurant_id=r.restaurant_id,
                restaurant_name=r.restaurant_name,
            )
        )
    return lines


def distinct_restaurants(lines: List[schemas.HistoryItem]) -> List[schemas.RestaurantRef]:
    seen = set()
    restaurants = []
    for line in lines:
        if line.restaurant_id is not None and line.restaurant_id not in seen:
            seen.add(line.restaurant_id)
            restaurants.append(schemas.RestaurantRef(id=line.restaurant_id, name=line.restaurant_name or ""))
    return restaurants


def _newest_first(stmt):
    return stmt.order_by(Order.order_date.desc(), Order.order_id.desc())


# ----- Read -----

def get_all_orders(db_sess) -> List[schemas.AdminOrderRead]:
    rows = db_sess.execute(
        _newest_first(select(Order, User.name).join(User, Order.user_id == User.user_id, isouter=True))
    ).all()
    lines = _lines_by_order(db_sess, [o.order_id for o, _ in rows])

    return [
        schemas.AdminOrderRead(
            order_id=o.order_id,
            user_id=o.user_id,
            location_id=o.location_id,
            order_date=o.order_date,
            status=o.status,
            total_amount=float(o.total_amount),
            payment_method=o.payment_method,
            customerName=customer_name,
            items=[
                schemas.AdminOrderItem(name=line.name, price=line.price, quantity=line.quantity)
                for line in lines.get(o.order_id, [])
            ],
        )
        for o, customer_name in rows
    ]


def get_order_history(db_sess, user_id: int) -> List[schemas.HistoryOrderRead]:
    orders = db_sess.execute(_newest_first(select(Order).where(Order.user_id == user_id))).scalars().all()
    lines = _lines_by_order(db_sess, [o.order_id for o in orders])

    history = []
    for o in orders:
        order_lines = lines.get(o.order_id, [])
        history.append(
            schemas.HistoryOrderRead(
                order_id=o.order_id,
                user_id=o.user_id,
                location_id=o.location_id,
                order_date=o.order_date,
                created_at=o.order_date,
                status=o.status,
                total_amount=float(o.total_amount),
                payment_method=o.payment_method,
                items=order_lines,
                restaurants=distinct_restaurants(order_lines),
            )
        )
    return history


def get_order_by_id(db_sess, order_id: int, user_id: int) -> schemas.OrderDetailRead:
    row = db_sess.execute(
        select(Order, CustomerLocation)
        .join(CustomerLocation, Order.location_id == CustomerLocation.location_id, isouter=True)
        .where(Order.order_id == order_id, Order.user_id == user_id)
    ).first()
    # someone else's order is indistinguishable from a missing one
    if row is None:
        raise OrderNotFound(f"Order {order_id} not found")

    order, location = row
    order_lines = _lines_by_order(db_sess, [order.order_id]).get(order.order_id, [])
    first = order_lines[0] if order_lines else None

    return schemas.OrderDetailRead(
        order_id=order.order_id,
        user_id=order.user_id,
        status=order.status,
        total_amount=float(order.total_amount),
        payment_method=order.payment_method,
        order_date=order.order_date,
        created_at=order.order_date,
        restaurant_id=first.restaurant_id if first else None,
        restaurant_name=(first.restaurant_name if first else None) or "Restaurant",
        items=order_lines,
        address=schemas.Address(
            street=location.street if location else None,
            building=location.building if location else None,
            apartment=location.apartment if location else None,
            city=location.city if location else None,
            floor=location.floor if location else None,
        ),
    )


# ----- Update -----

def update_order_status(db_sess, order_id: int, new_status: OrderStatus, force: bool = False) -> Order:
    order = db_sess.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")

    previous = order.status
    check_transition(previous, new_status, force=force)

    order.status = new_status
    db_sess.commit()

    if previous != new_status:
        ORDER_STATUS_TRANSITIONS.labels("admin", new_status.value).inc()
    return order
