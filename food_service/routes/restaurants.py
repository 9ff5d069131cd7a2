import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import CurrentUser, get_correlation_id, get_db, require_admin
from ..models import Item, OrderDetail, Restaurant

logger = logging.getLogger("food-service.restaurants")

router = APIRouter(prefix="/restaurants", tags=["restaurants"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


def to_read(restaurant: Restaurant) -> schemas.RestaurantRead:
    # ETA is a display estimate only; order status never depends on it
    eta = None
    if restaurant.preparing_time is not None or restaurant.delivery_time is not None:
        eta = (restaurant.preparing_time or 0) + (restaurant.delivery_time or 0)
    return schemas.RestaurantRead.model_validate(restaurant).model_copy(update={"eta_minutes": eta})


def _get_restaurant(db_sess, restaurant_id: int, cid: str) -> Restaurant:
    restaurant = db_sess.get(Restaurant, restaurant_id)
    if not restaurant:
        raise HTTPException(404, {"code": "RESTAURANT_NOT_FOUND", "correlationId": cid})
    return restaurant


def _get_item(db_sess, item_id: int, cid: str) -> Item:
    item = db_sess.get(Item, item_id)
    if not item:
        raise HTTPException(404, {"code": "ITEM_NOT_FOUND", "correlationId": cid})
    return item


# ----- Public -----

@router.get("", response_model=List[schemas.RestaurantRead])
def list_restaurants(db_sess: Session = Depends(get_db)):
    rows = db_sess.execute(select(Restaurant).order_by(Restaurant.restaurant_id)).scalars().all()
    return [to_read(r) for r in rows]


@router.get("/{restaurant_id}", response_model=schemas.RestaurantRead)
def get_restaurant(
    restaurant_id: int,
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    return to_read(_get_restaurant(db_sess, restaurant_id, cid))


@router.get("/{restaurant_id}/items", response_model=List[schemas.ItemRead])
def list_restaurant_items(restaurant_id: int, db_sess: Session = Depends(get_db)):
    return db_sess.execute(
        select(Item).where(Item.restaurant_id == restaurant_id).order_by(Item.item_id)
    ).scalars().all()


# ----- Admin: restaurants -----

@admin_router.post("/create-restaurant", response_model=schemas.Created, status_code=201)
def create_restaurant(
    payload: schemas.RestaurantCreate,
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
):
    restaurant = Restaurant(**payload.model_dump())
    db_sess.add(restaurant)
    db_sess.commit()
    return schemas.Created(message="Restaurant created successfully", id=restaurant.restaurant_id)


@admin_router.put("/restaurant/{restaurant_id}", response_model=schemas.RestaurantRead)
def update_restaurant(
    restaurant_id: int,
    payload: schemas.RestaurantUpdate,
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    restaurant = _get_restaurant(db_sess, restaurant_id, cid)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(restaurant, field, value)
    db_sess.commit()
    return to_read(restaurant)


@admin_router.delete("/restaurant/{restaurant_id}", response_model=schemas.Message)
def delete_restaurant(
    restaurant_id: int,
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    restaurant = _get_restaurant(db_sess, restaurant_id, cid)
    ordered = db_sess.execute(
        select(
            exists().where(OrderDetail.item_id == Item.item_id, Item.restaurant_id == restaurant_id)
        )
    ).scalar()
    if ordered:
        raise HTTPException(409, {"code": "RESTAURANT_IN_USE", "correlationId": cid})

    db_sess.delete(restaurant)
    db_sess.commit()
    logger.info(f"Restaurant {restaurant_id} deleted", extra={"correlation_id": cid})
    return schemas.Message(message="Restaurant deleted successfully")


# ----- Admin: menu items -----

@admin_router.post("/create-item", response_model=schemas.Created, status_code=201)
def create_item(
    payload: schemas.ItemCreate,
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    _get_restaurant(db_sess, payload.restaurant_id, cid)
    item = Item(**payload.model_dump())
    db_sess.add(item)
    db_sess.commit()
    return schemas.Created(message="Item created successfully", id=item.item_id)


@admin_router.put("/item/{item_id}", response_model=schemas.ItemRead)
def update_item(
    item_id: int,
    payload: schemas.ItemUpdate,
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    item = _get_item(db_sess, item_id, cid)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("restaurant_id") is not None:
        _get_restaurant(db_sess, changes["restaurant_id"], cid)
    # price changes never touch order_details: past orders keep their captured price
    for field, value in changes.items():
        setattr(item, field, value)
    db_sess.commit()
    return item


@admin_router.delete("/item/{item_id}", response_model=schemas.Message)
def delete_item(
    item_id: int,
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    item = _get_item(db_sess, item_id, cid)
    if db_sess.execute(select(exists().where(OrderDetail.item_id == item_id))).scalar():
        raise HTTPException(409, {"code": "ITEM_IN_USE", "correlationId": cid})
    db_sess.delete(item)
    db_sess.commit()
    return schemas.Message(message="Item deleted successfully")
