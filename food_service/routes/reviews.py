import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import CurrentUser, get_correlation_id, get_current_user, get_db
from ..models import Order, Restaurant, Review

logger = logging.getLogger("food-service.reviews")

router = APIRouter(prefix="/reviews", tags=["reviews"])


def aggregate_rating(item_ratings: dict) -> Optional[int]:
    """Round the mean of the positive per-item ratings; None when there are none.

    Values that do not parse as numbers count as 0 and are dropped.
    """
    values = []
    for raw in item_ratings.values():
        try:
            value = int(float(raw))
        except (TypeError, ValueError, OverflowError):
            value = 0
        if value > 0:
            values.append(min(value, 5))
    if not values:
        return None
    # half-up, as a client would display it
    return int(sum(values) / len(values) + 0.5)


@router.get("/ratings", response_model=List[schemas.RatingSummary])
def restaurant_ratings(db_sess: Session = Depends(get_db)):
    avg = func.avg(Review.rating)
    rows = db_sess.execute(
        select(Review.restaurant_id, avg.label("avg_rating"), func.count().label("review_count"))
        .group_by(Review.restaurant_id)
        .order_by(avg.desc(), Review.restaurant_id)
    ).all()
    return [
        schemas.RatingSummary(
            restaurant_id=r.restaurant_id,
            avg_rating=round(float(r.avg_rating), 2),
            review_count=r.review_count,
        )
        for r in rows
    ]


@router.post("/{restaurant_id}/review", response_model=schemas.ReviewCreated)
def submit_review(
    restaurant_id: int,
    payload: schemas.ReviewCreate,
    user: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    rating = aggregate_rating(payload.item_ratings)
    if rating is None:
        raise HTTPException(400, {"code": "NO_VALID_RATINGS", "correlationId": cid})

    if not db_sess.get(Restaurant, restaurant_id):
        raise HTTPException(404, {"code": "RESTAURANT_NOT_FOUND", "correlationId": cid})

    if payload.order_id is not None:
        order = db_sess.get(Order, payload.order_id)
        if not order:
            raise HTTPException(400, {"code": "INVALID_ORDER", "correlationId": cid})
        if order.user_id != user.user_id:
            raise HTTPException(403, {"code": "ORDER_NOT_OWNED", "correlationId": cid})

    db_sess.add(
        Review(
            user_id=user.user_id,
            restaurant_id=restaurant_id,
            order_id=payload.order_id,
            rating=rating,
            comment=payload.comment,
        )
    )
    db_sess.commit()

    logger.info(
        f"Review for restaurant {restaurant_id} by user {user.user_id}: {rating}",
        extra={"correlation_id": cid},
    )
    return schemas.ReviewCreated(rating=rating)
