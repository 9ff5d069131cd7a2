import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import orders, schemas
from ..deps import CurrentUser, get_correlation_id, get_current_user, get_db, require_admin
from ..lifecycle import IllegalTransition
from ..metrics import ORDERS_CREATED

logger = logging.getLogger("food-service.orders")

router = APIRouter(prefix="/orders", tags=["orders"])


# ----- API: Admin list -----

@router.get("", response_model=List[schemas.AdminOrderRead])
def list_all_orders(
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
):
    return orders.get_all_orders(db_sess)


# ----- API: Create Order -----

@router.post("", response_model=schemas.OrderCreated, status_code=201)
def create_order(
    payload: schemas.CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    user_id = user.user_id
    if payload.user_id is not None and payload.user_id != user.user_id:
        if not user.is_admin:
            raise HTTPException(403, {"code": "USER_MISMATCH", "correlationId": cid})
        user_id = payload.user_id

    try:
        order_id = orders.create_order(
            db_sess,
            user_id=user_id,
            items=payload.items,
            location_id=payload.location_id,
            payment_method=payload.payment_method,
            total_amount=payload.total_amount,
        )
    except orders.InvalidItem as e:
        ORDERS_CREATED.labels("REJECTED").inc()
        raise HTTPException(
            400,
            {"code": e.code, "reason": e.reason, "itemIds": e.item_ids, "correlationId": cid},
        )
    except orders.OrderError as e:
        ORDERS_CREATED.labels("REJECTED").inc()
        raise HTTPException(400, {"code": e.code, "message": str(e), "correlationId": cid})

    ORDERS_CREATED.labels("Preparing").inc()
    logger.info(
        f"Order {order_id} placed by user {user_id} ({len(payload.items)} cart entries)",
        extra={"correlation_id": cid},
    )
    return schemas.OrderCreated(orderId=order_id)


# ----- API: Customer history -----

@router.get("/history", response_model=List[schemas.HistoryOrderRead])
def order_history(
    user: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
):
    return orders.get_order_history(db_sess, user.user_id)


# ----- API: Get Order by ID (tracking) -----

@router.get("/{order_id}", response_model=schemas.OrderDetailRead)
def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    try:
        return orders.get_order_by_id(db_sess, order_id, user.user_id)
    except orders.OrderNotFound:
        raise HTTPException(404, {"code": "ORDER_NOT_FOUND", "correlationId": cid})


# ----- API: Update status (admin) -----

@router.put("/{order_id}", response_model=schemas.StatusUpdated)
def update_order_status(
    order_id: int,
    payload: schemas.UpdateOrderStatusRequest,
    admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    try:
        order = orders.update_order_status(db_sess, order_id, payload.status, force=payload.force)
    except orders.OrderNotFound:
        raise HTTPException(404, {"code": "ORDER_NOT_FOUND", "correlationId": cid})
    except IllegalTransition as e:
        raise HTTPException(
            409,
            {
                "code": "ILLEGAL_STATUS_TRANSITION",
                "from": e.current.value,
                "to": e.new.value,
                "correlationId": cid,
            },
        )

    logger.info(
        f"Order {order_id} set to '{order.status.value}' by admin {admin.user_id}"
        + (" (forced)" if payload.force else ""),
        extra={"correlation_id": cid},
    )
    return schemas.StatusUpdated(order_id=order.order_id, status=order.status)
