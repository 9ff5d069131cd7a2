from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import CurrentUser, get_correlation_id, get_db, require_admin
from ..models import Order

router = APIRouter(prefix="/sales", tags=["sales"])


def _month_of(db_sess):
    dialect = db_sess.get_bind().dialect.name
    if dialect == "sqlite":
        return func.strftime("%Y-%m", Order.order_date)
    if dialect in ("mysql", "mariadb"):
        return func.date_format(Order.order_date, "%Y-%m")
    return func.to_char(Order.order_date, "YYYY-MM")


def _sales_by(db_sess, bucket, start: Optional[datetime], end: Optional[datetime]):
    """Total and order count per bucket, newest bucket first."""
    bucket = bucket.label("bucket")
    stmt = (
        select(
            bucket,
            func.sum(Order.total_amount).label("total_sales"),
            func.count(Order.order_id).label("orders_count"),
        )
        .group_by(bucket)
        .order_by(bucket.desc())
    )
    if start is not None:
        stmt = stmt.where(Order.order_date >= start, Order.order_date < end)
    return db_sess.execute(stmt).all()


@router.get("/daily", response_model=List[schemas.DailySales])
def daily_sales(
    day: Optional[date] = Query(None, alias="date"),
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
):
    start = end = None
    if day is not None:
        start = datetime.combine(day, datetime.min.time())
        end = start + timedelta(days=1)

    rows = _sales_by(db_sess, func.date(Order.order_date), start, end)
    return [
        schemas.DailySales(day=r.bucket, total_sales=round(float(r.total_sales), 2), orders_count=r.orders_count)
        for r in rows
    ]


@router.get("/monthly", response_model=List[schemas.MonthlySales])
def monthly_sales(
    month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    _admin: CurrentUser = Depends(require_admin),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    start = end = None
    if month is not None:
        try:
            start = datetime.strptime(month, "%Y-%m")
        except ValueError:
            raise HTTPException(400, {"code": "INVALID_MONTH", "correlationId": cid})
        end = (start + timedelta(days=32)).replace(day=1)

    rows = _sales_by(db_sess, _month_of(db_sess), start, end)
    return [
        schemas.MonthlySales(month=r.bucket, total_sales=round(float(r.total_sales), 2), orders_count=r.orders_count)
        for r in rows
    ]
