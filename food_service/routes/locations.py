from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import CurrentUser, get_current_user, get_db
from ..models import CustomerLocation

router = APIRouter(prefix="/locations", tags=["locations"])


@router.post("", response_model=schemas.LocationCreated, status_code=201)
def add_location(
    payload: schemas.LocationCreate,
    user: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
):
    location = CustomerLocation(user_id=user.user_id, **payload.model_dump())
    db_sess.add(location)
    db_sess.commit()
    return schemas.LocationCreated(locationId=location.location_id, userId=user.user_id)


@router.get("", response_model=List[schemas.LocationRead])
def list_locations(
    user: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
):
    return db_sess.execute(
        select(CustomerLocation)
        .where(CustomerLocation.user_id == user.user_id)
        .order_by(CustomerLocation.location_id)
    ).scalars().all()
