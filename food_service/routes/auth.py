import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import schemas
from ..config import Settings
from ..deps import CurrentUser, get_correlation_id, get_current_user, get_db, get_settings
from ..models import User, UserRole
from ..security import create_access_token, hash_password, verify_password

logger = logging.getLogger("food-service.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=schemas.Message, status_code=201)
def register(
    payload: schemas.RegisterRequest,
    db_sess: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cid: str = Depends(get_correlation_id),
):
    email = payload.email.lower()
    existing = db_sess.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing:
        raise HTTPException(409, {"code": "EMAIL_TAKEN", "correlationId": cid})

    user = User(
        email=email,
        # name defaults to the local part of the email
        name=payload.name or email.split("@")[0],
        password=hash_password(payload.password, settings.bcrypt_rounds),
        phone=payload.phone,
        role=UserRole.CUSTOMER,
    )
    db_sess.add(user)
    db_sess.commit()

    logger.info(f"User {user.user_id} registered", extra={"correlation_id": cid})
    return schemas.Message(message="User registered successfully")


@router.post("/login", response_model=schemas.TokenResponse)
def login(
    payload: schemas.LoginRequest,
    db_sess: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cid: str = Depends(get_correlation_id),
):
    user = db_sess.execute(select(User).where(User.email == payload.email.lower())).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(401, {"code": "INVALID_CREDENTIALS", "correlationId": cid})
    return schemas.TokenResponse(token=create_access_token(user, settings))


@router.get("/profile", response_model=schemas.UserRead)
def profile(
    current: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    user = db_sess.get(User, current.user_id)
    if not user:
        raise HTTPException(404, {"code": "USER_NOT_FOUND", "correlationId": cid})
    return user


@users_router.put("/{user_id}", response_model=schemas.UserRead)
def update_user(
    user_id: int,
    payload: schemas.UserUpdate,
    current: CurrentUser = Depends(get_current_user),
    db_sess: Session = Depends(get_db),
    cid: str = Depends(get_correlation_id),
):
    if current.user_id != user_id and not current.is_admin:
        raise HTTPException(403, {"code": "FORBIDDEN", "correlationId": cid})

    user = db_sess.get(User, user_id)
    if not user:
        raise HTTPException(404, {"code": "USER_NOT_FOUND", "correlationId": cid})

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db_sess.commit()
    return user
