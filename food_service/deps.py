import uuid
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request

from .config import Settings
from .models import UserRole
from .security import decode_access_token


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    role: UserRole
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_correlation_id(x_correlation_id: Optional[str] = Header(None)):
    return x_correlation_id or str(uuid.uuid4())


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# ----- DB Dependency -----
def get_db(request: Request):
    s = request.app.state.session_factory()
    try:
        yield s
    finally:
        s.close()


def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    cid: str = Depends(get_correlation_id),
) -> CurrentUser:
    scheme, _, token = (authorization or "").partition(" ")
    if not authorization or scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, {"code": "TOKEN_MISSING", "correlationId": cid})

    try:
        payload = decode_access_token(token.strip(), settings)
        return CurrentUser(
            user_id=int(payload["user_id"]),
            role=UserRole(payload.get("role", UserRole.CUSTOMER.value)),
            email=payload.get("email"),
            name=payload.get("name"),
        )
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        raise HTTPException(403, {"code": "INVALID_TOKEN", "correlationId": cid})


def require_admin(
    user: CurrentUser = Depends(get_current_user),
    cid: str = Depends(get_correlation_id),
) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(403, {"code": "ADMIN_ONLY", "correlationId": cid})
    return user
