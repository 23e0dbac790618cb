from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from supportdesk.api.dependencies import get_db
from supportdesk.core.roles import Principal, Role, require_admin, require_staff
from supportdesk.models.user import User
from supportdesk.services.auth_service import decode_token


_http_bearer = HTTPBearer(auto_error=False)


def _extract_bearer_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials

    # Optional cookie support for the browser widget
    cookie_token = request.cookies.get("auth_token")
    if cookie_token:
        return cookie_token

    return None


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.get(User, str(user_id))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_http_bearer),
) -> User:
    token = _extract_bearer_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _user_from_token(db, token)


def get_current_principal(user: User = Depends(get_current_user)) -> Principal:
    return Principal(user_id=user.id, role=Role(user.role))


def get_optional_principal(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_http_bearer),
) -> Optional[Principal]:
    """Anonymous callers get None; a bad token is still a 401."""
    token = _extract_bearer_token(request, credentials)
    if not token:
        return None
    user = _user_from_token(db, token)
    return Principal(user_id=user.id, role=Role(user.role))


def get_staff_principal(principal: Principal = Depends(get_current_principal)) -> Principal:
    return require_staff(principal)


def get_admin_principal(principal: Principal = Depends(get_current_principal)) -> Principal:
    return require_admin(principal)
