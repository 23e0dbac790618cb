from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from supportdesk.api.dependencies import get_db
from supportdesk.api.security import get_admin_principal, get_current_user
from supportdesk.core.roles import Principal
from supportdesk.models.user import User
from supportdesk.schemas.auth_schema import (
    LoginRequest,
    RegisterRequest,
    RoleUpdateRequest,
    TokenResponse,
    UserResponse,
)
from supportdesk.services import auth_service


router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    return auth_service.register_user(
        db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
    )


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, request.email, request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = auth_service.create_access_token(subject=str(user.id))
    return TokenResponse(access_token=token)


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/users/{user_id}/role", response_model=UserResponse)
def change_role(
    user_id: UUID,
    request: RoleUpdateRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(get_admin_principal),
):
    return auth_service.set_role(db, str(user_id), request.role)
