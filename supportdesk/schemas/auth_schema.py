from typing import Optional

from pydantic import EmailStr, Field

from supportdesk.core.roles import Role
from supportdesk.schemas.common import ApiModel


class RegisterRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=256)
    first_name: Optional[str] = Field(default=None, max_length=128)
    last_name: Optional[str] = Field(default=None, max_length=128)


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class TokenResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"


class RoleUpdateRequest(ApiModel):
    role: Role


class UserResponse(ApiModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Role


class AuthorSummary(ApiModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Role
