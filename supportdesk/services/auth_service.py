import datetime as dt
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from supportdesk.core.config import settings
from supportdesk.core.exceptions import ConflictError, NotFoundError
from supportdesk.core.roles import Role
from supportdesk.models.user import User


# Use PBKDF2-SHA256 to avoid bcrypt backend/version issues and the 72-byte input limit.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def create_access_token(*, subject: str, expires_minutes: Optional[int] = None) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    expire_minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = now + dt.timedelta(minutes=int(expire_minutes))

    payload: dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError("Invalid token") from e


def normalize_email(email: str) -> str:
    return email.strip().lower()


def register_user(
    db: Session,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: Role = Role.USER,
) -> User:
    email = normalize_email(email)
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def set_role(db: Session, user_id: str, role: Role) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user.role = role
    db.commit()
    db.refresh(user)
    return user


def bootstrap_admin(db: Session, email: str, password: str) -> User:
    """Create the admin account, or reset its password and role if it exists."""
    email = normalize_email(email)
    admin = db.query(User).filter(User.email == email).first()
    if admin is None:
        admin = User(email=email, password_hash=hash_password(password), role=Role.ADMIN)
        db.add(admin)
    else:
        admin.password_hash = hash_password(password)
        admin.role = Role.ADMIN
    db.commit()
    db.refresh(admin)
    return admin
