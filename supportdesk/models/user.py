from sqlalchemy import Column, String, DateTime, Enum
from sqlalchemy.sql import func

from supportdesk.core.database import Base, new_id
from supportdesk.core.roles import Role


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    role = Column(Enum(Role, name="user_role", native_enum=False), default=Role.USER, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email
