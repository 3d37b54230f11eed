from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import EmailStr
from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    PLANNER = "planner"
    COUPLE = "couple"


class User(SQLModel, table=True):
    """A planner or one of the couple; every user belongs to exactly one wedding."""

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", nullable=False, index=True)
    email: EmailStr = Field(sa_column=Column(String(320), unique=True, index=True, nullable=False))
    hashed_password: str = Field(nullable=False, max_length=255)
    full_name: str = Field(nullable=False, max_length=120)
    role: UserRole = Field(default=UserRole.COUPLE, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    last_login_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), nullable=False)

    @property
    def is_planner(self) -> bool:
        return self.role == UserRole.PLANNER
