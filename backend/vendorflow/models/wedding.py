from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel


def utc_now_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Wedding(SQLModel, table=True):
    __tablename__ = "weddings"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    name: str = Field(max_length=120, nullable=False)
    invite_code: str = Field(index=True, unique=True, nullable=False, max_length=32)
    wedding_date: date | None = Field(default=None)
    default_currency: str = Field(
        default="EUR",
        sa_column=Column(String(8), nullable=False, default="EUR")
    )
    converted_currency: str = Field(
        default="USD",
        sa_column=Column(String(8), nullable=False, default="USD")
    )
    created_at: datetime = Field(
        default_factory=utc_now_naive,
        nullable=False,
    )
