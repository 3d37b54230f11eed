from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, String
from sqlmodel import Field, SQLModel


def utc_now_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Vendor(SQLModel, table=True):
    __tablename__ = "vendors"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", nullable=False, index=True)
    vendor_type: str = Field(nullable=False, max_length=60, index=True)
    vendor_name: str | None = Field(default=None, max_length=200)
    contact_name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=60)
    website: str | None = Field(default=None, max_length=500)
    vendor_currency: str = Field(
        default="EUR",
        sa_column=Column(String(8), nullable=False, default="EUR")
    )
    cost_converted_currency: str = Field(
        default="USD",
        sa_column=Column(String(8), nullable=False, default="USD")
    )
    vendor_cost: float = Field(default=0.0, nullable=False)
    cost_converted: float = Field(default=0.0, nullable=False)
    contract_required: bool = Field(default=False, nullable=False)
    contract_signed: bool = Field(default=False, nullable=False)
    contract_signed_date: date | None = Field(default=None)
    notes: str | None = Field(default=None)
    skip_completion_prompt: bool = Field(default=False, nullable=False)
    payments: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, default=list),
    )
    created_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
