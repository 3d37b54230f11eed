from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from vendorflow.schemas.vendor import VendorPatch

FieldType = Literal["text", "number", "date", "email", "phone", "choice"]


class RosterPayment(BaseModel):
    id: str
    description: str | None = None
    amount: float | None = None
    amount_currency: str | None = None
    due_date: str | None = None
    paid: bool = False


class RosterVendor(BaseModel):
    id: str
    vendor_type: str
    vendor_name: str | None = None
    email: str | None = None
    phone: str | None = None
    contract_signed: bool = False
    vendor_currency: str | None = None
    payments: list[RosterPayment] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.vendor_name or self.vendor_type


class ParseContext(BaseModel):
    reference_date: date
    timezone: str
    default_currency: str
    converted_currency: str
    wedding_date: date | None = None
    roster: list[RosterVendor] = Field(default_factory=list)


class ParsedOperation(BaseModel):
    action: Literal["create", "update"] = "create"
    vendor_id: str | None = None
    matched_vendor_name: str | None = None
    vendor_data: VendorPatch = Field(default_factory=VendorPatch)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    ambiguous_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @field_validator("action", mode="before")
    @classmethod
    def _action_lower(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return min(1.0, max(0.0, float(value)))
        return value

    @field_validator("vendor_id", mode="before")
    @classmethod
    def _vendor_id_text(cls, value: object) -> object:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class Clarification(BaseModel):
    id: str | None = None
    question: str
    field: str
    field_type: FieldType = "text"
    context: str | None = None
    operation_index: int | None = None
    required: bool = False
    choices: list[str] | None = None
    payment_index: int | None = None
    choice_vendor_ids: dict[str, str] = Field(default_factory=dict)

    @field_validator("field_type", mode="before")
    @classmethod
    def _known_field_type(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"text", "number", "date", "email", "phone", "choice"}:
            return value.strip().lower()
        return "text"


class ParseResult(BaseModel):
    operations: list[ParsedOperation] = Field(default_factory=list)
    clarifications_needed: list[Clarification] = Field(default_factory=list)
