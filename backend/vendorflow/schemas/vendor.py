from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

PaymentType = Literal["cash", "bank_transfer"]

PAYMENT_TYPE_ALIASES: dict[str, str] = {
    "cash": "cash",
    "bank_transfer": "bank_transfer",
    "bank transfer": "bank_transfer",
    "bank-transfer": "bank_transfer",
    "transfer": "bank_transfer",
    "wire": "bank_transfer",
    "wire transfer": "bank_transfer",
}


def normalize_payment_type(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    return PAYMENT_TYPE_ALIASES.get(" ".join(value.strip().lower().split()))


def _upper_code(value: object) -> object:
    if isinstance(value, str):
        cleaned = value.strip().upper()
        return cleaned or None
    return value


class PaymentRecord(BaseModel):
    id: str
    description: str | None = None
    amount: float | None = None
    amount_currency: str | None = None
    amount_converted: float | None = None
    amount_converted_currency: str | None = None
    payment_type: PaymentType | None = None
    refundable: bool = False
    due_date: str | None = None
    paid: bool = False
    paid_date: str | None = None


class PaymentPatch(BaseModel):
    """Partial payment as described by extraction output or an edit form.

    A field counts as present only when it was sent with a non-null value.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    description: str | None = None
    amount: float | None = None
    amount_currency: str | None = None
    amount_converted: float | None = None
    amount_converted_currency: str | None = None
    payment_type: PaymentType | None = None
    refundable: bool | None = None
    due_date: str | None = None
    paid: bool | None = None
    paid_date: str | None = None

    @field_validator("payment_type", mode="before")
    @classmethod
    def _payment_type_alias(cls, value: object) -> object:
        return normalize_payment_type(value)

    @field_validator("amount_currency", "amount_converted_currency", mode="before")
    @classmethod
    def _currency_upper(cls, value: object) -> object:
        return _upper_code(value)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    def present_fields(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class VendorPatch(BaseModel):
    """Typed partial vendor used for extraction output and updates.

    Unknown keys are dropped, which includes ``vendor_cost`` and
    ``cost_converted``: totals are always derived from the payment list.
    """

    model_config = ConfigDict(extra="ignore")

    vendor_type: str | None = None
    vendor_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    vendor_currency: str | None = None
    cost_converted_currency: str | None = None
    contract_required: bool | None = None
    contract_signed: bool | None = None
    contract_signed_date: str | None = None
    notes: str | None = None
    skip_completion_prompt: bool | None = None
    payments: list[PaymentPatch] | None = None

    @field_validator("vendor_currency", "cost_converted_currency", mode="before")
    @classmethod
    def _currency_upper(cls, value: object) -> object:
        return _upper_code(value)

    def present_fields(self) -> dict[str, object]:
        data = self.model_dump(exclude_unset=True, exclude_none=True, exclude={"payments"})
        return {key: value for key, value in data.items() if key in VENDOR_PATCH_FIELDS}


VENDOR_PATCH_FIELDS = frozenset(VendorPatch.model_fields) - {"payments"}
PAYMENT_PATCH_FIELDS = frozenset(PaymentPatch.model_fields) - {"id"}


class VendorRecord(BaseModel):
    id: str | None = None
    vendor_type: str
    vendor_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    vendor_currency: str
    cost_converted_currency: str
    vendor_cost: float = 0.0
    cost_converted: float = 0.0
    contract_required: bool = False
    contract_signed: bool = False
    contract_signed_date: str | None = None
    notes: str | None = None
    skip_completion_prompt: bool = False
    payments: list[PaymentRecord] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def label(self) -> str:
        return self.vendor_name or self.vendor_type


def vendor_ready_to_create(patch: VendorPatch) -> bool:
    return bool(patch.vendor_type and patch.vendor_type.strip())


def payment_ready(payment: PaymentPatch | PaymentRecord) -> bool:
    return (
        bool(payment.description and payment.description.strip())
        and payment.amount is not None
        and payment.payment_type is not None
    )


class VendorCreateRequest(VendorPatch):
    vendor_type: str = Field(min_length=1, max_length=60)


class VendorUpdateRequest(VendorPatch):
    merge_payments: bool = Field(
        default=False,
        validation_alias=AliasChoices("merge_payments", "mergePayments"),
    )


class VendorListResponse(BaseModel):
    items: list[VendorRecord]
    total_count: int


class VendorDeleteResponse(BaseModel):
    vendor_id: str
    message: str


class VendorStats(BaseModel):
    total_vendors: int
    total_cost: float
    total_paid: float
    total_outstanding: float
    currency: str


class PaymentReminder(BaseModel):
    vendor_id: str | None = None
    vendor_name: str | None = None
    vendor_type: str
    payment_id: str
    payment_description: str | None = None
    amount: float
    currency: str | None = None
    due_date: str
    reminder_type: Literal["due_today", "7_days"]
    days_until_due: int


class CompletionQuestion(BaseModel):
    question: str
    field: str
    field_type: Literal["text", "email"]
    required: bool = False


class VendorNeedingDetails(BaseModel):
    vendor_id: str | None = None
    label: str
    missing_fields: list[str]
    questions: list[CompletionQuestion]


class VendorOverviewResponse(BaseModel):
    stats: VendorStats
    reminders: list[PaymentReminder]
    vendors_needing_details: list[VendorNeedingDetails]
