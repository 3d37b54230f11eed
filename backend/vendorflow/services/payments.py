"""Payment schedule rules shared by the vendor store and the import flow.

Merging is a field-level operation keyed by payment id: an update usually
describes only the installment that changed ("paid the deposit"), so the
stored schedule must survive partial input.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import date
from typing import TypeVar
from uuid import uuid4

from vendorflow.schemas.vendor import PaymentPatch, PaymentRecord, VendorRecord

TEMPORARY_ID_PREFIX = "new-"

PaymentT = TypeVar("PaymentT", PaymentRecord, PaymentPatch)

_FINAL_RE = re.compile(r"final|balance")
_THIRD_RE = re.compile(r"\b3rd\b|\bthird\b")
_SECOND_RE = re.compile(r"\b2nd\b|\bsecond\b")
_FIRST_RE = re.compile(r"\b1st\b|\bdeposit\b|\bfirst\b")


def new_payment_id() -> str:
    return str(uuid4())


def is_temporary_payment_id(payment_id: str | None) -> bool:
    return not payment_id or str(payment_id).startswith(TEMPORARY_ID_PREFIX)


def assign_payment_ids(payments: Iterable[PaymentPatch]) -> list[PaymentPatch]:
    """Replace missing or ``new-*`` ids with stable UUIDs."""
    assigned: list[PaymentPatch] = []
    for payment in payments:
        if is_temporary_payment_id(payment.id):
            payment = payment.model_copy(update={"id": new_payment_id()})
        assigned.append(payment)
    return assigned


def record_from_patch(patch: PaymentPatch) -> PaymentRecord:
    data = patch.present_fields()
    if is_temporary_payment_id(patch.id):
        data["id"] = new_payment_id()
    record = PaymentRecord.model_validate(data)
    return _drop_unpaid_paid_date(record)


def merge_payment(existing: PaymentRecord, incoming: PaymentPatch) -> PaymentRecord:
    """Overlay the fields present on ``incoming`` onto ``existing``."""
    updates = incoming.present_fields()
    updates.pop("id", None)
    merged = existing.model_copy(update=updates)
    return _drop_unpaid_paid_date(PaymentRecord.model_validate(merged.model_dump()))


def merge_payments(
    existing_payments: Sequence[PaymentRecord],
    incoming_payments: Sequence[PaymentPatch],
) -> list[PaymentRecord]:
    incoming_by_id: dict[str, PaymentPatch] = {}
    appended: list[PaymentRecord] = []
    existing_ids = {payment.id for payment in existing_payments}

    for incoming in incoming_payments:
        if incoming.id and incoming.id in existing_ids:
            previous = incoming_by_id.get(incoming.id)
            if previous is not None:
                incoming = previous.model_copy(update=incoming.present_fields())
            incoming_by_id[incoming.id] = incoming
        else:
            appended.append(record_from_patch(incoming))

    merged: list[PaymentRecord] = []
    for payment in existing_payments:
        patch = incoming_by_id.get(payment.id)
        merged.append(merge_payment(payment, patch) if patch else payment)
    merged.extend(appended)
    return merged


def _drop_unpaid_paid_date(payment: PaymentRecord) -> PaymentRecord:
    if not payment.paid and payment.paid_date:
        return payment.model_copy(update={"paid_date": None})
    return payment


def calculate_totals(payments: Iterable[PaymentRecord]) -> tuple[float, float]:
    """Return ``(vendor_cost, cost_converted)`` over non-refundable payments."""
    vendor_cost = 0.0
    cost_converted = 0.0
    for payment in payments:
        if payment.refundable:
            continue
        amount = float(payment.amount or 0.0)
        vendor_cost += amount
        converted = payment.amount_converted
        cost_converted += float(converted) if converted is not None else amount
    return round(vendor_cost, 2), round(cost_converted, 2)


def recompute_totals(vendor: VendorRecord) -> VendorRecord:
    vendor_cost, cost_converted = calculate_totals(vendor.payments)
    return vendor.model_copy(update={"vendor_cost": vendor_cost, "cost_converted": cost_converted})


def apply_conversion(
    payments: Sequence[PaymentRecord],
    *,
    rate: float,
    converted_currency: str,
    only_ids: set[str] | None = None,
) -> list[PaymentRecord]:
    """Fill ``amount_converted`` on unpaid payments from ``rate``.

    Paid payments keep their recorded amounts. When ``only_ids`` is given,
    only those payments are recomputed; otherwise only payments with no
    converted amount yet are filled.
    """
    converted: list[PaymentRecord] = []
    for payment in payments:
        if payment.paid or payment.amount is None:
            converted.append(payment)
            continue
        if only_ids is not None:
            should_convert = payment.id in only_ids
        else:
            should_convert = payment.amount_converted is None
        if not should_convert:
            converted.append(payment)
            continue
        converted.append(
            payment.model_copy(
                update={
                    "amount_converted": round(float(payment.amount) * rate, 2),
                    "amount_converted_currency": converted_currency,
                }
            )
        )
    return converted


def sequence_rank(description: str | None) -> int:
    text = (description or "").lower()
    if _FINAL_RE.search(text):
        return 90
    if _THIRD_RE.search(text):
        return 30
    if _SECOND_RE.search(text):
        return 20
    if _FIRST_RE.search(text):
        return 10
    return 50


def _due_date_key(due_date: str | None) -> tuple[int, date]:
    if not due_date:
        return (1, date.max)
    try:
        return (0, date.fromisoformat(due_date))
    except ValueError:
        return (1, date.max)


def sort_payments_logical(payments: Iterable[PaymentT]) -> list[PaymentT]:
    """Installment order: deposit, 2nd, 3rd, unlabelled, final; then due date."""
    return sorted(
        payments,
        key=lambda payment: (sequence_rank(payment.description), _due_date_key(payment.due_date)),
    )


def sort_payments_chronological(payments: Iterable[PaymentT]) -> list[PaymentT]:
    """Due date ascending, payments without a due date last."""
    return sorted(payments, key=lambda payment: _due_date_key(payment.due_date))
