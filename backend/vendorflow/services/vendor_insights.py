from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from vendorflow.schemas.vendor import (
    CompletionQuestion,
    PaymentReminder,
    VendorNeedingDetails,
    VendorRecord,
    VendorStats,
)
from vendorflow.services.payments import sort_payments_chronological

COMPLETION_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("vendor_name", "vendor name", "text"),
    ("contact_name", "contact name", "text"),
    ("email", "email", "email"),
)


def vendor_stats(vendors: Sequence[VendorRecord], currency: str) -> VendorStats:
    """Totals in the converted currency; refundable payments are excluded."""
    total_cost = 0.0
    total_paid = 0.0
    for vendor in vendors:
        total_cost += vendor.cost_converted
        for payment in vendor.payments:
            if payment.refundable or not payment.paid:
                continue
            converted = payment.amount_converted
            total_paid += float(converted if converted is not None else payment.amount or 0.0)
    return VendorStats(
        total_vendors=len(vendors),
        total_cost=round(total_cost, 2),
        total_paid=round(total_paid, 2),
        total_outstanding=round(max(0.0, total_cost - total_paid), 2),
        currency=currency,
    )


def payment_reminders(
    vendors: Sequence[VendorRecord],
    *,
    today: date,
    window_days: int = 7,
) -> list[PaymentReminder]:
    reminders: list[PaymentReminder] = []
    for vendor in vendors:
        for payment in sort_payments_chronological(vendor.payments):
            if payment.paid or not payment.due_date:
                continue
            try:
                due = date.fromisoformat(payment.due_date)
            except ValueError:
                continue
            days_until_due = (due - today).days
            if not 0 <= days_until_due <= window_days:
                continue
            if payment.amount_converted is not None:
                amount = payment.amount_converted
                currency = payment.amount_converted_currency or vendor.cost_converted_currency
            else:
                amount = payment.amount or 0.0
                currency = payment.amount_currency or vendor.vendor_currency
            reminders.append(
                PaymentReminder(
                    vendor_id=vendor.id,
                    vendor_name=vendor.vendor_name,
                    vendor_type=vendor.vendor_type,
                    payment_id=payment.id,
                    payment_description=payment.description,
                    amount=amount,
                    currency=currency,
                    due_date=payment.due_date,
                    reminder_type="due_today" if days_until_due == 0 else "7_days",
                    days_until_due=days_until_due,
                )
            )
    return sorted(reminders, key=lambda reminder: (reminder.days_until_due, reminder.vendor_type))


def vendors_needing_details(vendors: Sequence[VendorRecord]) -> list[VendorNeedingDetails]:
    needing: list[VendorNeedingDetails] = []
    for vendor in vendors:
        if vendor.skip_completion_prompt:
            continue
        missing = [
            (field, label, field_type)
            for field, label, field_type in COMPLETION_FIELDS
            if not (getattr(vendor, field) or "").strip()
        ]
        if not missing:
            continue
        needing.append(
            VendorNeedingDetails(
                vendor_id=vendor.id,
                label=vendor.label,
                missing_fields=[field for field, _, _ in missing],
                questions=[
                    CompletionQuestion(
                        question=f"What is the {vendor.vendor_type}'s {label}?",
                        field=field,
                        field_type=field_type,
                        required=False,
                    )
                    for field, label, field_type in missing
                ],
            )
        )
    return needing
