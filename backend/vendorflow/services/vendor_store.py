from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from datetime import date
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from vendorflow.models.vendor import Vendor, utc_now_naive
from vendorflow.models.wedding import Wedding
from vendorflow.schemas.vendor import PaymentPatch, PaymentRecord, VendorPatch, VendorRecord
from vendorflow.services.payments import (
    apply_conversion,
    calculate_totals,
    merge_payments as merge_payment_lists,
    record_from_patch,
)
from vendorflow.services.vendor_types import normalize_vendor_type

logger = logging.getLogger(__name__)

RateLookup = Callable[[str, str], Awaitable[float]]


class VendorStoreError(RuntimeError):
    """Base error for vendor persistence failures."""


class VendorNotFoundError(VendorStoreError):
    """Raised when a vendor id does not exist in the wedding."""


class VendorValidationError(VendorStoreError):
    """Raised when vendor data cannot be stored as given."""


class VendorStore(ABC):
    @abstractmethod
    async def create_vendor(self, data: VendorPatch) -> VendorRecord:
        raise NotImplementedError

    @abstractmethod
    async def update_vendor(
        self,
        vendor_id: str,
        data: VendorPatch,
        *,
        merge_payments: bool = False,
    ) -> VendorRecord:
        raise NotImplementedError

    @abstractmethod
    async def list_vendors(self) -> list[VendorRecord]:
        raise NotImplementedError

    @abstractmethod
    async def get_vendor(self, vendor_id: str) -> VendorRecord:
        raise NotImplementedError

    @abstractmethod
    async def delete_vendor(self, vendor_id: str) -> None:
        raise NotImplementedError


async def _same_rate(from_currency: str, to_currency: str) -> float:
    return 1.0


def vendor_sort_key(vendor: VendorRecord) -> tuple[int, str, str]:
    return (0 if vendor.vendor_type == "Venue" else 1, vendor.vendor_type.lower(), vendor.created_at or "")


def to_vendor_record(vendor: Vendor) -> VendorRecord:
    return VendorRecord(
        id=str(vendor.id),
        vendor_type=vendor.vendor_type,
        vendor_name=vendor.vendor_name,
        contact_name=vendor.contact_name,
        email=vendor.email,
        phone=vendor.phone,
        website=vendor.website,
        vendor_currency=vendor.vendor_currency,
        cost_converted_currency=vendor.cost_converted_currency,
        vendor_cost=vendor.vendor_cost,
        cost_converted=vendor.cost_converted,
        contract_required=vendor.contract_required,
        contract_signed=vendor.contract_signed,
        contract_signed_date=str(vendor.contract_signed_date) if vendor.contract_signed_date else None,
        notes=vendor.notes,
        skip_completion_prompt=vendor.skip_completion_prompt,
        payments=[PaymentRecord.model_validate(payment) for payment in vendor.payments or []],
        created_at=vendor.created_at.isoformat(),
        updated_at=vendor.updated_at.isoformat(),
    )


def _parse_optional_date(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise VendorValidationError(f"Invalid {field_name}: {value!r}. Use YYYY-MM-DD.") from exc


def _validate_payment_dates(payments: Sequence[PaymentRecord]) -> None:
    for payment in payments:
        _parse_optional_date(payment.due_date, "due_date")
        _parse_optional_date(payment.paid_date, "paid_date")


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class SQLVendorStore(VendorStore):
    """Vendor roster of one wedding, persisted through SQLModel."""

    def __init__(
        self,
        session: AsyncSession,
        wedding: Wedding,
        rate_lookup: RateLookup | None = None,
    ) -> None:
        self.session = session
        self.wedding = wedding
        self.rate_lookup = rate_lookup or _same_rate

    async def _load(self, vendor_id: str) -> Vendor:
        try:
            parsed_id = UUID(str(vendor_id))
        except ValueError as exc:
            raise VendorNotFoundError(f"Vendor {vendor_id} not found.") from exc

        result = await self.session.execute(
            select(Vendor).where(Vendor.id == parsed_id, Vendor.wedding_id == self.wedding.id)
        )
        vendor = result.scalar_one_or_none()
        if vendor is None:
            raise VendorNotFoundError(f"Vendor {vendor_id} not found.")
        return vendor

    async def _commit(self, vendor: Vendor) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        await self.session.refresh(vendor)

    async def _convert(
        self,
        payments: list[PaymentRecord],
        *,
        vendor_currency: str,
        converted_currency: str,
        recompute_ids: set[str] | None = None,
    ) -> list[PaymentRecord]:
        payments = [
            payment
            if payment.amount_currency
            else payment.model_copy(update={"amount_currency": vendor_currency})
            for payment in payments
        ]
        needs_rate = recompute_ids or any(
            not payment.paid and payment.amount is not None and payment.amount_converted is None
            for payment in payments
        )
        if not needs_rate:
            return payments

        rate = await self.rate_lookup(vendor_currency, converted_currency)
        if recompute_ids:
            payments = apply_conversion(
                payments,
                rate=rate,
                converted_currency=converted_currency,
                only_ids=recompute_ids,
            )
        return apply_conversion(payments, rate=rate, converted_currency=converted_currency)

    def _apply_fields(self, vendor: Vendor, data: VendorPatch) -> None:
        fields = data.present_fields()
        for key, value in fields.items():
            if key == "vendor_type":
                vendor.vendor_type = normalize_vendor_type(value)
            elif key == "contract_signed_date":
                vendor.contract_signed_date = _parse_optional_date(value, "contract_signed_date")
            elif key in {"vendor_name", "contact_name", "phone", "website", "notes"}:
                setattr(vendor, key, _clean_optional_text(value))
            elif key == "email":
                vendor.email = _clean_optional_text(value.lower())
            else:
                setattr(vendor, key, value)

    async def create_vendor(self, data: VendorPatch) -> VendorRecord:
        if not data.vendor_type or not data.vendor_type.strip():
            raise VendorValidationError("vendor_type is required to create a vendor.")

        vendor = Vendor(
            wedding_id=self.wedding.id,
            vendor_type=normalize_vendor_type(data.vendor_type),
            vendor_currency=data.vendor_currency or self.wedding.default_currency,
            cost_converted_currency=data.cost_converted_currency or self.wedding.converted_currency,
        )
        self._apply_fields(vendor, data)

        payments = [record_from_patch(payment) for payment in data.payments or []]
        _validate_payment_dates(payments)
        payments = await self._convert(
            payments,
            vendor_currency=vendor.vendor_currency,
            converted_currency=vendor.cost_converted_currency,
        )
        self._store_payments(vendor, payments)

        self.session.add(vendor)
        await self._commit(vendor)
        logger.info("Created vendor %s (%s) in wedding %s", vendor.id, vendor.vendor_type, self.wedding.id)
        return to_vendor_record(vendor)

    async def update_vendor(
        self,
        vendor_id: str,
        data: VendorPatch,
        *,
        merge_payments: bool = False,
    ) -> VendorRecord:
        vendor = await self._load(vendor_id)
        previous_currencies = (vendor.vendor_currency, vendor.cost_converted_currency)
        self._apply_fields(vendor, data)
        currencies_changed = previous_currencies != (vendor.vendor_currency, vendor.cost_converted_currency)

        existing = [PaymentRecord.model_validate(payment) for payment in vendor.payments or []]
        incoming: list[PaymentPatch] = list(data.payments or [])
        if data.payments is None or (merge_payments and not incoming):
            payments = existing
        elif merge_payments:
            payments = merge_payment_lists(existing, incoming)
        else:
            payments = [record_from_patch(payment) for payment in incoming]

        recompute_ids = {
            payment.id
            for payment in incoming
            if payment.id and payment.amount is not None and payment.amount_converted is None
        }
        if currencies_changed:
            recompute_ids = {payment.id for payment in payments}

        _validate_payment_dates(payments)
        payments = await self._convert(
            payments,
            vendor_currency=vendor.vendor_currency,
            converted_currency=vendor.cost_converted_currency,
            recompute_ids=recompute_ids or None,
        )
        self._store_payments(vendor, payments)
        vendor.updated_at = utc_now_naive()

        self.session.add(vendor)
        await self._commit(vendor)
        logger.info("Updated vendor %s (merge_payments=%s)", vendor.id, merge_payments)
        return to_vendor_record(vendor)

    def _store_payments(self, vendor: Vendor, payments: list[PaymentRecord]) -> None:
        vendor.payments = [payment.model_dump() for payment in payments]
        vendor.vendor_cost, vendor.cost_converted = calculate_totals(payments)

    async def list_vendors(self) -> list[VendorRecord]:
        result = await self.session.execute(
            select(Vendor).where(Vendor.wedding_id == self.wedding.id).order_by(Vendor.created_at)
        )
        records = [to_vendor_record(vendor) for vendor in result.scalars().all()]
        return sorted(records, key=vendor_sort_key)

    async def get_vendor(self, vendor_id: str) -> VendorRecord:
        return to_vendor_record(await self._load(vendor_id))

    async def delete_vendor(self, vendor_id: str) -> None:
        vendor = await self._load(vendor_id)
        await self.session.delete(vendor)
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        logger.info("Deleted vendor %s", vendor_id)
