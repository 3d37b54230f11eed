"""Turn free text or a PDF into reconciled vendor operations.

The language model proposes operations; everything after that is checked
here against the wedding's roster so that a bad reply can never point an
update at the wrong vendor or invent a conversion rate.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

import httpx

from vendorflow.models.wedding import Wedding
from vendorflow.schemas.vendor import VendorRecord
from vendorflow.services.llm.base import VendorParserProvider
from vendorflow.services.llm.provider_factory import ProviderNotConfiguredError
from vendorflow.services.llm.types import (
    Clarification,
    ParseContext,
    ParsedOperation,
    ParseResult,
    RosterPayment,
    RosterVendor,
)
from vendorflow.services.payments import assign_payment_ids, sort_payments_logical
from vendorflow.services.pdf_text import extract_text_from_pdf, validate_pdf_upload
from vendorflow.services.vendor_types import VENDOR_TYPES, distinctive_name_tokens, normalize_vendor_type

logger = logging.getLogger(__name__)

CREATE_NEW_CHOICE = "Create new vendor"
SKIP_CHOICE = "Skip"
PAYMENT_TYPE_CHOICES = ["Cash", "Bank Transfer"]
_PAYMENT_FIELD_RE = re.compile(r"^payment_(\d+)_(description|amount)$")


class ExtractionError(RuntimeError):
    """Raised when the language backend produced no usable batch."""


class EmptyInputError(ValueError):
    """Raised when there is no text to extract from."""


@dataclass
class ExtractionInput:
    text: str | None = None
    pdf_bytes: bytes | None = None
    filename: str | None = None
    content_type: str | None = None

    @property
    def source(self) -> Literal["text", "pdf"]:
        return "pdf" if self.pdf_bytes is not None else "text"


@dataclass
class ExtractionResult:
    operations: list[ParsedOperation]
    clarifications: list[Clarification]
    source: Literal["text", "pdf"]
    processing_time_ms: int = 0
    warnings: list[str] = field(default_factory=list)


def roster_from_records(records: list[VendorRecord]) -> list[RosterVendor]:
    return [
        RosterVendor(
            id=record.id or "",
            vendor_type=record.vendor_type,
            vendor_name=record.vendor_name,
            email=record.email,
            phone=record.phone,
            contract_signed=record.contract_signed,
            vendor_currency=record.vendor_currency,
            payments=[
                RosterPayment(
                    id=payment.id,
                    description=payment.description,
                    amount=payment.amount,
                    amount_currency=payment.amount_currency,
                    due_date=payment.due_date,
                    paid=payment.paid,
                )
                for payment in record.payments
            ],
        )
        for record in records
        if record.id
    ]


def build_parse_context(
    *,
    wedding: Wedding,
    roster: list[VendorRecord],
    reference_date: date,
    timezone: str,
) -> ParseContext:
    return ParseContext(
        reference_date=reference_date,
        timezone=timezone,
        default_currency=wedding.default_currency,
        converted_currency=wedding.converted_currency,
        wedding_date=wedding.wedding_date,
        roster=roster_from_records(roster),
    )


async def _resolve_text(
    source: ExtractionInput,
    *,
    max_pdf_bytes: int,
) -> str:
    if source.pdf_bytes is not None:
        validate_pdf_upload(
            pdf_bytes=source.pdf_bytes,
            filename=source.filename,
            content_type=source.content_type,
            max_bytes=max_pdf_bytes,
        )
        return await asyncio.to_thread(extract_text_from_pdf, source.pdf_bytes)
    return source.text or ""


async def extract_vendor_operations(
    source: ExtractionInput,
    *,
    parser: VendorParserProvider,
    context: ParseContext,
    max_pdf_bytes: int,
    max_input_chars: int = 0,
) -> ExtractionResult:
    started = time.perf_counter()
    text = (await _resolve_text(source, max_pdf_bytes=max_pdf_bytes)).strip()
    if not text:
        raise EmptyInputError("Text cannot be empty.")

    warnings: list[str] = []
    if max_input_chars > 0 and len(text) > max_input_chars:
        logger.warning("Truncating %s input from %d to %d characters", source.source, len(text), max_input_chars)
        text = text[:max_input_chars]
        warnings.append("The document was long, so only its first part was read.")

    try:
        parsed = await parser.parse_vendors(text, context)
    except ProviderNotConfiguredError:
        raise
    except httpx.HTTPStatusError as exc:
        logger.warning("Vendor parse failed with upstream status %s", exc.response.status_code)
        raise ExtractionError(
            f"Vendor extraction failed with status {exc.response.status_code}."
        ) from exc
    except httpx.HTTPError as exc:
        logger.warning("Vendor parse could not reach the language backend: %s", exc)
        raise ExtractionError("Could not reach the language model service.") from exc
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        logger.warning("Vendor parse returned an unusable reply: %s", exc)
        raise ExtractionError("The language model returned a reply that could not be read.") from exc

    operations, clarifications = reconcile_parse_result(parsed, context)
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        "Extracted %d operations and %d clarifications from %s in %dms",
        len(operations),
        len(clarifications),
        source.source,
        elapsed_ms,
    )
    return ExtractionResult(
        operations=operations,
        clarifications=clarifications,
        source=source.source,
        processing_time_ms=elapsed_ms,
        warnings=warnings,
    )


def _types_compatible(left: str | None, right: str | None) -> bool:
    if not left or not right or "Other" in (left, right):
        return True
    return left == right


def _match_by_name(
    name: str | None,
    vendor_type: str | None,
    roster: list[RosterVendor],
) -> list[RosterVendor]:
    tokens = distinctive_name_tokens(name)
    if not tokens:
        return []
    matches: list[RosterVendor] = []
    for vendor in roster:
        vendor_tokens = distinctive_name_tokens(vendor.vendor_name)
        if not vendor_tokens:
            continue
        if not (tokens <= vendor_tokens or vendor_tokens <= tokens):
            continue
        if not _types_compatible(vendor_type, vendor.vendor_type):
            continue
        matches.append(vendor)
    return matches


def _is_iso_date(value: str | None) -> bool:
    if not value:
        return True
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _operation_label(operation: ParsedOperation) -> str:
    data = operation.vendor_data
    return data.vendor_name or operation.matched_vendor_name or data.vendor_type or "this vendor"


def _retarget(operation: ParsedOperation, vendor: RosterVendor) -> None:
    operation.action = "update"
    operation.vendor_id = vendor.id
    operation.matched_vendor_name = vendor.label


def _validate_update_targets(
    operation: ParsedOperation,
    roster_by_id: dict[str, RosterVendor],
    roster: list[RosterVendor],
) -> None:
    if operation.action != "update":
        return
    target = roster_by_id.get(operation.vendor_id or "")
    if target is not None:
        if not operation.matched_vendor_name:
            operation.matched_vendor_name = target.label
        return

    hint = operation.matched_vendor_name or operation.vendor_data.vendor_name
    candidates = _match_by_name(hint, operation.vendor_data.vendor_type, roster)
    if len(candidates) == 1:
        _retarget(operation, candidates[0])
        operation.warnings.append(f"Vendor reference was corrected to {candidates[0].label}.")
        return

    operation.action = "create"
    operation.vendor_id = None
    operation.matched_vendor_name = None
    operation.warnings.append(
        "The referenced vendor is not in your vendor list, so it will be created as a new vendor."
    )


def _type_only_choice(
    index: int,
    operation: ParsedOperation,
    candidates: list[RosterVendor],
) -> Clarification:
    choices = [CREATE_NEW_CHOICE]
    choice_vendor_ids: dict[str, str] = {}
    for vendor in candidates:
        choice = f"Update {vendor.label}"
        if choice in choice_vendor_ids:
            choice = f"Update {vendor.label} ({vendor.id[:8]})"
        choices.append(choice)
        choice_vendor_ids[choice] = vendor.id
    choices.append(SKIP_CHOICE)
    vendor_type = operation.vendor_data.vendor_type
    return Clarification(
        question=f"You have more than one {vendor_type}. Which one is this about?",
        field="action_choice",
        field_type="choice",
        context=", ".join(vendor.label for vendor in candidates),
        operation_index=index,
        required=True,
        choices=choices,
        choice_vendor_ids=choice_vendor_ids,
    )


def _payment_clarifications(
    index: int,
    operation: ParsedOperation,
    existing_payment_ids: set[str],
    described_payment_ids: set[str] | None = None,
) -> list[Clarification]:
    clarifications: list[Clarification] = []
    label = _operation_label(operation)
    for payment_index, payment in enumerate(operation.vendor_data.payments or []):
        if payment.id in existing_payment_ids:
            continue
        number = payment_index + 1
        payment_label = payment.description or f"payment {number}"
        if payment.payment_type is None:
            clarifications.append(
                Clarification(
                    question=f"How is the {payment_label} for {label} paid?",
                    field="payment_type",
                    field_type="choice",
                    operation_index=index,
                    required=True,
                    choices=list(PAYMENT_TYPE_CHOICES),
                    payment_index=payment_index,
                )
            )
        already_asked = payment.id in (described_payment_ids or set())
        if not already_asked and not (payment.description and payment.description.strip()):
            clarifications.append(
                Clarification(
                    question=f"What is payment {number} for {label}? (e.g. 1st deposit, Final payment)",
                    field=f"payment_{payment_index}_description",
                    field_type="text",
                    operation_index=index,
                    required=True,
                    payment_index=payment_index,
                )
            )
        if payment.amount is None:
            clarifications.append(
                Clarification(
                    question=f"What is the amount of the {payment_label} for {label}?",
                    field=f"payment_{payment_index}_amount",
                    field_type="number",
                    operation_index=index,
                    required=True,
                    payment_index=payment_index,
                )
            )
    return clarifications


def _normalize_currency_and_dates(
    operation: ParsedOperation,
    target: RosterVendor | None,
    default_currency: str,
) -> None:
    data = operation.vendor_data
    payments = list(data.payments or [])

    currency = data.vendor_currency
    if not currency:
        inferred = next((payment.amount_currency for payment in payments if payment.amount_currency), None)
        if inferred:
            currency = inferred
            data.vendor_currency = inferred
        elif target is not None and target.vendor_currency:
            currency = target.vendor_currency
        else:
            currency = default_currency
            data.vendor_currency = default_currency
            if payments:
                operation.warnings.append(f"Assumed {default_currency} because no currency was stated.")

    for payment in payments:
        if not payment.amount_currency and payment.amount is not None:
            payment.amount_currency = currency
        if payment.amount_converted is not None and not payment.amount_converted_currency:
            payment.amount_converted = None
            operation.warnings.append(
                f"Dropped a converted amount for {payment.description or 'a payment'} because its currency was not stated."
            )
        for date_field in ("due_date", "paid_date"):
            value = getattr(payment, date_field)
            if not _is_iso_date(value):
                setattr(payment, date_field, None)
                operation.warnings.append(f"Ignored invalid {date_field.replace('_', ' ')} '{value}'.")
        if payment.paid is not True and payment.paid_date:
            payment.paid_date = None

    if not _is_iso_date(data.contract_signed_date):
        operation.warnings.append(f"Ignored invalid contract signed date '{data.contract_signed_date}'.")
        data.contract_signed_date = None


def reconcile_parse_result(
    parsed: ParseResult,
    context: ParseContext,
) -> tuple[list[ParsedOperation], list[Clarification]]:
    operations = [operation.model_copy(deep=True) for operation in parsed.operations]
    roster = context.roster
    roster_by_id = {vendor.id: vendor for vendor in roster}

    clarifications: list[Clarification] = []
    description_choices: dict[int, list[tuple[int, Clarification]]] = {}
    for clarification in parsed.clarifications_needed:
        clarification = clarification.model_copy(deep=True)
        index = clarification.operation_index
        if index is not None and not 0 <= index < len(operations):
            clarification.operation_index = None
        if clarification.field_type == "choice" and not clarification.choices:
            clarification.field_type = "text"
        payment_match = _PAYMENT_FIELD_RE.match(clarification.field)
        if clarification.operation_index is not None and payment_match:
            if payment_match.group(2) == "description" and clarification.field_type == "choice":
                # Which payment a stray amount belongs to; re-targeted once payments are sorted.
                position = clarification.payment_index
                if position is None:
                    position = int(payment_match.group(1))
                description_choices.setdefault(clarification.operation_index, []).append(
                    (position, clarification)
                )
            continue
        if clarification.operation_index is not None and clarification.field == "payment_type":
            continue
        clarifications.append(clarification)

    for index, operation in enumerate(operations):
        data = operation.vendor_data
        if data.vendor_type:
            normalized = normalize_vendor_type(data.vendor_type)
            if normalized == "Other" and data.vendor_type.strip().lower() != "other":
                operation.warnings.append(f"Vendor type '{data.vendor_type}' is not recognised; using Other.")
            data.vendor_type = normalized

        _validate_update_targets(operation, roster_by_id, roster)

        if operation.action == "create" and data.vendor_name:
            candidates = _match_by_name(data.vendor_name, data.vendor_type, roster)
            if len(candidates) == 1:
                _retarget(operation, candidates[0])
                operation.warnings.append(
                    f"{data.vendor_name} matches your existing vendor {candidates[0].label}, so it will be updated instead of duplicated."
                )

        if operation.action == "create" and not data.vendor_name and data.vendor_type:
            candidates = [vendor for vendor in roster if vendor.vendor_type == data.vendor_type]
            if len(candidates) == 1:
                _retarget(operation, candidates[0])
                operation.warnings.append(
                    f"Assumed this is about your {data.vendor_type} {candidates[0].label}."
                )
            elif len(candidates) > 1:
                clarifications.append(_type_only_choice(index, operation, candidates))

        target = roster_by_id.get(operation.vendor_id or "") if operation.action == "update" else None
        _normalize_currency_and_dates(operation, target, context.default_currency)

        if data.payments:
            with_ids = assign_payment_ids(data.payments)
            asked: dict[str, Clarification] = {}
            for position, clarification in description_choices.get(index, []):
                if 0 <= position < len(with_ids):
                    asked[with_ids[position].id] = clarification
                else:
                    operation.warnings.append(
                        f"Dropped a question about payment {position + 1}, which does not exist."
                    )
            data.payments = sort_payments_logical(with_ids)
            for position, payment in enumerate(data.payments):
                if payment.id in asked:
                    clarifications.append(
                        asked[payment.id].model_copy(
                            update={
                                "field": f"payment_{position}_description",
                                "payment_index": position,
                                "required": asked[payment.id].required or not payment.description,
                            }
                        )
                    )
            existing_payment_ids = {payment.id for payment in target.payments} if target else set()
            clarifications.extend(
                _payment_clarifications(index, operation, existing_payment_ids, set(asked))
            )

        if operation.action == "create" and not data.vendor_type:
            clarifications.append(
                Clarification(
                    question=f"What type of vendor is {_operation_label(operation)}?",
                    field="vendor_type",
                    field_type="choice",
                    operation_index=index,
                    required=True,
                    choices=list(VENDOR_TYPES),
                )
            )

    if not operations and not clarifications:
        clarifications.append(
            Clarification(
                question=(
                    "I couldn't find any vendor details in that text. "
                    "Which vendor is this about, and what should be recorded?"
                ),
                field="vendor_name",
                field_type="text",
                required=False,
            )
        )

    return operations, clarifications
