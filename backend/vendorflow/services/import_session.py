"""Draft state of one "Ask AI" vendor import.

An ``ImportSession`` holds the reconciled operations and the clarifications
still open against them. Nothing touches the vendor store until
``execute`` runs, and only after every blocking issue is resolved.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Literal
from uuid import uuid4

from vendorflow.core.config import get_settings
from vendorflow.schemas.vendor import (
    PAYMENT_PATCH_FIELDS,
    VENDOR_PATCH_FIELDS,
    VendorPatch,
    normalize_payment_type,
    payment_ready,
    vendor_ready_to_create,
)
from vendorflow.services.answer_normalization import normalize_answer
from vendorflow.services.llm.types import Clarification, ParsedOperation
from vendorflow.services.operation_executor import ExecutionReport, execute_operations
from vendorflow.services.payments import assign_payment_ids
from vendorflow.services.vendor_extraction import CREATE_NEW_CHOICE, SKIP_CHOICE
from vendorflow.services.vendor_store import VendorStore
from vendorflow.services.vendor_types import normalize_vendor_type

logger = logging.getLogger(__name__)

_PAYMENT_FIELD_RE = re.compile(r"^payment_(\d+)_(\w+)$")


class ImportSessionStatus(str, Enum):
    DRAFT = "draft"
    EXECUTING = "executing"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class ImportSessionError(RuntimeError):
    """Base error for import session operations."""


class ImportSessionNotFoundError(ImportSessionError):
    pass


class ImportSessionClosedError(ImportSessionError):
    pass


class ClarificationNotFoundError(ImportSessionError):
    pass


class OperationNotFoundError(ImportSessionError):
    pass


class ClarificationRequiredError(ImportSessionError):
    """Raised when skipping a clarification the batch cannot do without."""


class ParseInFlightError(ImportSessionError):
    """Raised when a wedding already has a parse running."""


@dataclass
class BlockingIssue:
    kind: Literal["required_clarification", "pending_clarification", "incomplete_operation", "empty_batch"]
    message: str
    operation_index: int | None = None
    clarification_id: str | None = None


class ExecutionBlockedError(ImportSessionError):
    def __init__(self, issues: list[BlockingIssue]) -> None:
        super().__init__("; ".join(issue.message for issue in issues))
        self.issues = issues


def _now() -> datetime:
    return datetime.now(UTC)


class ImportSession:
    def __init__(
        self,
        *,
        wedding_id: str,
        operations: list[ParsedOperation],
        clarifications: list[Clarification],
        source: str,
        existing_payment_ids: dict[str, set[str]] | None = None,
        warnings: list[str] | None = None,
    ) -> None:
        self.id = uuid4().hex
        self.wedding_id = wedding_id
        self.source = source
        self.status = ImportSessionStatus.DRAFT
        self.operations = operations
        self.clarifications: list[Clarification] = []
        self.notes: list[str] = []
        self.warnings = list(warnings or [])
        self.existing_payment_ids = existing_payment_ids or {}
        self.last_report: ExecutionReport | None = None
        self.created_at = _now()
        self._clarification_counter = 0
        for clarification in clarifications:
            self._add_clarification(clarification)

    def _add_clarification(self, clarification: Clarification) -> None:
        self._clarification_counter += 1
        self.clarifications.append(clarification.model_copy(update={"id": f"c{self._clarification_counter}"}))

    def _require_draft(self) -> None:
        if self.status != ImportSessionStatus.DRAFT:
            raise ImportSessionClosedError(f"Import session is {self.status.value}.")

    def _get_clarification(self, clarification_id: str) -> Clarification:
        for clarification in self.clarifications:
            if clarification.id == clarification_id:
                return clarification
        raise ClarificationNotFoundError(f"Clarification {clarification_id} not found.")

    def _get_operation(self, index: int) -> ParsedOperation:
        if not 0 <= index < len(self.operations):
            raise OperationNotFoundError(f"Operation {index} not found.")
        return self.operations[index]

    def _resolve(self, clarification: Clarification) -> None:
        self.clarifications = [item for item in self.clarifications if item.id != clarification.id]

    def _is_existing_payment(self, operation: ParsedOperation, payment_id: str | None) -> bool:
        if operation.action != "update" or not payment_id:
            return False
        return payment_id in self.existing_payment_ids.get(operation.vendor_id or "", set())

    def answer(self, clarification_id: str, value: object) -> None:
        self._require_draft()
        clarification = self._get_clarification(clarification_id)

        if clarification.operation_index is None:
            self.notes.append(f"{clarification.question} {str(value).strip()}".strip())
            self._resolve(clarification)
            return

        index = clarification.operation_index
        operation = self._get_operation(index)
        field = clarification.field

        if field == "action_choice":
            choice = str(value).strip()
            if choice == SKIP_CHOICE:
                self.remove_operation(index)
                return
            if choice == CREATE_NEW_CHOICE:
                operation.action = "create"
                operation.vendor_id = None
                operation.matched_vendor_name = None
            elif choice in clarification.choice_vendor_ids:
                operation.action = "update"
                operation.vendor_id = clarification.choice_vendor_ids[choice]
                operation.matched_vendor_name = choice.removeprefix("Update ").strip()
            self._resolve(clarification)
            return

        if field == "payment_type":
            if self._apply_payment_type(operation, clarification, value):
                self._resolve(clarification)
            return

        payment_match = _PAYMENT_FIELD_RE.match(field)
        if payment_match:
            self._apply_payment_field(operation, clarification, payment_match, value)
            self._resolve(clarification)
            return

        if field in VENDOR_PATCH_FIELDS:
            normalized = normalize_answer(field, clarification.field_type, value)
            if field == "vendor_type":
                normalized = normalize_vendor_type(str(normalized))
            elif field in {"vendor_currency", "cost_converted_currency"}:
                normalized = str(normalized).upper() or None
            if normalized is not None and normalized != "":
                setattr(operation.vendor_data, field, normalized)
        else:
            operation.warnings.append(f"Answer for '{field}' could not be applied: {str(value).strip()}")
        self._resolve(clarification)

    def _apply_payment_type(
        self,
        operation: ParsedOperation,
        clarification: Clarification,
        value: object,
    ) -> bool:
        """Set the payment method; ``False`` leaves the question open."""
        payment_type = normalize_payment_type(value)
        if payment_type is None:
            operation.warnings.append(
                f"'{str(value).strip()}' is not a payment method. Answer Cash or Bank Transfer."
            )
            return False
        payments = operation.vendor_data.payments or []
        target = None
        if clarification.payment_index is not None and 0 <= clarification.payment_index < len(payments):
            target = payments[clarification.payment_index]
        else:
            target = next((payment for payment in payments if payment.payment_type is None), None)
        if target is None:
            operation.warnings.append("Payment method answer had no payment to apply to.")
            return True
        target.payment_type = payment_type
        return True

    def _apply_payment_field(
        self,
        operation: ParsedOperation,
        clarification: Clarification,
        match: re.Match[str],
        value: object,
    ) -> None:
        payments = operation.vendor_data.payments or []
        payment_index = clarification.payment_index
        if payment_index is None:
            payment_index = int(match.group(1))
        sub_field = match.group(2)
        if not 0 <= payment_index < len(payments) or sub_field not in PAYMENT_PATCH_FIELDS:
            operation.warnings.append(f"Answer for '{clarification.field}' could not be applied.")
            return

        payment = payments[payment_index]
        if sub_field == "description" and clarification.field_type == "choice":
            payment.description = "Full payment" if str(value).strip() == "Total cost" else "1st deposit"
            return
        field_type = "number" if sub_field in {"amount", "amount_converted"} else clarification.field_type
        normalized = normalize_answer(sub_field, field_type, value)
        if sub_field in {"amount_currency", "amount_converted_currency"}:
            normalized = str(normalized).upper()
        if normalized is not None and normalized != "":
            setattr(payment, sub_field, normalized)

    def skip(self, clarification_id: str) -> None:
        self._require_draft()
        clarification = self._get_clarification(clarification_id)
        if clarification.required:
            raise ClarificationRequiredError(
                f"'{clarification.question}' must be answered before importing."
            )
        self._resolve(clarification)

    def edit_operation(self, index: int, patch: VendorPatch) -> ParsedOperation:
        self._require_draft()
        operation = self._get_operation(index)
        updates = patch.present_fields()
        if "vendor_type" in updates:
            updates["vendor_type"] = normalize_vendor_type(updates["vendor_type"])
        for key, value in updates.items():
            setattr(operation.vendor_data, key, value)
        if patch.payments is not None:
            operation.vendor_data.payments = assign_payment_ids(patch.payments)
        self._drop_satisfied_clarifications(index)
        return operation

    def _drop_satisfied_clarifications(self, index: int) -> None:
        operation = self.operations[index]
        data = operation.vendor_data
        payments = data.payments or []
        remaining: list[Clarification] = []
        for clarification in self.clarifications:
            if clarification.operation_index != index:
                remaining.append(clarification)
                continue
            satisfied = False
            if clarification.field == "vendor_type":
                satisfied = bool(data.vendor_type)
            elif clarification.field == "payment_type":
                pi = clarification.payment_index
                if pi is not None and 0 <= pi < len(payments):
                    satisfied = payments[pi].payment_type is not None
                else:
                    satisfied = all(payment.payment_type is not None for payment in payments)
            elif match := _PAYMENT_FIELD_RE.match(clarification.field):
                pi = clarification.payment_index
                if pi is None:
                    pi = int(match.group(1))
                if 0 <= pi < len(payments):
                    satisfied = getattr(payments[pi], match.group(2), None) not in (None, "")
                else:
                    satisfied = True
            elif clarification.field in VENDOR_PATCH_FIELDS:
                satisfied = getattr(data, clarification.field) not in (None, "")
            if not satisfied:
                remaining.append(clarification)
        self.clarifications = remaining

    def remove_operation(self, index: int) -> None:
        self._require_draft()
        self._get_operation(index)
        self.operations.pop(index)
        remaining: list[Clarification] = []
        for clarification in self.clarifications:
            current = clarification.operation_index
            if current == index:
                continue
            if current is not None and current > index:
                clarification = clarification.model_copy(update={"operation_index": current - 1})
            remaining.append(clarification)
        self.clarifications = remaining

    def operation_issues(self, index: int) -> list[str]:
        operation = self.operations[index]
        data = operation.vendor_data
        problems: list[str] = []
        if operation.action == "create" and not vendor_ready_to_create(data):
            problems.append("vendor type is missing")
        if operation.action == "update" and not operation.vendor_id:
            problems.append("no vendor selected to update")
        for number, payment in enumerate(data.payments or [], start=1):
            if self._is_existing_payment(operation, payment.id):
                continue
            if not payment_ready(payment):
                problems.append(f"payment {number} needs a description, amount and payment type")
        return problems

    def blocking_issues(self, *, proceed_with_optional: bool = False) -> list[BlockingIssue]:
        issues: list[BlockingIssue] = []
        for clarification in self.clarifications:
            if clarification.required:
                issues.append(
                    BlockingIssue(
                        kind="required_clarification",
                        message=f"Answer required: {clarification.question}",
                        operation_index=clarification.operation_index,
                        clarification_id=clarification.id,
                    )
                )
            elif not proceed_with_optional:
                issues.append(
                    BlockingIssue(
                        kind="pending_clarification",
                        message=f"Unanswered question: {clarification.question}",
                        operation_index=clarification.operation_index,
                        clarification_id=clarification.id,
                    )
                )
        for index, operation in enumerate(self.operations):
            for problem in self.operation_issues(index):
                issues.append(
                    BlockingIssue(
                        kind="incomplete_operation",
                        message=f"{operation.vendor_data.vendor_name or operation.matched_vendor_name or 'Vendor'}: {problem}",
                        operation_index=index,
                    )
                )
        if not self.operations:
            issues.append(BlockingIssue(kind="empty_batch", message="There are no vendor changes to import."))
        return issues

    def cancel(self) -> None:
        if self.status == ImportSessionStatus.EXECUTING:
            raise ImportSessionClosedError("Import session is executing.")
        if self.status == ImportSessionStatus.COMMITTED:
            raise ImportSessionClosedError("Import session is already committed.")
        self.status = ImportSessionStatus.CANCELLED

    async def execute(
        self,
        store: VendorStore,
        *,
        proceed_with_optional: bool = False,
    ) -> ExecutionReport:
        self._require_draft()
        issues = self.blocking_issues(proceed_with_optional=proceed_with_optional)
        if issues:
            raise ExecutionBlockedError(issues)

        self.status = ImportSessionStatus.EXECUTING
        try:
            report = await execute_operations(self.operations, store)
        except BaseException:
            self.status = ImportSessionStatus.DRAFT
            raise

        self.last_report = report
        if report.failure is None:
            self.operations = []
            self.clarifications = []
            self.status = ImportSessionStatus.COMMITTED
            logger.info("Import session %s committed %d operations", self.id, len(report.results))
            return report

        executed = report.failure.index
        self.operations = list(report.remaining)
        self.clarifications = [
            clarification.model_copy(
                update={
                    "operation_index": (
                        None
                        if clarification.operation_index is None
                        else clarification.operation_index - executed
                    )
                }
            )
            for clarification in self.clarifications
            if clarification.operation_index is None or clarification.operation_index >= executed
        ]
        self.status = ImportSessionStatus.DRAFT
        logger.info("Import session %s stopped at operation %d", self.id, executed)
        return report


class ImportSessionRegistry:
    """Process-local store of import sessions keyed by id.

    Sessions idle for longer than ``max_age`` are evicted whenever a new one
    is added.
    """

    def __init__(
        self,
        *,
        max_age: timedelta = timedelta(hours=6),
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._sessions: dict[str, ImportSession] = {}
        self._last_seen: dict[str, datetime] = {}
        self._parsing: set[str] = set()
        self._max_age = max_age
        self._clock = clock

    @asynccontextmanager
    async def parse_slot(self, wedding_id: str) -> AsyncIterator[None]:
        if wedding_id in self._parsing:
            raise ParseInFlightError("An import is already being parsed for this wedding.")
        self._parsing.add(wedding_id)
        try:
            yield
        finally:
            self._parsing.discard(wedding_id)

    def _evict_stale(self) -> None:
        cutoff = self._clock() - self._max_age
        stale = [
            session_id
            for session_id, seen in self._last_seen.items()
            if seen < cutoff and self._sessions[session_id].status != ImportSessionStatus.EXECUTING
        ]
        for session_id in stale:
            self.discard(session_id)
        if stale:
            logger.info("Evicted %d idle import sessions", len(stale))

    def add(self, session: ImportSession) -> ImportSession:
        self._evict_stale()
        self._sessions[session.id] = session
        self._last_seen[session.id] = self._clock()
        return session

    def get(self, session_id: str, wedding_id: str) -> ImportSession:
        session = self._sessions.get(session_id)
        if session is None or session.wedding_id != wedding_id:
            raise ImportSessionNotFoundError(f"Import session {session_id} not found.")
        self._last_seen[session_id] = self._clock()
        return session

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()
        self._last_seen.clear()
        self._parsing.clear()


import_registry = ImportSessionRegistry(
    max_age=timedelta(minutes=get_settings().import_session_max_idle_minutes),
)


def get_import_registry() -> ImportSessionRegistry:
    return import_registry
