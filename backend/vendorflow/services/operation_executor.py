from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from vendorflow.schemas.vendor import VendorRecord
from vendorflow.services.llm.types import ParsedOperation
from vendorflow.services.vendor_store import VendorStore, VendorStoreError

logger = logging.getLogger(__name__)


@dataclass
class OperationFailure:
    index: int
    action: str
    label: str
    message: str


@dataclass
class ExecutionReport:
    results: list[VendorRecord] = field(default_factory=list)
    failure: OperationFailure | None = None
    remaining: list[ParsedOperation] = field(default_factory=list)
    first_affected_vendor_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


def _label(operation: ParsedOperation) -> str:
    data = operation.vendor_data
    return data.vendor_name or operation.matched_vendor_name or data.vendor_type or "vendor"


async def execute_operations(
    operations: Sequence[ParsedOperation],
    store: VendorStore,
) -> ExecutionReport:
    """Apply operations in order, stopping at the first store failure.

    Operations before the failure stay applied. ``remaining`` starts at the
    failed operation so a retry never repeats a successful create.
    """
    report = ExecutionReport()
    for index, operation in enumerate(operations):
        try:
            if operation.action == "create":
                record = await store.create_vendor(operation.vendor_data)
            else:
                record = await store.update_vendor(
                    operation.vendor_id or "",
                    operation.vendor_data,
                    merge_payments=True,
                )
        except (VendorStoreError, SQLAlchemyError) as exc:
            logger.warning("Vendor %s failed at operation %d: %s", operation.action, index, exc)
            report.failure = OperationFailure(
                index=index,
                action=operation.action,
                label=_label(operation),
                message=str(exc) or exc.__class__.__name__,
            )
            report.remaining = list(operations[index:])
            break
        report.results.append(record)

    if report.results:
        report.first_affected_vendor_id = report.results[0].id
    logger.info(
        "Executed %d of %d vendor operations",
        len(report.results),
        len(operations),
    )
    return report
