from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.models.wedding import Wedding
from vendorflow.schemas.vendor import PaymentPatch, VendorPatch
from vendorflow.services.llm.types import ParsedOperation
from vendorflow.services.operation_executor import execute_operations
from vendorflow.services.vendor_store import SQLVendorStore


async def _rate(from_currency: str, to_currency: str) -> float:
    return 1.1


@pytest.mark.asyncio
async def test_operations_run_in_order(db_session: AsyncSession, wedding: Wedding) -> None:
    store = SQLVendorStore(db_session, wedding, rate_lookup=_rate)
    operations = [
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Venue",
                vendor_name="Finca Olivar",
                payments=[
                    PaymentPatch(description="Deposit", amount=2000.0, payment_type="bank_transfer", paid=True),
                    PaymentPatch(description="Final payment", amount=8000.0, payment_type="bank_transfer"),
                ],
            ),
        ),
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(vendor_type="Photographer", vendor_name="Luz Studio"),
        ),
    ]

    report = await execute_operations(operations, store)

    assert report.succeeded
    assert [record.vendor_name for record in report.results] == ["Finca Olivar", "Luz Studio"]
    assert report.first_affected_vendor_id == report.results[0].id
    venue = report.results[0]
    assert venue.vendor_cost == 10000.0
    # Paid deposit is not converted, so it counts at face value.
    assert venue.cost_converted == 2000.0 + 8800.0


@pytest.mark.asyncio
async def test_execution_stops_at_first_failure(db_session: AsyncSession, wedding: Wedding) -> None:
    store = SQLVendorStore(db_session, wedding, rate_lookup=_rate)
    operations = [
        ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="Florist", vendor_name="Luna Flores")),
        ParsedOperation(
            action="update",
            vendor_id=str(uuid4()),
            vendor_data=VendorPatch(notes="Call on Monday"),
        ),
        ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="Cake", vendor_name="Dulce")),
    ]

    report = await execute_operations(operations, store)

    assert len(report.results) == 1
    assert report.failure is not None
    assert report.failure.index == 1
    assert report.failure.action == "update"
    assert "not found" in report.failure.message
    assert report.remaining == operations[1:]

    vendors = await store.list_vendors()
    assert [vendor.vendor_name for vendor in vendors] == ["Luna Flores"]


@pytest.mark.asyncio
async def test_update_merges_payments_by_id(db_session: AsyncSession, wedding: Wedding) -> None:
    store = SQLVendorStore(db_session, wedding, rate_lookup=_rate)
    created = await store.create_vendor(
        VendorPatch(
            vendor_type="Caterer",
            vendor_name="Sabores",
            payments=[
                PaymentPatch(description="Deposit", amount=500.0, payment_type="cash", paid=True, paid_date="2025-01-01"),
                PaymentPatch(description="Final payment", amount=300.0, payment_type="cash"),
            ],
        )
    )
    final_id = created.payments[1].id

    report = await execute_operations(
        [
            ParsedOperation(
                action="update",
                vendor_id=created.id,
                vendor_data=VendorPatch(payments=[PaymentPatch(id=final_id, amount=350.0)]),
            )
        ],
        store,
    )

    updated = report.results[0]
    assert len(updated.payments) == 2
    assert updated.payments[0] == created.payments[0]
    assert updated.payments[1].amount == 350.0
    assert updated.payments[1].amount_converted == 385.0
    assert updated.vendor_cost == 850.0
