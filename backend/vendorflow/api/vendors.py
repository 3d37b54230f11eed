from fastapi import APIRouter, Depends, HTTPException, status

from vendorflow.api.deps import get_current_wedding, get_vendor_store, today_for_timezone
from vendorflow.core.config import get_settings
from vendorflow.models.wedding import Wedding
from vendorflow.schemas.vendor import (
    VendorCreateRequest,
    VendorDeleteResponse,
    VendorListResponse,
    VendorOverviewResponse,
    VendorRecord,
    VendorUpdateRequest,
)
from vendorflow.services.payments import sort_payments_logical
from vendorflow.services.vendor_insights import payment_reminders, vendor_stats, vendors_needing_details
from vendorflow.services.vendor_store import VendorNotFoundError, VendorStore, VendorValidationError

router = APIRouter(prefix="/vendors", tags=["vendors"])
settings = get_settings()


def _with_logical_payments(vendor: VendorRecord) -> VendorRecord:
    return vendor.model_copy(update={"payments": sort_payments_logical(vendor.payments)})


def _not_found(exc: VendorNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _invalid(exc: VendorValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.get("", response_model=VendorListResponse)
async def list_vendors(
    store: VendorStore = Depends(get_vendor_store),
) -> VendorListResponse:
    vendors = await store.list_vendors()
    return VendorListResponse(
        items=[_with_logical_payments(vendor) for vendor in vendors],
        total_count=len(vendors),
    )


@router.post("", response_model=VendorRecord, status_code=status.HTTP_201_CREATED)
async def create_vendor(
    payload: VendorCreateRequest,
    store: VendorStore = Depends(get_vendor_store),
) -> VendorRecord:
    try:
        vendor = await store.create_vendor(payload)
    except VendorValidationError as exc:
        raise _invalid(exc) from exc
    return _with_logical_payments(vendor)


@router.get("/overview", response_model=VendorOverviewResponse)
async def vendor_overview(
    wedding: Wedding = Depends(get_current_wedding),
    store: VendorStore = Depends(get_vendor_store),
) -> VendorOverviewResponse:
    vendors = await store.list_vendors()
    return VendorOverviewResponse(
        stats=vendor_stats(vendors, wedding.converted_currency),
        reminders=payment_reminders(
            vendors,
            today=today_for_timezone(settings.llm_timezone),
            window_days=settings.payment_reminder_window_days,
        ),
        vendors_needing_details=vendors_needing_details(vendors),
    )


@router.get("/{vendor_id}", response_model=VendorRecord)
async def get_vendor(
    vendor_id: str,
    store: VendorStore = Depends(get_vendor_store),
) -> VendorRecord:
    try:
        vendor = await store.get_vendor(vendor_id)
    except VendorNotFoundError as exc:
        raise _not_found(exc) from exc
    return _with_logical_payments(vendor)


@router.patch("/{vendor_id}", response_model=VendorRecord)
async def update_vendor(
    vendor_id: str,
    payload: VendorUpdateRequest,
    store: VendorStore = Depends(get_vendor_store),
) -> VendorRecord:
    try:
        vendor = await store.update_vendor(
            vendor_id,
            payload,
            merge_payments=payload.merge_payments,
        )
    except VendorNotFoundError as exc:
        raise _not_found(exc) from exc
    except VendorValidationError as exc:
        raise _invalid(exc) from exc
    return _with_logical_payments(vendor)


@router.delete("/{vendor_id}", response_model=VendorDeleteResponse)
async def delete_vendor(
    vendor_id: str,
    store: VendorStore = Depends(get_vendor_store),
) -> VendorDeleteResponse:
    try:
        await store.delete_vendor(vendor_id)
    except VendorNotFoundError as exc:
        raise _not_found(exc) from exc
    return VendorDeleteResponse(vendor_id=vendor_id, message="Vendor deleted.")
