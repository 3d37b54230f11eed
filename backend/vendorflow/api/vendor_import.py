import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from vendorflow.api.deps import get_current_wedding, get_parse_context, get_vendor_parser, get_vendor_store
from vendorflow.core.config import get_settings
from vendorflow.models.wedding import Wedding
from vendorflow.schemas.vendor_import import (
    BlockingIssueResponse,
    ClarificationAnswerRequest,
    ExecuteRequest,
    ExecutionReportResponse,
    ImportSessionResponse,
    OperationEditRequest,
    OperationFailureResponse,
    TextImportRequest,
)
from vendorflow.services.import_session import (
    ClarificationNotFoundError,
    ClarificationRequiredError,
    ExecutionBlockedError,
    ImportSession,
    ImportSessionClosedError,
    ImportSessionNotFoundError,
    ImportSessionRegistry,
    ImportSessionStatus,
    OperationNotFoundError,
    ParseInFlightError,
    get_import_registry,
)
from vendorflow.services.llm.base import VendorParserProvider
from vendorflow.services.llm.provider_factory import ProviderNotConfiguredError
from vendorflow.services.llm.types import ParseContext
from vendorflow.services.operation_executor import ExecutionReport
from vendorflow.services.pdf_text import PDFValidationError
from vendorflow.services.vendor_extraction import (
    EmptyInputError,
    ExtractionError,
    ExtractionInput,
    extract_vendor_operations,
)
from vendorflow.services.vendor_store import VendorStore

router = APIRouter(prefix="/vendors/import", tags=["vendor-import"])
settings = get_settings()
logger = logging.getLogger(__name__)

PDF_ERROR_STATUS = {
    "too_large": status.HTTP_413_CONTENT_TOO_LARGE,
    "not_pdf": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
}


def _to_report_response(report: ExecutionReport) -> ExecutionReportResponse:
    failure = report.failure
    return ExecutionReportResponse(
        succeeded=report.succeeded,
        results=report.results,
        failure=(
            OperationFailureResponse(
                index=failure.index,
                action=failure.action,
                label=failure.label,
                message=failure.message,
            )
            if failure
            else None
        ),
        remaining_count=len(report.remaining),
        first_affected_vendor_id=report.first_affected_vendor_id,
    )


def _to_session_response(
    session: ImportSession,
    processing_time_ms: int | None = None,
) -> ImportSessionResponse:
    return ImportSessionResponse(
        id=session.id,
        status=session.status.value,
        source=session.source,
        operations=session.operations,
        clarifications=session.clarifications,
        blocking_issues=[
            BlockingIssueResponse(
                kind=issue.kind,
                message=issue.message,
                operation_index=issue.operation_index,
                clarification_id=issue.clarification_id,
            )
            for issue in session.blocking_issues()
        ]
        if session.status.value == "draft"
        else [],
        warnings=session.warnings,
        notes=session.notes,
        processing_time_ms=processing_time_ms,
        last_report=_to_report_response(session.last_report) if session.last_report else None,
    )


async def _start_import(
    source: ExtractionInput,
    *,
    wedding: Wedding,
    parser: VendorParserProvider,
    context: ParseContext,
    registry: ImportSessionRegistry,
) -> ImportSessionResponse:
    try:
        async with registry.parse_slot(str(wedding.id)):
            result = await extract_vendor_operations(
                source,
                parser=parser,
                context=context,
                max_pdf_bytes=settings.pdf_max_upload_bytes,
                max_input_chars=settings.llm_max_input_chars,
            )
    except ParseInFlightError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PDFValidationError as exc:
        raise HTTPException(
            status_code=PDF_ERROR_STATUS.get(exc.code, status.HTTP_422_UNPROCESSABLE_ENTITY),
            detail={"message": str(exc), "error_code": exc.code},
        ) from exc
    except EmptyInputError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    session = registry.add(
        ImportSession(
            wedding_id=str(wedding.id),
            operations=result.operations,
            clarifications=result.clarifications,
            source=result.source,
            existing_payment_ids={
                vendor.id: {payment.id for payment in vendor.payments} for vendor in context.roster
            },
            warnings=result.warnings,
        )
    )
    logger.info("Opened import session %s for wedding %s", session.id, wedding.id)
    return _to_session_response(session, result.processing_time_ms)


def _load_session(
    registry: ImportSessionRegistry,
    session_id: str,
    wedding: Wedding,
) -> ImportSession:
    try:
        return registry.get(session_id, str(wedding.id))
    except ImportSessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/text", response_model=ImportSessionResponse, status_code=status.HTTP_201_CREATED)
async def import_from_text(
    payload: TextImportRequest,
    wedding: Wedding = Depends(get_current_wedding),
    parser: VendorParserProvider = Depends(get_vendor_parser),
    context: ParseContext = Depends(get_parse_context),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    return await _start_import(
        ExtractionInput(text=payload.text),
        wedding=wedding,
        parser=parser,
        context=context,
        registry=registry,
    )


@router.post("/pdf", response_model=ImportSessionResponse, status_code=status.HTTP_201_CREATED)
async def import_from_pdf(
    file: UploadFile = File(...),
    wedding: Wedding = Depends(get_current_wedding),
    parser: VendorParserProvider = Depends(get_vendor_parser),
    context: ParseContext = Depends(get_parse_context),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    pdf_bytes = await file.read()
    return await _start_import(
        ExtractionInput(
            pdf_bytes=pdf_bytes,
            filename=file.filename,
            content_type=file.content_type,
        ),
        wedding=wedding,
        parser=parser,
        context=context,
        registry=registry,
    )


@router.get("/{session_id}", response_model=ImportSessionResponse)
async def get_import_session(
    session_id: str,
    wedding: Wedding = Depends(get_current_wedding),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    return _to_session_response(_load_session(registry, session_id, wedding))


@router.delete("/{session_id}", response_model=ImportSessionResponse)
async def cancel_import_session(
    session_id: str,
    wedding: Wedding = Depends(get_current_wedding),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    session = _load_session(registry, session_id, wedding)
    try:
        session.cancel()
    except ImportSessionClosedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    registry.discard(session.id)
    return _to_session_response(session)


@router.patch("/{session_id}/operations/{index}", response_model=ImportSessionResponse)
async def edit_import_operation(
    session_id: str,
    index: int,
    payload: OperationEditRequest,
    wedding: Wedding = Depends(get_current_wedding),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    session = _load_session(registry, session_id, wedding)
    try:
        session.edit_operation(index, payload)
    except OperationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ImportSessionClosedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_session_response(session)


@router.delete("/{session_id}/operations/{index}", response_model=ImportSessionResponse)
async def remove_import_operation(
    session_id: str,
    index: int,
    wedding: Wedding = Depends(get_current_wedding),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    session = _load_session(registry, session_id, wedding)
    try:
        session.remove_operation(index)
    except OperationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ImportSessionClosedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_session_response(session)


@router.post(
    "/{session_id}/clarifications/{clarification_id}/answer",
    response_model=ImportSessionResponse,
)
async def answer_clarification(
    session_id: str,
    clarification_id: str,
    payload: ClarificationAnswerRequest,
    wedding: Wedding = Depends(get_current_wedding),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    session = _load_session(registry, session_id, wedding)
    try:
        session.answer(clarification_id, payload.value)
    except (ClarificationNotFoundError, OperationNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ImportSessionClosedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_session_response(session)


@router.post(
    "/{session_id}/clarifications/{clarification_id}/skip",
    response_model=ImportSessionResponse,
)
async def skip_clarification(
    session_id: str,
    clarification_id: str,
    wedding: Wedding = Depends(get_current_wedding),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    session = _load_session(registry, session_id, wedding)
    try:
        session.skip(clarification_id)
    except ClarificationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ClarificationRequiredError, ImportSessionClosedError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_session_response(session)


@router.post("/{session_id}/execute", response_model=ImportSessionResponse)
async def execute_import_session(
    session_id: str,
    payload: ExecuteRequest | None = None,
    wedding: Wedding = Depends(get_current_wedding),
    store: VendorStore = Depends(get_vendor_store),
    registry: ImportSessionRegistry = Depends(get_import_registry),
) -> ImportSessionResponse:
    session = _load_session(registry, session_id, wedding)
    proceed = payload.proceed_with_optional if payload else False
    try:
        await session.execute(store, proceed_with_optional=proceed)
    except ExecutionBlockedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Import is blocked until these issues are resolved.",
                "issues": [issue.message for issue in exc.issues],
            },
        ) from exc
    except ImportSessionClosedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if session.status == ImportSessionStatus.COMMITTED:
        registry.discard(session.id)
    return _to_session_response(session)
