from typing import Literal

from pydantic import BaseModel, Field

from vendorflow.schemas.vendor import VendorPatch, VendorRecord
from vendorflow.services.llm.types import Clarification, ParsedOperation


class TextImportRequest(BaseModel):
    text: str = Field(min_length=1, max_length=100000)


class ClarificationAnswerRequest(BaseModel):
    value: str | float | bool


class OperationEditRequest(VendorPatch):
    pass


class ExecuteRequest(BaseModel):
    proceed_with_optional: bool = False


class BlockingIssueResponse(BaseModel):
    kind: str
    message: str
    operation_index: int | None = None
    clarification_id: str | None = None


class OperationFailureResponse(BaseModel):
    index: int
    action: str
    label: str
    message: str


class ExecutionReportResponse(BaseModel):
    succeeded: bool
    results: list[VendorRecord]
    failure: OperationFailureResponse | None = None
    remaining_count: int
    first_affected_vendor_id: str | None = None


class ImportSessionResponse(BaseModel):
    id: str
    status: Literal["draft", "executing", "committed", "cancelled"]
    source: str
    operations: list[ParsedOperation]
    clarifications: list[Clarification]
    blocking_issues: list[BlockingIssueResponse]
    warnings: list[str]
    notes: list[str]
    processing_time_ms: int | None = None
    last_report: ExecutionReportResponse | None = None
