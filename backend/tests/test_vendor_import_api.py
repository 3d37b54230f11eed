import httpx
import pytest
from httpx import AsyncClient

from vendorflow.api.deps import get_vendor_parser
from vendorflow.main import app
from vendorflow.schemas.vendor import PaymentPatch, VendorPatch
from vendorflow.services.llm.base import VendorParserProvider
from vendorflow.services.llm.types import Clarification, ParseContext, ParsedOperation, ParseResult


async def register_and_get_token(client: AsyncClient, email: str = "planner@example.com") -> str:
    payload = {
        "email": email,
        "password": "testpass123",
        "full_name": "Paula Planner",
        "wedding_name": "Ana & Luis",
    }
    response = await client.post("/auth/register", json=payload)
    assert response.status_code == 201
    return response.json()["token"]["access_token"]


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class PayFinalParser(VendorParserProvider):
    """Marks the venue's final payment as paid and adds a new installment."""

    def __init__(self) -> None:
        self.calls = 0

    async def parse_vendors(self, text: str, context: ParseContext) -> ParseResult:
        self.calls += 1
        venue = next(vendor for vendor in context.roster if vendor.vendor_type == "Venue")
        final = next(payment for payment in venue.payments if payment.description == "Final payment")
        return ParseResult(
            operations=[
                ParsedOperation(
                    action="update",
                    vendor_id=venue.id,
                    matched_vendor_name=venue.vendor_name,
                    vendor_data=VendorPatch(
                        payments=[
                            PaymentPatch(id=final.id, paid=True, paid_date="2025-03-01"),
                            PaymentPatch(id="new-1", description="2nd payment", amount=1000.0),
                        ]
                    ),
                    confidence=0.9,
                ),
                ParsedOperation(
                    action="create",
                    vendor_data=VendorPatch(vendor_type="Florist", vendor_name="luna flores"),
                    confidence=0.8,
                ),
            ],
            clarifications_needed=[
                Clarification(
                    question="What is the florist's email?",
                    field="email",
                    field_type="email",
                    operation_index=1,
                ),
            ],
        )


class FailingParser(VendorParserProvider):
    async def parse_vendors(self, text: str, context: ParseContext) -> ParseResult:
        request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
        raise httpx.HTTPStatusError(
            "upstream error",
            request=request,
            response=httpx.Response(500, request=request),
        )


async def _create_venue(client: AsyncClient, token: str) -> dict:
    response = await client.post(
        "/vendors",
        json={
            "vendor_type": "Venue",
            "vendor_name": "Finca Olivar",
            "payments": [
                {"description": "Deposit", "amount": 2000, "payment_type": "bank_transfer", "paid": True},
                {"description": "Final payment", "amount": 6000, "payment_type": "bank_transfer"},
            ],
        },
        headers=auth(token),
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_text_import_clarify_and_execute(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    venue = await _create_venue(client, token)
    parser = PayFinalParser()
    app.dependency_overrides[get_vendor_parser] = lambda: parser

    start = await client.post(
        "/vendors/import/text",
        json={"text": "Paid the venue balance and booked Luna Flores"},
        headers=auth(token),
    )

    assert start.status_code == 201
    session = start.json()
    assert session["status"] == "draft"
    assert session["source"] == "text"
    assert [op["action"] for op in session["operations"]] == ["update", "create"]
    fields = {item["field"]: item for item in session["clarifications"]}
    assert set(fields) == {"email", "payment_type"}
    assert fields["payment_type"]["required"] is True
    assert fields["payment_type"]["operation_index"] == 0
    assert session["blocking_issues"]

    blocked = await client.post(f"/vendors/import/{session['id']}/execute", json={}, headers=auth(token))
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["issues"]

    answered = await client.post(
        f"/vendors/import/{session['id']}/clarifications/{fields['payment_type']['id']}/answer",
        json={"value": "Cash"},
        headers=auth(token),
    )
    assert answered.status_code == 200
    skipped = await client.post(
        f"/vendors/import/{session['id']}/clarifications/{fields['email']['id']}/skip",
        headers=auth(token),
    )
    assert skipped.status_code == 200
    assert skipped.json()["blocking_issues"] == []

    executed = await client.post(f"/vendors/import/{session['id']}/execute", json={}, headers=auth(token))

    assert executed.status_code == 200
    body = executed.json()
    assert body["status"] == "committed"
    report = body["last_report"]
    assert report["succeeded"] is True
    assert report["first_affected_vendor_id"] == venue["id"]

    updated = (await client.get(f"/vendors/{venue['id']}", headers=auth(token))).json()
    assert len(updated["payments"]) == 3
    by_description = {payment["description"]: payment for payment in updated["payments"]}
    assert by_description["Deposit"] == next(p for p in venue["payments"] if p["description"] == "Deposit")
    assert by_description["Final payment"]["paid"] is True
    assert by_description["Final payment"]["paid_date"] == "2025-03-01"
    assert by_description["2nd payment"]["payment_type"] == "cash"
    assert by_description["2nd payment"]["amount_currency"] == "EUR"
    assert updated["vendor_cost"] == 9000.0

    vendors = (await client.get("/vendors", headers=auth(token))).json()
    assert [item["vendor_name"] for item in vendors["items"]] == ["Finca Olivar", "luna flores"]

    gone = await client.get(f"/vendors/import/{session['id']}", headers=auth(token))
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_required_clarification_cannot_be_skipped(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    await _create_venue(client, token)
    app.dependency_overrides[get_vendor_parser] = lambda: PayFinalParser()

    session = (
        await client.post("/vendors/import/text", json={"text": "venue update"}, headers=auth(token))
    ).json()
    required = next(item for item in session["clarifications"] if item["required"])

    response = await client.post(
        f"/vendors/import/{session['id']}/clarifications/{required['id']}/skip",
        headers=auth(token),
    )

    assert response.status_code == 409
    current = (await client.get(f"/vendors/import/{session['id']}", headers=auth(token))).json()
    assert any(item["id"] == required["id"] for item in current["clarifications"])


@pytest.mark.asyncio
async def test_operation_can_be_removed_and_edited(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    await _create_venue(client, token)
    app.dependency_overrides[get_vendor_parser] = lambda: PayFinalParser()

    session = (
        await client.post("/vendors/import/text", json={"text": "venue update"}, headers=auth(token))
    ).json()

    removed = await client.delete(f"/vendors/import/{session['id']}/operations/0", headers=auth(token))
    assert removed.status_code == 200
    body = removed.json()
    assert len(body["operations"]) == 1
    assert [item["field"] for item in body["clarifications"]] == ["email"]
    assert body["clarifications"][0]["operation_index"] == 0

    edited = await client.patch(
        f"/vendors/import/{session['id']}/operations/0",
        json={"email": "hola@lunaflores.es"},
        headers=auth(token),
    )
    assert edited.status_code == 200
    assert edited.json()["operations"][0]["vendor_data"]["email"] == "hola@lunaflores.es"
    assert edited.json()["clarifications"] == []

    missing = await client.delete(f"/vendors/import/{session['id']}/operations/5", headers=auth(token))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cancel_discards_session(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    await _create_venue(client, token)
    app.dependency_overrides[get_vendor_parser] = lambda: PayFinalParser()

    session = (
        await client.post("/vendors/import/text", json={"text": "venue update"}, headers=auth(token))
    ).json()

    cancelled = await client.delete(f"/vendors/import/{session['id']}", headers=auth(token))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert (await client.get(f"/vendors/import/{session['id']}", headers=auth(token))).status_code == 404

    vendors = (await client.get("/vendors", headers=auth(token))).json()
    assert vendors["total_count"] == 1


@pytest.mark.asyncio
async def test_session_is_private_to_wedding(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    other = await register_and_get_token(client, "other@example.com")
    await _create_venue(client, token)
    app.dependency_overrides[get_vendor_parser] = lambda: PayFinalParser()

    session = (
        await client.post("/vendors/import/text", json={"text": "venue update"}, headers=auth(token))
    ).json()

    response = await client.get(f"/vendors/import/{session['id']}", headers=auth(other))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_oversized_pdf_is_rejected_without_parsing(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    await _create_venue(client, token)
    parser = PayFinalParser()
    app.dependency_overrides[get_vendor_parser] = lambda: parser
    oversized = b"%PDF-1.7\n" + b"0" * (25 * 1024 * 1024)

    response = await client.post(
        "/vendors/import/pdf",
        files={"file": ("contract.pdf", oversized, "application/pdf")},
        headers=auth(token),
    )

    assert response.status_code == 413
    assert response.json()["detail"]["error_code"] == "too_large"
    assert parser.calls == 0


@pytest.mark.asyncio
async def test_non_pdf_with_pdf_name_is_rejected(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    parser = PayFinalParser()
    app.dependency_overrides[get_vendor_parser] = lambda: parser

    response = await client.post(
        "/vendors/import/pdf",
        files={"file": ("contract.pdf", b"just some text", "application/pdf")},
        headers=auth(token),
    )

    assert response.status_code == 415
    assert parser.calls == 0


@pytest.mark.asyncio
async def test_upstream_failure_returns_bad_gateway(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    app.dependency_overrides[get_vendor_parser] = lambda: FailingParser()

    response = await client.post("/vendors/import/text", json={"text": "florist deposit"}, headers=auth(token))

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_blank_text_is_rejected(client: AsyncClient) -> None:
    token = await register_and_get_token(client)
    app.dependency_overrides[get_vendor_parser] = lambda: PayFinalParser()

    response = await client.post("/vendors/import/text", json={"text": "   "}, headers=auth(token))

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_keyword_parser_imports_new_vendor(client: AsyncClient) -> None:
    token = await register_and_get_token(client)

    start = await client.post(
        "/vendors/import/text",
        json={"text": "We booked the florist called Luna Flores and paid a 300 EUR deposit in cash."},
        headers=auth(token),
    )

    assert start.status_code == 201
    session = start.json()
    assert session["clarifications"] == []
    operation = session["operations"][0]
    assert operation["action"] == "create"
    assert operation["vendor_data"]["vendor_name"] == "Luna Flores"

    executed = await client.post(f"/vendors/import/{session['id']}/execute", headers=auth(token))

    assert executed.status_code == 200
    vendor = executed.json()["last_report"]["results"][0]
    assert vendor["vendor_type"] == "Florist"
    assert vendor["vendor_cost"] == 300.0
    assert vendor["payments"][0]["paid"] is True
