from datetime import date

import httpx
import pytest

from vendorflow.schemas.vendor import PaymentPatch, VendorPatch
from vendorflow.services.import_session import ImportSession
from vendorflow.services.llm.base import VendorParserProvider
from vendorflow.services.llm.types import (
    Clarification,
    ParseContext,
    ParsedOperation,
    ParseResult,
    RosterPayment,
    RosterVendor,
)
from vendorflow.services.vendor_extraction import (
    CREATE_NEW_CHOICE,
    SKIP_CHOICE,
    EmptyInputError,
    ExtractionError,
    ExtractionInput,
    extract_vendor_operations,
    reconcile_parse_result,
)

VENUE = RosterVendor(
    id="venue-1",
    vendor_type="Venue",
    vendor_name="Finca Olivar",
    vendor_currency="EUR",
    payments=[RosterPayment(id="venue-deposit", description="Deposit", amount=2000.0, paid=True)],
)
PHOTOGRAPHER = RosterVendor(id="photo-1", vendor_type="Photographer", vendor_name="Luz Studio", vendor_currency="USD")
CATERER_A = RosterVendor(id="cater-1", vendor_type="Caterer", vendor_name="Jane's Catering")
CATERER_B = RosterVendor(id="cater-2", vendor_type="Caterer", vendor_name="Sabores del Sur")


def _context(roster: list[RosterVendor] | None = None) -> ParseContext:
    return ParseContext(
        reference_date=date(2025, 3, 1),
        timezone="UTC",
        default_currency="EUR",
        converted_currency="USD",
        wedding_date=date(2025, 9, 20),
        roster=roster if roster is not None else [VENUE, PHOTOGRAPHER, CATERER_A, CATERER_B],
    )


def _result(*operations: ParsedOperation, clarifications: list[Clarification] | None = None) -> ParseResult:
    return ParseResult(operations=list(operations), clarifications_needed=clarifications or [])


def test_update_with_unknown_id_becomes_create() -> None:
    parsed = _result(
        ParsedOperation(
            action="update",
            vendor_id="does-not-exist",
            vendor_data=VendorPatch(vendor_type="Florist", vendor_name="Luna Flores"),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].action == "create"
    assert operations[0].vendor_id is None
    assert any("not in your vendor list" in warning for warning in operations[0].warnings)


def test_update_with_wrong_id_is_retargeted_by_name() -> None:
    parsed = _result(
        ParsedOperation(
            action="update",
            vendor_id="photo-99",
            matched_vendor_name="Luz Studio",
            vendor_data=VendorPatch(phone="+34 600 000 000"),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].action == "update"
    assert operations[0].vendor_id == "photo-1"


def test_create_matching_existing_name_becomes_update() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(vendor_type="Photographer", vendor_name="Luz Photography"),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].action == "update"
    assert operations[0].vendor_id == "photo-1"
    assert operations[0].matched_vendor_name == "Luz Studio"


def test_name_match_requires_compatible_type() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(vendor_type="Florist", vendor_name="Olivar Flowers"),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].action == "create"


def test_type_only_create_with_single_vendor_of_type_updates_it() -> None:
    parsed = _result(ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="venue", notes="Tour booked")))

    operations, clarifications = reconcile_parse_result(parsed, _context())

    assert operations[0].action == "update"
    assert operations[0].vendor_id == "venue-1"
    assert clarifications == []


def test_type_only_create_with_several_vendors_asks_which_one() -> None:
    parsed = _result(ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="Caterer")))

    operations, clarifications = reconcile_parse_result(parsed, _context())

    assert operations[0].action == "create"
    choice = clarifications[0]
    assert choice.field == "action_choice"
    assert choice.required is True
    assert choice.choices == [
        CREATE_NEW_CHOICE,
        "Update Jane's Catering",
        "Update Sabores del Sur",
        SKIP_CHOICE,
    ]
    assert choice.choice_vendor_ids == {
        "Update Jane's Catering": "cater-1",
        "Update Sabores del Sur": "cater-2",
    }


def test_payments_are_sorted_and_get_targeted_type_questions() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Florist",
                vendor_name="Luna Flores",
                payments=[
                    PaymentPatch(id="new-1", description="Final payment", amount=700.0, amount_currency="EUR"),
                    PaymentPatch(
                        id="new-2",
                        description="Deposit",
                        amount=300.0,
                        amount_currency="EUR",
                        payment_type="cash",
                    ),
                ],
            ),
        ),
        clarifications=[
            Clarification(question="Payment method?", field="payment_type", operation_index=0),
        ],
    )

    operations, clarifications = reconcile_parse_result(parsed, _context())

    payments = operations[0].vendor_data.payments
    assert [payment.description for payment in payments] == ["Deposit", "Final payment"]
    assert all(not payment.id.startswith("new-") for payment in payments)
    assert len(clarifications) == 1
    assert clarifications[0].field == "payment_type"
    assert clarifications[0].payment_index == 1
    assert clarifications[0].choices == ["Cash", "Bank Transfer"]


def test_existing_payments_are_not_questioned() -> None:
    parsed = _result(
        ParsedOperation(
            action="update",
            vendor_id="venue-1",
            vendor_data=VendorPatch(payments=[PaymentPatch(id="venue-deposit", paid=True)]),
        )
    )

    _, clarifications = reconcile_parse_result(parsed, _context())

    assert clarifications == []


def test_missing_description_and_amount_are_asked() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Cake",
                vendor_name="Dulce",
                payments=[PaymentPatch(payment_type="cash")],
            ),
        )
    )

    _, clarifications = reconcile_parse_result(parsed, _context())

    assert [item.field for item in clarifications] == ["payment_0_description", "payment_0_amount"]


def test_currency_is_inferred_from_payments() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Cake",
                vendor_name="Dulce",
                payments=[PaymentPatch(description="Deposit", amount=100.0, amount_currency="gbp", payment_type="cash")],
            ),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].vendor_data.vendor_currency == "GBP"


def test_missing_currency_defaults_with_warning() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Cake",
                vendor_name="Dulce",
                payments=[PaymentPatch(description="Deposit", amount=100.0, payment_type="cash")],
            ),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    data = operations[0].vendor_data
    assert data.vendor_currency == "EUR"
    assert data.payments[0].amount_currency == "EUR"
    assert any("Assumed EUR" in warning for warning in operations[0].warnings)


def test_update_uses_target_vendor_currency() -> None:
    parsed = _result(
        ParsedOperation(
            action="update",
            vendor_id="photo-1",
            vendor_data=VendorPatch(payments=[PaymentPatch(description="Final payment", amount=900.0, payment_type="cash")]),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].vendor_data.payments[0].amount_currency == "USD"
    assert operations[0].warnings == []


def test_converted_amount_without_currency_is_dropped() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Cake",
                vendor_name="Dulce",
                payments=[
                    PaymentPatch(
                        description="Deposit",
                        amount=100.0,
                        amount_currency="EUR",
                        amount_converted=120.0,
                        payment_type="cash",
                    )
                ],
            ),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].vendor_data.payments[0].amount_converted is None


def test_invalid_dates_are_dropped() -> None:
    parsed = _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Cake",
                vendor_name="Dulce",
                contract_signed_date="next week",
                payments=[
                    PaymentPatch(
                        description="Deposit",
                        amount=100.0,
                        amount_currency="EUR",
                        payment_type="cash",
                        due_date="2025-13-45",
                        paid_date="2025-02-01",
                    )
                ],
            ),
        )
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    data = operations[0].vendor_data
    assert data.contract_signed_date is None
    assert data.payments[0].due_date is None
    # An unpaid payment never carries a paid date.
    assert data.payments[0].paid_date is None


def test_unknown_vendor_type_falls_back_to_other() -> None:
    parsed = _result(
        ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="Fireworks", vendor_name="Boom")),
    )

    operations, _ = reconcile_parse_result(parsed, _context())

    assert operations[0].vendor_data.vendor_type == "Other"
    assert operations[0].warnings


def test_create_without_type_asks_for_it() -> None:
    parsed = _result(ParsedOperation(action="create", vendor_data=VendorPatch(vendor_name="Mystery Co")))

    _, clarifications = reconcile_parse_result(parsed, _context(roster=[]))

    assert clarifications[0].field == "vendor_type"
    assert clarifications[0].required is True
    assert "Venue" in clarifications[0].choices


def test_choice_without_choices_becomes_text() -> None:
    parsed = _result(
        ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="Cake", vendor_name="Dulce")),
        clarifications=[
            Clarification(question="Contact?", field="contact_name", field_type="choice", operation_index=0),
            Clarification(question="Stray?", field="notes", operation_index=7),
        ],
    )

    _, clarifications = reconcile_parse_result(parsed, _context())

    assert clarifications[0].field_type == "text"
    assert clarifications[1].operation_index is None


def test_empty_reply_asks_a_global_question() -> None:
    operations, clarifications = reconcile_parse_result(ParseResult(), _context())

    assert operations == []
    assert len(clarifications) == 1
    assert clarifications[0].operation_index is None


class StaticParser(VendorParserProvider):
    def __init__(self, result: ParseResult | None = None, error: Exception | None = None) -> None:
        self.result = result or ParseResult()
        self.error = error
        self.texts: list[str] = []

    async def parse_vendors(self, text: str, context: ParseContext) -> ParseResult:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.mark.asyncio
async def test_extract_rejects_blank_text() -> None:
    parser = StaticParser()
    with pytest.raises(EmptyInputError):
        await extract_vendor_operations(
            ExtractionInput(text="   "),
            parser=parser,
            context=_context(),
            max_pdf_bytes=1024,
        )
    assert parser.texts == []


@pytest.mark.asyncio
async def test_extract_wraps_transport_errors() -> None:
    parser = StaticParser(error=httpx.ConnectError("boom"))
    with pytest.raises(ExtractionError):
        await extract_vendor_operations(
            ExtractionInput(text="Paid the florist"),
            parser=parser,
            context=_context(),
            max_pdf_bytes=1024,
        )


@pytest.mark.asyncio
async def test_extract_truncates_long_input() -> None:
    parser = StaticParser(
        ParseResult(
            operations=[
                ParsedOperation(action="create", vendor_data=VendorPatch(vendor_type="Cake", vendor_name="Dulce"))
            ]
        )
    )

    result = await extract_vendor_operations(
        ExtractionInput(text="x" * 50),
        parser=parser,
        context=_context(),
        max_pdf_bytes=1024,
        max_input_chars=20,
    )

    assert parser.texts == ["x" * 20]
    assert result.source == "text"
    assert result.warnings
    assert len(result.operations) == 1


def _stray_amount_result() -> ParseResult:
    return _result(
        ParsedOperation(
            action="create",
            vendor_data=VendorPatch(
                vendor_type="Florist",
                vendor_name="Luna Flores",
                payments=[
                    PaymentPatch(id="new-1", description="Final payment", amount=600.0, payment_type="cash"),
                    PaymentPatch(id="new-2", amount=900.0, payment_type="cash"),
                ],
            ),
        ),
        clarifications=[
            Clarification(
                question="Is the 900 the total cost or the first deposit?",
                field="payment_1_description",
                field_type="choice",
                operation_index=0,
                choices=["Total cost", "1st deposit"],
            )
        ],
    )


def test_description_choice_follows_its_payment_through_sorting() -> None:
    operations, clarifications = reconcile_parse_result(_stray_amount_result(), _context())

    payments = operations[0].vendor_data.payments
    assert [payment.amount for payment in payments] == [900.0, 600.0]
    assert len(clarifications) == 1
    choice = clarifications[0]
    assert choice.field == "payment_0_description"
    assert choice.field_type == "choice"
    assert choice.payment_index == 0
    assert choice.choices == ["Total cost", "1st deposit"]
    assert choice.required is True


@pytest.mark.parametrize(
    ("answer", "description"),
    [("Total cost", "Full payment"), ("1st deposit", "1st deposit")],
)
def test_description_choice_answer_labels_the_stray_payment(answer: str, description: str) -> None:
    operations, clarifications = reconcile_parse_result(_stray_amount_result(), _context())
    session = ImportSession(
        wedding_id="w1",
        operations=operations,
        clarifications=clarifications,
        source="text",
    )

    session.answer("c1", answer)

    by_amount = {payment.amount: payment.description for payment in session.operations[0].vendor_data.payments}
    assert by_amount == {900.0: description, 600.0: "Final payment"}
    assert session.blocking_issues() == []


def test_description_choice_for_missing_payment_is_dropped() -> None:
    parsed = _stray_amount_result()
    parsed.clarifications_needed[0].field = "payment_5_description"

    operations, clarifications = reconcile_parse_result(parsed, _context())

    assert [item.field for item in clarifications] == ["payment_0_description"]
    assert clarifications[0].field_type == "text"
    assert any("payment 6" in warning for warning in operations[0].warnings)
