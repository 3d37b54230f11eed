import pytest

from vendorflow.services.answer_normalization import (
    format_date_input,
    normalize_answer,
    parse_boolean,
    parse_number,
    title_case_name,
)


def test_title_case_is_idempotent() -> None:
    once = title_case_name("el cortijo de los caballos")
    assert once == "El Cortijo De Los Caballos"
    assert title_case_name(once) == once


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,500", 1500.0),
        ("about 250.50 EUR", 250.5),
        ("nothing", 0.0),
        (42, 42.0),
    ],
)
def test_parse_number(raw: object, expected: float) -> None:
    assert parse_number(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2025", "2025"),
        ("202506", "2025-06"),
        ("20250614", "2025-06-14"),
        ("2025-06-14", "2025-06-14"),
    ],
)
def test_format_date_input(raw: str, expected: str) -> None:
    assert format_date_input(raw) == expected


def test_parse_boolean_words() -> None:
    assert parse_boolean("Yes") is True
    assert parse_boolean("signed") is True
    assert parse_boolean("no") is False
    assert parse_boolean("maybe") is None


def test_normalize_answer_by_field() -> None:
    assert normalize_answer("email", "email", "  Info@Studio.COM ") == "info@studio.com"
    assert normalize_answer("vendor_name", "text", "luna flores") == "Luna Flores"
    assert normalize_answer("contract_signed", "choice", "yes") is True
    assert normalize_answer("due_date", "text", "20250901") == "2025-09-01"
    assert normalize_answer("notes", "text", "  call after 5pm ") == "call after 5pm"
