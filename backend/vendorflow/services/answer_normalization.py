import re

BOOLEAN_FIELDS = frozenset({"contract_signed", "contract_required", "paid", "refundable", "skip_completion_prompt"})
NAME_FIELDS = frozenset({"vendor_name", "contact_name"})
DATE_FIELDS = frozenset({"due_date", "paid_date", "contract_signed_date"})

_TRUE_WORDS = frozenset({"yes", "y", "true", "1", "paid", "signed"})
_FALSE_WORDS = frozenset({"no", "n", "false", "0", "unpaid", "unsigned"})
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_NON_DIGIT_RE = re.compile(r"\D")


def parse_number(value: object) -> float:
    """Leading number in ``value``; answers that hold no number become 0.0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value or "").replace(",", "").strip()
    match = _NUMBER_RE.search(text)
    if match is None:
        return 0.0
    return float(match.group(0))


def normalize_email(value: object) -> str:
    return str(value or "").strip().lower()


def title_case_name(value: object) -> str:
    words = str(value or "").strip().split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def format_date_input(value: object) -> str:
    """Reformat typed digits as ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``."""
    digits = _NON_DIGIT_RE.sub("", str(value or ""))[:8]
    if len(digits) <= 4:
        return digits
    if len(digits) <= 6:
        return f"{digits[:4]}-{digits[4:]}"
    return f"{digits[:4]}-{digits[4:6]}-{digits[6:]}"


def parse_boolean(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def normalize_answer(field: str, field_type: str, value: object) -> object:
    """Coerce a raw clarification answer into the value stored on the operation."""
    if field in BOOLEAN_FIELDS:
        return parse_boolean(value)
    if field_type == "number":
        return parse_number(value)
    if field_type == "email" or field == "email":
        return normalize_email(value)
    if field in NAME_FIELDS:
        return title_case_name(value)
    if field_type == "date" or field in DATE_FIELDS:
        return format_date_input(value)
    return str(value if value is not None else "").strip()
