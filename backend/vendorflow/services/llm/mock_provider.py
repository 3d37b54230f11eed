import re

from vendorflow.schemas.vendor import PaymentPatch, VendorPatch
from vendorflow.services.llm.base import VendorParserProvider
from vendorflow.services.llm.types import ParseContext, ParsedOperation, ParseResult, RosterVendor
from vendorflow.services.vendor_types import distinctive_name_tokens

AMOUNT_PATTERN = re.compile(
    r"(?P<prefix>€|\$|£|EUR|USD|GBP|CAD)?\s*(?P<amount>\d[\d,]*(?:\.\d{1,2})?)\s*(?P<suffix>€|\$|£|EUR|USD|GBP|CAD|euros?|dollars?|pounds?)?",
    re.I,
)
DATE_PATTERN = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
PHONE_PATTERN = re.compile(r"\+?\d[\d\s().-]{7,}\d")
NAME_PATTERN = re.compile(r"\b(?:called|named)\s+([A-Z][\w&']*(?:\s+[A-Z][\w&']*)*)")

TYPE_KEYWORDS: dict[str, str] = {
    "venue": "Venue",
    "photographer": "Photographer",
    "videographer": "Videographer",
    "florist": "Florist",
    "flowers": "Florist",
    "caterer": "Caterer",
    "catering": "Caterer",
    "cake": "Cake",
    "dj": "Entertainment - DJ",
    "band": "Entertainment - Live Music",
    "hair and makeup": "Hair & Makeup",
    "makeup": "Makeup",
    "officiant": "Officiant",
    "transport": "Transportation",
    "planner": "Planner",
    "rentals": "Rentals",
    "stationery": "Stationery",
}

CURRENCY_ALIASES: dict[str, str] = {
    "€": "EUR",
    "eur": "EUR",
    "euro": "EUR",
    "euros": "EUR",
    "$": "USD",
    "usd": "USD",
    "dollar": "USD",
    "dollars": "USD",
    "£": "GBP",
    "gbp": "GBP",
    "pound": "GBP",
    "pounds": "GBP",
    "cad": "CAD",
}


def _split_sentences(text: str) -> list[str]:
    return [part.strip() for part in re.split(r"[.\n;]+(?=\s|$)", text) if part.strip()]


def _match_roster(sentence: str, roster: list[RosterVendor]) -> RosterVendor | None:
    words = distinctive_name_tokens(sentence)
    matches = [
        vendor
        for vendor in roster
        if distinctive_name_tokens(vendor.vendor_name) and distinctive_name_tokens(vendor.vendor_name) <= words
    ]
    return matches[0] if len(matches) == 1 else None


def _infer_type(sentence: str) -> str | None:
    low = sentence.lower()
    for keyword, vendor_type in TYPE_KEYWORDS.items():
        if re.search(rf"\b{re.escape(keyword)}\b", low):
            return vendor_type
    return None


def _infer_currency(match: re.Match[str]) -> str | None:
    token = match.group("prefix") or match.group("suffix")
    if not token:
        return None
    return CURRENCY_ALIASES.get(token.lower())


def _description_for(sentence: str) -> str | None:
    low = sentence.lower()
    if "final" in low or "balance" in low:
        return "Final payment"
    if "second" in low or "2nd" in low:
        return "2nd payment"
    if "deposit" in low:
        return "1st deposit"
    return None


def _payment_from_sentence(sentence: str, index: int) -> PaymentPatch | None:
    without_dates = EMAIL_PATTERN.sub(" ", DATE_PATTERN.sub(" ", sentence))
    matches = list(AMOUNT_PATTERN.finditer(without_dates))
    amount_match = next((match for match in matches if _infer_currency(match)), matches[0] if matches else None)
    if amount_match is None or (not _infer_currency(amount_match) and "paid" not in sentence.lower()):
        return None

    low = sentence.lower()
    paid = bool(re.search(r"\bpaid\b", low))
    date_match = DATE_PATTERN.search(sentence)
    payment_type = None
    if "cash" in low:
        payment_type = "cash"
    elif "transfer" in low or "wire" in low:
        payment_type = "bank_transfer"

    return PaymentPatch(
        id=f"new-{index}",
        description=_description_for(sentence),
        amount=float(amount_match.group("amount").replace(",", "")),
        amount_currency=_infer_currency(amount_match),
        payment_type=payment_type,
        refundable="refundable" in low,
        due_date=date_match.group(1) if date_match and not paid else None,
        paid=paid,
        paid_date=date_match.group(1) if date_match and paid else None,
    )


class MockVendorParserProvider(VendorParserProvider):
    """Keyword parser used when no language model is configured."""

    async def parse_vendors(self, text: str, context: ParseContext) -> ParseResult:
        operations: list[ParsedOperation] = []
        by_vendor_id: dict[str, ParsedOperation] = {}
        payment_counter = 0

        for sentence in _split_sentences(text):
            existing = _match_roster(sentence, context.roster)
            vendor_type = _infer_type(sentence)
            if existing is None and vendor_type is None:
                continue

            if existing is not None and existing.id in by_vendor_id:
                operation = by_vendor_id[existing.id]
            elif existing is not None:
                operation = ParsedOperation(
                    action="update",
                    vendor_id=existing.id,
                    matched_vendor_name=existing.vendor_name,
                    vendor_data=VendorPatch(),
                    confidence=0.85,
                )
                by_vendor_id[existing.id] = operation
                operations.append(operation)
            else:
                name_match = NAME_PATTERN.search(sentence)
                operation = ParsedOperation(
                    action="create",
                    vendor_data=VendorPatch(
                        vendor_type=vendor_type,
                        vendor_name=name_match.group(1).strip() if name_match else None,
                    ),
                    confidence=0.8 if name_match else 0.6,
                )
                operations.append(operation)

            data = operation.vendor_data
            email_match = EMAIL_PATTERN.search(sentence)
            if email_match:
                data.email = email_match.group(0)
            phone_match = PHONE_PATTERN.search(EMAIL_PATTERN.sub(" ", DATE_PATTERN.sub(" ", sentence)))
            if phone_match:
                data.phone = phone_match.group(0).strip()
            if re.search(r"\bsigned\b", sentence.lower()) and "contract" in sentence.lower():
                data.contract_signed = True

            payment_counter += 1
            payment = _payment_from_sentence(sentence, payment_counter)
            if payment is not None:
                data.payments = [*(data.payments or []), payment]
                if payment.amount_currency and not data.vendor_currency:
                    data.vendor_currency = payment.amount_currency
            else:
                payment_counter -= 1

        return ParseResult(operations=operations, clarifications_needed=[])
