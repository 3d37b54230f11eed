import json
from datetime import date, timedelta

from vendorflow.services.llm.types import RosterVendor
from vendorflow.services.vendor_types import VENDOR_TYPES

SYSTEM_PROMPT = f"""
You are a wedding vendor update assistant for a couple and their planner.
Extract vendor updates from the provided text and return structured JSON with operations to apply.
Return valid JSON only, no markdown, with this exact root object:
{{
  "operations": [
    {{
      "action": "create"|"update",
      "vendor_id": string|null,
      "matched_vendor_name": string|null,
      "vendor_data": {{
        "vendor_name": string|null,
        "vendor_type": string|null,
        "vendor_currency": string|null,
        "contact_name": string|null,
        "email": string|null,
        "phone": string|null,
        "website": string|null,
        "contract_signed": boolean|null,
        "contract_signed_date": "YYYY-MM-DD"|null,
        "notes": string|null,
        "payments": [
          {{
            "id": "new-1",
            "description": string|null,
            "amount": number|null,
            "amount_currency": string|null,
            "amount_converted": number|null,
            "amount_converted_currency": string|null,
            "payment_type": "cash"|"bank_transfer"|null,
            "refundable": boolean,
            "due_date": "YYYY-MM-DD"|null,
            "paid": boolean,
            "paid_date": "YYYY-MM-DD"|null
          }}
        ]
      }},
      "confidence": number,
      "ambiguous_fields": [string],
      "warnings": [string]
    }}
  ],
  "clarifications_needed": [
    {{
      "question": string,
      "field": string,
      "field_type": "text"|"number"|"date"|"email"|"phone"|"choice",
      "context": string|null,
      "operation_index": number|null,
      "required": boolean,
      "choices": [string]|null
    }}
  ]
}}

Operation types:
- action "create": new vendor not in the existing list.
- action "update": change to an existing vendor. Use the vendor_id from the existing vendor list.

Vendor types (use exactly one of these values):
{", ".join(VENDOR_TYPES)}

Matching rules:
1. A vendor matches an existing vendor ONLY if the distinctive part of the vendor_name (the proper noun or business identifier) is the same or clearly abbreviated. Generic category words like "Catering", "Photography", "Studio", "Events" are NOT distinctive. "SANA CATERING SL" matches "Sana Catering". "SANA CATERING SL" does NOT match "Carlos Catering".
2. Vendor type alone is NEVER sufficient for a match. If the only similarity is vendor_type or a shared generic word, set action "create".
3. If a name match is found, set action "update" and include vendor_id and matched_vendor_name.
4. If a vendor reference could match multiple existing vendors, add a clarification instead of guessing.

Payment rules:
- Give each new payment a temporary id "new-1", "new-2", and so on.
- For an update, include ONLY payments that are new or changed. To change an existing payment, reuse its id from the existing vendor list and include only the changed fields.
- Copy payment descriptions verbatim from the document ("1st deposit", "Final payment"). Never paraphrase them.
- "paid deposit of 500 euros" is one payment with paid=true. "deposit of 500 euros due March 1" is one payment with paid=false and a due_date.
- paid_date only when paid is true.
- Only set amount_converted when the document states the converted amount and its currency.
- Set refundable=true only for refundable security deposits.
- If it is unclear which payment a stray amount belongs to, add a clarification with field "payment_<n>_description" (n is the 0-based position in that operation's payments list), field_type "choice", operation_index set, and choices limited to the plausible descriptions, e.g. ["Total cost", "1st deposit"].

General rules:
- Only include fields explicitly mentioned in the text. Never guess or invent values.
- For update operations, only include the fields being changed or added.
- If the currency is unclear, ask through clarifications_needed.
- Preserve phone number formatting as provided.
- Put addresses, bank details and other useful context in notes.
- confidence between 0 and 1, lower for vague references.
"""


def _shift_months(value: date, months: int) -> date:
    month_index = (value.month - 1) - months
    year = value.year + (month_index // 12)
    month = (month_index % 12) + 1
    day = value.day
    while day > 28:
        try:
            return date(year, month, day)
        except ValueError:
            day -= 1
    return date(year, month, day)


def build_wedding_date_context(wedding_date: date | None) -> str:
    if wedding_date is None:
        return (
            "wedding_context:\n"
            "- Wedding date: not set\n"
            "- If the document mentions a wedding date, use it to calculate relative due dates\n"
            "- Always output due_date in YYYY-MM-DD format"
        )
    lines = [
        "wedding_context:",
        f"- Wedding date: {wedding_date.isoformat()}",
        f'- "on wedding day" / "day of" = {wedding_date.isoformat()}',
        f'- "day before" = {(wedding_date - timedelta(days=1)).isoformat()}',
        f'- "week before" = {(wedding_date - timedelta(days=7)).isoformat()}',
    ]
    for months in (1, 2, 3, 4, 6):
        label = "month" if months == 1 else "months"
        lines.append(f'- "{months} {label} before" = {_shift_months(wedding_date, months).isoformat()}')
    lines.append(f"- For any other relative reference, calculate from {wedding_date.isoformat()}")
    lines.append("- Always output due_date in YYYY-MM-DD format")
    return "\n".join(lines)


def format_roster(roster: list[RosterVendor]) -> str:
    if not roster:
        return "None yet"
    lines = []
    for vendor in roster:
        payments = [
            {
                "id": payment.id,
                "description": payment.description,
                "amount": payment.amount,
                "currency": payment.amount_currency,
                "due_date": payment.due_date,
                "paid": payment.paid,
            }
            for payment in vendor.payments
        ]
        lines.append(
            f"- {vendor.label} ({vendor.vendor_type}, ID: {vendor.id}, "
            f"contract signed: {str(vendor.contract_signed).lower()}, "
            f"currency: {vendor.vendor_currency or 'unknown'}, "
            f"payments: {json.dumps(payments)})"
        )
    return "\n".join(lines)


def build_user_prompt(
    text: str,
    reference_date: str,
    timezone: str,
    default_currency: str,
    converted_currency: str,
    wedding_date: date | None = None,
    roster: list[RosterVendor] | None = None,
) -> str:
    return (
        f"reference_date: {reference_date}\n"
        f"timezone: {timezone}\n"
        f"default_currency: {default_currency}\n"
        f"converted_currency: {converted_currency}\n"
        f"{build_wedding_date_context(wedding_date)}\n"
        f"existing_vendors:\n{format_roster(roster or [])}\n"
        f"input_text: {text}"
    )
