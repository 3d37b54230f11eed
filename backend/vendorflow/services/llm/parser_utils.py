import json
import re

from vendorflow.services.llm.types import ParseResult

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.S | re.I)


def extract_json_object(text: str) -> str:
    """Outermost ``{...}`` span of a model reply, code fences removed."""
    text = text.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("Model reply did not contain a JSON object.")
    return text[start : end + 1]


def parse_result_from_text(text: str) -> ParseResult:
    data = json.loads(extract_json_object(text))
    if not isinstance(data, dict):
        raise ValueError("Model reply was not a JSON object.")
    return ParseResult.model_validate(data)
