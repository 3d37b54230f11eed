import json
from typing import Any

from vendorflow.services.llm.base import ChatCompletionVendorParser
from vendorflow.services.llm.prompts import SYSTEM_PROMPT
from vendorflow.services.llm.types import ParseContext


def _normalize_message_content(content: object) -> str:
    """Flatten the content shapes Cerebras models return into one string."""
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    if isinstance(content, dict):
        text = content.get("text")
        return text if isinstance(text, str) else json.dumps(content)
    if isinstance(content, list):
        chunks = []
        for block in content:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                chunks.append(block["text"])
            elif isinstance(block, str):
                chunks.append(block)
            else:
                chunks.append(json.dumps(block))
        return "\n".join(chunks)
    return str(content)


class CerebrasVendorParserProvider(ChatCompletionVendorParser):
    endpoint = "https://api.cerebras.ai/v1/chat/completions"

    def build_payload(self, text: str, context: ParseContext) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.user_prompt(text, context)},
            ],
            "temperature": 0,
        }

    def extract_content(self, data: dict[str, Any]) -> str:
        return _normalize_message_content(data["choices"][0]["message"]["content"])
