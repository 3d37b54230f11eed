from typing import Any

from vendorflow.services.llm.base import ChatCompletionVendorParser
from vendorflow.services.llm.prompts import SYSTEM_PROMPT
from vendorflow.services.llm.types import ParseContext


class OpenAIVendorParserProvider(ChatCompletionVendorParser):
    endpoint = "https://api.openai.com/v1/chat/completions"

    def build_payload(self, text: str, context: ParseContext) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.user_prompt(text, context)},
            ],
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }

    def extract_content(self, data: dict[str, Any]) -> str:
        return data["choices"][0]["message"]["content"]
