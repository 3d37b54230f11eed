from typing import Any

from vendorflow.services.llm.base import ChatCompletionVendorParser
from vendorflow.services.llm.prompts import SYSTEM_PROMPT
from vendorflow.services.llm.types import ParseContext


class GeminiVendorParserProvider(ChatCompletionVendorParser):
    def request_url(self) -> str:
        return f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"

    def request_headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def build_payload(self, text: str, context: ParseContext) -> dict[str, Any]:
        # Gemini has no system role on this endpoint, so the rules lead the prompt.
        prompt = f"{SYSTEM_PROMPT}\n\n{self.user_prompt(text, context)}"
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0,
                "responseMimeType": "application/json",
            },
        }

    def extract_content(self, data: dict[str, Any]) -> str:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)
