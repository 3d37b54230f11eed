import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from vendorflow.services.llm.parser_utils import parse_result_from_text
from vendorflow.services.llm.prompts import build_user_prompt
from vendorflow.services.llm.types import ParseContext, ParseResult

logger = logging.getLogger(__name__)


class VendorParserProvider(ABC):
    @abstractmethod
    async def parse_vendors(self, text: str, context: ParseContext) -> ParseResult:
        raise NotImplementedError


class ChatCompletionVendorParser(VendorParserProvider):
    """Provider that sends one prompt to a hosted model and reads JSON back.

    Subclasses describe the wire format; posting, timing and JSON parsing
    live here.
    """

    endpoint: str = ""

    def __init__(self, api_key: str, model: str, timeout_seconds: float = 180.0):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds

    def user_prompt(self, text: str, context: ParseContext) -> str:
        return build_user_prompt(
            text=text,
            reference_date=str(context.reference_date),
            timezone=context.timezone,
            default_currency=context.default_currency,
            converted_currency=context.converted_currency,
            wedding_date=context.wedding_date,
            roster=context.roster,
        )

    def request_url(self) -> str:
        return self.endpoint

    def request_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @abstractmethod
    def build_payload(self, text: str, context: ParseContext) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def extract_content(self, data: dict[str, Any]) -> str:
        raise NotImplementedError

    async def parse_vendors(self, text: str, context: ParseContext) -> ParseResult:
        payload = self.build_payload(text, context)
        timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        started = time.perf_counter()
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                self.request_url(),
                json=payload,
                headers=self.request_headers(),
            )
            response.raise_for_status()
            data = response.json()
        logger.info(
            "%s replied in %.0fms for %d roster vendors",
            self.__class__.__name__,
            (time.perf_counter() - started) * 1000,
            len(context.roster),
        )
        return parse_result_from_text(self.extract_content(data))
