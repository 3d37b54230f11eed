from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from vendorflow.services.llm.settings_service import LLMProvider


class WeddingSettingsResponse(BaseModel):
    wedding_id: str
    name: str
    wedding_date: date | None = None
    default_currency: str
    converted_currency: str


class WeddingSettingsUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    wedding_date: date | None = None
    default_currency: str | None = Field(default=None, min_length=3, max_length=8)
    converted_currency: str | None = Field(default=None, min_length=3, max_length=8)

    @field_validator("default_currency", "converted_currency")
    @classmethod
    def _upper(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else value


class LLMSettingsResponse(BaseModel):
    provider: LLMProvider
    model: str
    timezone: str
    has_api_key: bool
    updated_at: datetime


class LLMSettingsTestResponse(BaseModel):
    success: bool
    provider: LLMProvider
    model: str
    message: str


class ExchangeRateResponse(BaseModel):
    rate: float
    from_currency: str = Field(serialization_alias="from")
    to_currency: str = Field(serialization_alias="to")
    fetched_at: datetime
    cached: bool
