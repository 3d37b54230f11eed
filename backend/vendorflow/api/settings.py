from datetime import UTC, datetime

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.api.deps import get_current_planner, get_current_user, get_current_wedding
from vendorflow.core.db import get_session
from vendorflow.models.user import User
from vendorflow.models.wedding import Wedding
from vendorflow.schemas.settings import (
    LLMSettingsResponse,
    LLMSettingsTestResponse,
    WeddingSettingsResponse,
    WeddingSettingsUpdateRequest,
)
from vendorflow.services.llm.provider_factory import (
    ProviderNotConfiguredError,
    get_vendor_parser_provider,
)
from vendorflow.services.llm.settings_service import get_env_runtime_config
from vendorflow.services.llm.types import ParseContext

router = APIRouter(prefix="/settings", tags=["settings"])


def _to_wedding_response(wedding: Wedding) -> WeddingSettingsResponse:
    return WeddingSettingsResponse(
        wedding_id=str(wedding.id),
        name=wedding.name,
        wedding_date=wedding.wedding_date,
        default_currency=wedding.default_currency,
        converted_currency=wedding.converted_currency,
    )


def _to_llm_response() -> LLMSettingsResponse:
    runtime = get_env_runtime_config()
    return LLMSettingsResponse(
        provider=runtime.provider,
        model=runtime.model,
        timezone=runtime.timezone,
        has_api_key=runtime.has_api_key,
        updated_at=datetime.now(UTC),
    )


@router.get("/wedding", response_model=WeddingSettingsResponse)
async def get_wedding_settings(
    wedding: Wedding = Depends(get_current_wedding),
) -> WeddingSettingsResponse:
    return _to_wedding_response(wedding)


@router.put("/wedding", response_model=WeddingSettingsResponse)
async def update_wedding_settings(
    payload: WeddingSettingsUpdateRequest,
    wedding: Wedding = Depends(get_current_wedding),
    session: AsyncSession = Depends(get_session),
) -> WeddingSettingsResponse:
    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"]:
        wedding.name = updates["name"].strip()
    if "wedding_date" in updates:
        wedding.wedding_date = updates["wedding_date"]
    if updates.get("default_currency"):
        wedding.default_currency = updates["default_currency"]
    if updates.get("converted_currency"):
        wedding.converted_currency = updates["converted_currency"]
    session.add(wedding)
    await session.commit()
    await session.refresh(wedding)
    return _to_wedding_response(wedding)


@router.get("/llm", response_model=LLMSettingsResponse)
async def get_llm_settings(
    current_user: User = Depends(get_current_user),
) -> LLMSettingsResponse:
    _ = current_user
    return _to_llm_response()


@router.post("/llm/test", response_model=LLMSettingsTestResponse)
async def test_llm_settings(
    current_user: User = Depends(get_current_planner),
) -> LLMSettingsTestResponse:
    _ = current_user
    runtime = get_env_runtime_config()
    context = ParseContext(
        reference_date=datetime.now(UTC).date(),
        timezone=runtime.timezone,
        default_currency="EUR",
        converted_currency="USD",
    )
    try:
        provider = get_vendor_parser_provider(runtime)
        result = await provider.parse_vendors(
            "Paid the photographer called Test Studio a 100 EUR deposit in cash.",
            context=context,
        )
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Provider test failed: {exc}",
        ) from exc
    return LLMSettingsTestResponse(
        success=True,
        provider=runtime.provider,
        model=runtime.model,
        message=f"Connection is valid. Parsed {len(result.operations)} vendor operation(s).",
    )
