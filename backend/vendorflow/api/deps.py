from datetime import date, datetime
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.db import get_session
from vendorflow.core.security import decode_access_token
from vendorflow.models.user import User
from vendorflow.models.wedding import Wedding
from vendorflow.services.exchange_rates import ExchangeRateService, get_exchange_rate_service
from vendorflow.services.llm.base import VendorParserProvider
from vendorflow.services.llm.provider_factory import (
    ProviderNotConfiguredError,
    get_vendor_parser_provider,
)
from vendorflow.services.llm.settings_service import get_env_runtime_config
from vendorflow.services.llm.types import ParseContext
from vendorflow.services.vendor_extraction import build_parse_context
from vendorflow.services.vendor_store import SQLVendorStore, VendorStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def today_for_timezone(timezone_name: str) -> date:
    try:
        return datetime.now(ZoneInfo(timezone_name)).date()
    except (ZoneInfoNotFoundError, ValueError):
        return date.today()


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    token: str = Depends(oauth2_scheme),
) -> User:
    credentials_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = decode_access_token(token)
        user_id = UUID(str(claims["sub"]))
        wedding_id = UUID(str(claims["wid"]))
    except (KeyError, ValueError, TypeError):
        raise credentials_error

    user = await session.get(User, user_id)
    # A token minted before the user moved weddings must not reach the new one.
    if user is None or not user.is_active or user.wedding_id != wedding_id:
        raise credentials_error
    return user


async def get_current_planner(user: User = Depends(get_current_user)) -> User:
    if not user.is_planner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the wedding planner can perform this action",
        )
    return user


async def get_current_wedding(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Wedding:
    wedding = await session.get(Wedding, user.wedding_id)
    if wedding is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wedding not found")
    return wedding


async def get_vendor_store(
    wedding: Wedding = Depends(get_current_wedding),
    session: AsyncSession = Depends(get_session),
    rates: ExchangeRateService = Depends(get_exchange_rate_service),
) -> VendorStore:
    return SQLVendorStore(session, wedding, rate_lookup=rates.get_rate_or_default)


async def get_vendor_parser(
    user: User = Depends(get_current_user),
) -> VendorParserProvider:
    _ = user
    try:
        return get_vendor_parser_provider()
    except ProviderNotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


async def get_parse_context(
    wedding: Wedding = Depends(get_current_wedding),
    store: VendorStore = Depends(get_vendor_store),
) -> ParseContext:
    runtime = get_env_runtime_config()
    return build_parse_context(
        wedding=wedding,
        roster=await store.list_vendors(),
        reference_date=today_for_timezone(runtime.timezone),
        timezone=runtime.timezone,
    )
