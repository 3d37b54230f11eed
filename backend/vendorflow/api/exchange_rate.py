from fastapi import APIRouter, Depends, HTTPException, Query, status

from vendorflow.api.deps import get_current_user
from vendorflow.models.user import User
from vendorflow.schemas.settings import ExchangeRateResponse
from vendorflow.services.exchange_rates import (
    ExchangeRateService,
    ExchangeRateUnavailableError,
    get_exchange_rate_service,
)

router = APIRouter(prefix="/exchange-rate", tags=["exchange-rate"])


@router.get("", response_model=ExchangeRateResponse)
async def get_exchange_rate(
    from_currency: str = Query(default="USD", alias="from", min_length=3, max_length=8),
    to_currency: str = Query(default="EUR", alias="to", min_length=3, max_length=8),
    current_user: User = Depends(get_current_user),
    rates: ExchangeRateService = Depends(get_exchange_rate_service),
) -> ExchangeRateResponse:
    _ = current_user
    try:
        quote = await rates.get_rate(from_currency, to_currency)
    except ExchangeRateUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    return ExchangeRateResponse(
        rate=quote.rate,
        from_currency=quote.from_currency,
        to_currency=quote.to_currency,
        fetched_at=quote.fetched_at,
        cached=quote.cached,
    )
