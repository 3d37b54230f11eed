from fastapi import APIRouter

from vendorflow.api.auth import router as auth_router
from vendorflow.api.exchange_rate import router as exchange_rate_router
from vendorflow.api.settings import router as settings_router
from vendorflow.api.vendor_import import router as vendor_import_router
from vendorflow.api.vendors import router as vendors_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(exchange_rate_router)
api_router.include_router(settings_router)
api_router.include_router(vendor_import_router)
api_router.include_router(vendors_router)
