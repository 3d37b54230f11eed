import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from vendorflow.api.router import api_router
from vendorflow.core.config import get_settings
from vendorflow.core.db import engine, init_db
from vendorflow.core.logging import configure_logging
from vendorflow.services.llm.settings_service import get_env_runtime_config

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    await init_db()
    runtime = get_env_runtime_config()
    logger.info(
        "%s started (env=%s, parser=%s/%s)",
        settings.app_name,
        settings.app_env,
        runtime.provider.value,
        runtime.model,
    )
    yield
    await engine.dispose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage is temporarily unavailable"},
    )


@app.get("/health")
async def health() -> dict[str, str]:
    runtime = get_env_runtime_config()
    return {
        "status": "ok",
        "parser_provider": runtime.provider.value,
        "parser_ready": "yes" if runtime.has_api_key or runtime.provider.value == "mock" else "no",
    }
