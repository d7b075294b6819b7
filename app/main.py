from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.catalog.router import router as models_router
from app.core.dependencies import log_writer
from app.core.exceptions import AppError
from app.core.logging import configure_logging
from app.db.session import engine
from app.gateway.router import router as gateway_router
from app.providers.registry import close_all as close_providers

VERSION = "1.0.0"

configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("gateway.startup", version=VERSION)
    yield
    await log_writer.drain()
    await close_providers()
    await engine.dispose()


app = FastAPI(
    title="LLM Gateway",
    version=VERSION,
    description="OpenAI-compatible gateway routing chat completions to upstream providers with per-request cost accounting.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def require_json_body(request: Request, call_next):
    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type:
            return JSONResponse(
                status_code=415,
                content={"message": "Unsupported Media Type: Content-Type must be application/json"},
            )
    return await call_next(request)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"message": f"{location}: {message}" if location else message},
    )


app.include_router(gateway_router)
app.include_router(models_router)


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "OK"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": VERSION}
