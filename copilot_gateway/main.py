"""
ASGI application: logging, CORS, error rendering and the proxy routers.

Run with `uvicorn copilot_gateway.main:app` or the `copilot-gateway` script.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from copilot_gateway import __version__
from copilot_gateway.api.proxy import gemini_router, openai_router
from copilot_gateway.common.errors import AppError
from copilot_gateway.config import Settings, get_settings
from copilot_gateway.logging_config import setup_logging

logger = logging.getLogger(__name__)

setup_logging()

DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def cors_origins(settings: Settings) -> list[str]:
    """ALLOWED_ORIGINS is comma separated; debug mode falls back to local dev origins."""
    origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    if not origins and settings.DEBUG:
        return list(DEV_ORIGINS)
    return origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Starting %s (provider=%s)", settings.APP_NAME, settings.PROVIDER)
    if settings.PROVIDER == "github" and not settings.GITHUB_ACCESS_TOKEN:
        logger.warning("GITHUB_ACCESS_TOKEN is not set; generation requests will be rejected")
    yield
    logger.info("Shutting down %s", settings.APP_NAME)


settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    description="Gemini / OpenAI compatible gateway backed by GitHub Copilot",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(settings),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # details only leave the process in debug mode
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(include_details=get_settings().DEBUG),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    trace = traceback.format_exc()
    logger.error("Unhandled error on %s: %s\n%s", request.url.path, exc, trace)

    error = {"message": "Internal server error", "type": "internal_error", "code": "internal_error"}
    if get_settings().DEBUG:
        error.update(message=str(exc), type=type(exc).__name__, traceback=trace.splitlines())
    return JSONResponse(status_code=500, content={"error": error})


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "provider": get_settings().PROVIDER}


app.include_router(openai_router)
app.include_router(gemini_router)
