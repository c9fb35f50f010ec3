import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from the project root .env (tests configure the environment themselves)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from quizzical.core.config import settings, validate_config
from quizzical.core.logging import configure_logging
from quizzical.core.middleware.request_id import RequestIdMiddleware
from quizzical.core.validation import validate_env
from quizzical.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from quizzical.api import admin_activation, cron, health, subscription, webhooks

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("quizzical")
    logger.info("Starting Quizzical billing backend...")
    try:
        yield
    finally:
        logging.getLogger("quizzical").info("Stopping Quizzical billing backend...")


app = FastAPI(title="Quizzical - Billing backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(admin_activation.router)
app.include_router(subscription.router)
app.include_router(cron.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("quizzical.main:app", host="0.0.0.0", port=8000, reload=settings.ENV == "development")
