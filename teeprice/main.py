# teeprice/main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import ResponseValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.requests import Request

from teeprice import database
from teeprice.config import env_flag
from teeprice.database import get_db, init_db
from teeprice.errors import (
    BookingBlockedError,
    ConfigurationError,
    ExpiredQuoteError,
    InvalidQuoteHashError,
    RepositoryError,
    ValidationError,
)
from teeprice.logging_config import setup_logging
from teeprice.routers import admin, checkout, pricing

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        init_db()
        logger.info("[DB] Database connected successfully")
    except Exception as e:
        # Serve anyway; store-backed routes answer 503 until the database is back.
        logger.warning("[DB] Could not initialise database: %s", str(e)[:100])
    yield


# -----------------------------------------
# Create app instance
# -----------------------------------------
app = FastAPI(title="TeePrice", lifespan=lifespan)


# -----------------------------------------
# Error mapping (always JSON {"detail": ...})
# -----------------------------------------
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(BookingBlockedError)
async def booking_blocked_handler(request: Request, exc: BookingBlockedError):
    return JSONResponse(
        status_code=409,
        content={"detail": "Tee time is not bookable", "override_id": exc.override_id},
    )


@app.exception_handler(ExpiredQuoteError)
async def expired_quote_handler(request: Request, exc: ExpiredQuoteError):
    return JSONResponse(status_code=410, content={"detail": "Quote expired, request a new quote"})


@app.exception_handler(InvalidQuoteHashError)
async def invalid_quote_handler(request: Request, exc: InvalidQuoteHashError):
    return JSONResponse(status_code=400, content={"detail": "Invalid quote"})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("[PRICING] %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Pricing unavailable"})


@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError):
    logger.error("[DB] %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Database connection unavailable"})


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("[DB] SQLAlchemy error: %s", str(exc)[:240])
    return JSONResponse(status_code=503, content={"detail": "Database connection unavailable"})


@app.exception_handler(ResponseValidationError)
async def response_validation_error_handler(request: Request, exc: ResponseValidationError):
    logger.error("[API] Response validation error: %s", str(exc)[:240])
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        return await http_exception_handler(request, exc)

    logger.exception("[UNHANDLED] %s: %s", type(exc).__name__, str(exc)[:240])
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# -----------------------------------------
# CORS Settings
# -----------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in (os.getenv("CORS_ORIGINS") or "*").split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Lightweight health check: can we reach the rule store?"""
    info = {
        "db_source": database.DB_SOURCE,
        "db_driver": (database.DB_INFO or {}).get("driver"),
        "has_database_url": bool(os.getenv("DATABASE_URL")),
        "database_url_strict": env_flag("DATABASE_URL_STRICT"),
    }
    try:
        db.execute(text("select 1"))
        return {"ok": True, "db": "ok", **info}
    except SQLAlchemyError as e:
        logger.error("[HEALTH] Database error: %s", str(e)[:200])
        return {"ok": False, "db": "error", **info}


# -----------------------------------------
# Routers
# -----------------------------------------
app.include_router(pricing.router)
app.include_router(checkout.router)
app.include_router(admin.router)
