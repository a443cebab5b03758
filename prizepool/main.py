"""
prizepool/main.py
FastAPI application for the tournament settlement core
"""
import os
import uuid
import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from prizepool.config.feature_flags import feature_flags, get_bool_env
from prizepool.config.settings import REDIS_URL, SettlementConfig
from prizepool.database import DATABASE_URL, init_db, close_db
from prizepool.errors import ErrorCode, APIError, settlement_error_response
from prizepool.exceptions import SettlementError
from prizepool.realtime.leaderboard_cache import create_leaderboard_cache
from prizepool.routes import router
from prizepool.routes.deps import limiter
from prizepool.tasks.sweep import start_sweep_task

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting settlement core...")
    try:
        await init_db()
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    config = SettlementConfig.from_env()
    app.state.leaderboard_cache = create_leaderboard_cache(
        feature_flags.FEATURE_LEADERBOARD_CACHE, REDIS_URL, config.leaderboard_ttl_seconds
    )

    sweep_task = None
    if get_bool_env("SWEEP_IN_PROCESS", False):
        sweep_task = start_sweep_task(DATABASE_URL, int(os.getenv("SWEEP_INTERVAL_SECONDS", "60")))
        logger.info("✓ In-process auto-start sweep running")

    yield

    logger.info("Shutting down settlement core...")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    if app.state.leaderboard_cache is not None:
        await app.state.leaderboard_cache.close()
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database connection: {str(e)}")


app = FastAPI(
    title="Prize Pool Settlement API",
    description="Tournament escrow, payouts, results and compliance",
    version=VERSION,
    docs_url="/docs" if os.getenv("ENVIRONMENT", "development") == "development" else None,
    redoc_url="/redoc" if os.getenv("ENVIRONMENT", "development") == "development" else None,
    lifespan=lifespan
)

# Attach rate limiter to the app
app.state.limiter = limiter
app.state.leaderboard_cache = None
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8000",
]

allowed_origins = os.getenv("ALLOWED_ORIGINS", "").split(",")
if allowed_origins and allowed_origins[0]:
    origins.extend(allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request validation failed",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": error_details
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception on {request.url.path}: {exc.detail}")

    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail,
            headers=getattr(exc, "headers", None)
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "Error",
            "message": str(exc.detail),
            "code": ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCode.INVALID_INPUT
        }
    )


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    logger.warning(f"Rejected on {request.url.path}: {exc.code} - {exc.message}")
    return settlement_error_response(exc)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(
        f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}",
        exc_info=exc
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "feature_flags": feature_flags.get_all_flags(),
        "version": VERSION
    }


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "prizepool.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENVIRONMENT", "development") == "development"
    )
