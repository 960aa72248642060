import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Import models so every table is registered on Base before create_all
from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS, SECURITY_HEADERS_ENABLED
from .database import Base, engine
from .domain.accounts.router import router as accounts_router
from .domain.errors import InternalError, SlotSwapError
from .domain.slots.router import router as slots_router
from .domain.swaps.router import router as swaps_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("passlib").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="SlotSwap API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(SlotSwapError)
async def slotswap_exception_handler(request: Request, exc: SlotSwapError):
    """Render domain errors as {"detail", "code"} with their HTTP status"""
    if isinstance(exc, InternalError):
        logger.error(f"{request.method} {request.url.path} - {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} - {exc.code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"❌ Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": InternalError.default_detail, "code": InternalError.code},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and path parameters are client input errors (400)"""
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid input",
            "code": "invalid_input",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(
        SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
    )
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(accounts_router)
app.include_router(slots_router)
app.include_router(swaps_router)


@app.get("/")
def root():
    return {"message": "SlotSwap API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
