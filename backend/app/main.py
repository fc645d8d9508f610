"""doorlog backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import SheetLayout
from .errors import ConfigurationError, RemoteStoreError
from .logging_config import configure_logging, get_logger
from .ranges import a1
from .rate_limit import limiter
from .routes import logs_router
from .sheets import close_sheets_client, get_sheets_client

logger = get_logger("doorlog.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting doorlog backend (debug={settings.debug})")
    yield
    await close_sheets_client()
    logger.info("Shutting down doorlog backend")


app = FastAPI(
    title="doorlog Backend API",
    description="Visit log API backed by a Google Sheets spreadsheet",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing fields are a 400, never retried by the client."""
    details = [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Server configuration error"})


app.include_router(logs_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "doorlog-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with an actual spreadsheet read."""
    store_status = "disconnected"
    try:
        store = get_sheets_client()
        layout = SheetLayout.from_settings(get_settings())
        await store.read(a1(layout.position, "A", "A", row=1))
        store_status = "connected"
    except ConfigurationError:
        store_status = "not configured"
    except RemoteStoreError as e:
        store_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if store_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "store": store_status,
    }
