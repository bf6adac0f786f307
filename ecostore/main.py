from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime

from ecostore import __version__
from ecostore.shared.database import engine, get_session, init_models, ping
from ecostore.shared.utils import settings, ErrorResponse, HealthResponse
from ecostore.shared.logging_config import setup_logging, RequestLoggingMiddleware
from ecostore.shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware

from ecostore.auth.routes import router as auth_router
from ecostore.products.routes import router as products_router
from ecostore.orders.routes import router as orders_router, cart_router
from ecostore.sustainability.routes import router as sustainability_router

SERVICE_NAME = "ecostore"

# Setup Logging
logger = setup_logging(SERVICE_NAME, settings.LOG_LEVEL)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    yield
    await engine.dispose()

app = FastAPI(title="EcoStore API", version=__version__, lifespan=lifespan)

# Security Setup
setup_rate_limiting(app)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware, service_name=SERVICE_NAME)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Error Handlers ---

def error_response(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(exclude_none=True),
        headers=headers,
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request")
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return error_response(status.HTTP_400_BAD_REQUEST, message)

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"request_id": getattr(request.state, "request_id", None), "path": request.url.path},
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

# --- Routers ---

app.include_router(auth_router)
app.include_router(products_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(sustainability_router)

@app.get("/health", response_model=HealthResponse)
async def health_check(session: AsyncSession = Depends(get_session)):
    db_status = "connected" if await ping(session) else "disconnected"

    if db_status != "connected":
        logger.error(f"Health Check Failed: DB={db_status}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service Unhealthy"
        )

    return HealthResponse(
        service=SERVICE_NAME,
        status="healthy",
        timestamp=datetime.utcnow(),
        version=__version__,
        database=db_status
    )
