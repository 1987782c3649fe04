import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from shared.config import settings
from shared.config.database import engine, Base
from shared.observability import setup_observability
from shared.security import limiter
from .dependencies import shutdown_collaborators
from .exceptions import OrderServiceError
from .router import router, public_router
from .models import Order # Import to register with Base

logger = structlog.get_logger(__name__)

order_app = FastAPI(title="Order Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(order_app, "order_service")

# --- SECURITY SETUP ---
order_app.state.limiter = limiter
order_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@order_app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "message": exc.message})


order_app.include_router(public_router)
order_app.include_router(router)


@order_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {settings.ORDER_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)


@order_app.on_event("shutdown")
async def shutdown_event():
    await shutdown_collaborators()
