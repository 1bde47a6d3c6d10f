"""
FastAPI application entrypoint.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import payments as payments_routes
from api.middleware import RequestIDMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from core.settings import payment_settings


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not payment_settings.reepay.private_key:
        logger.warning("reepay_private_key_missing", message="Gateway calls will fail until REEPAY__PRIVATE_KEY is set")
    if not payment_settings.reepay.webhook_secret:
        logger.warning("reepay_webhook_secret_missing", message="Webhooks will be answered with 500 until REEPAY__WEBHOOK_SECRET is set")
    if not (payment_settings.reepay.continue_url and payment_settings.reepay.cancel_url):
        logger.warning("reepay_redirect_urls_missing", message="Checkout fails until REEPAY__CONTINUE_URL and REEPAY__CANCEL_URL are set")
    logger.info("application_started", environment=settings.ENVIRONMENT)
    yield
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Reepay hosted checkout, webhook reconciliation and charge operations",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
        },
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
