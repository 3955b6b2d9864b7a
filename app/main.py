import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.invoices import router as invoices_router
from app.api.webhooks import router as webhooks_router
from app.config import Settings
from app.db.store import InvoiceStore
from app.errors import (
    AuthenticationError,
    ConfigurationError,
    InvoiceServiceError,
)
from app.services.invoicing import PaymentGateway
from app.services.payments import EventVerifier

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[InvoiceStore] = None,
    gateway: Optional[PaymentGateway] = None,
    event_verifier: Optional[EventVerifier] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.store is None
        if owned:
            app.state.store = InvoiceStore.open(
                settings.database_url,
                overdue_after_days=settings.overdue_after_days,
            )
            app.state.store.init_schema()
        try:
            yield
        finally:
            if owned:
                app.state.store.close()
                app.state.store = None

    app = FastAPI(
        title="Sullivan Trading Invoicing API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway
    app.state.event_verifier = event_verifier

    @app.exception_handler(InvoiceServiceError)
    def handle_service_error(request: Request, exc: InvoiceServiceError):
        # Auth and config failures get a terse body; details stay in the log
        if isinstance(exc, AuthenticationError):
            logger.warning("Rejected request to %s: %s", request.url.path, exc.message)
            detail = "Webhook signature verification failed"
        elif isinstance(exc, ConfigurationError):
            logger.error("Configuration error on %s: %s", request.url.path, exc.message)
            detail = "Server configuration error"
        else:
            detail = exc.message
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    app.include_router(invoices_router)
    app.include_router(webhooks_router)

    return app


app = create_app()
