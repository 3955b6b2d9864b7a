# app/api/deps.py

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from app.config import Settings
from app.db.store import InvoiceStore
from app.errors import ConfigurationError
from app.services.invoicing import InvoiceWorkflow
from app.services.payments import StripePaymentGateway
from app.services.reconciler import PaymentReconciler

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> InvoiceStore:
    return request.app.state.store


def get_workflow(
    request: Request,
    store: InvoiceStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> InvoiceWorkflow:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None and settings.payments_enabled:
        gateway = StripePaymentGateway(settings.stripe_secret_key, settings.stripe_currency)
    return InvoiceWorkflow(store, gateway)


def get_reconciler(
    request: Request,
    store: InvoiceStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> PaymentReconciler:
    verify = getattr(request.app.state, "event_verifier", None)
    if verify is None:
        return PaymentReconciler(store, settings.stripe_webhook_secret)
    return PaymentReconciler(store, settings.stripe_webhook_secret, verify=verify)


def require_admin(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Operator routes sit behind a bearer token until session login is wired in.
    """
    if not settings.admin_api_token:
        raise ConfigurationError("ADMIN_API_TOKEN not configured")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(
        token.encode(), settings.admin_api_token.encode()
    ):
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
