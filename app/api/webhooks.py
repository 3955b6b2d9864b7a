# app/api/webhooks.py

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_reconciler
from app.services.reconciler import PaymentReconciler

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    Stripe event delivery. The raw body is needed for signature checks.
    """
    payload = await request.body()
    await run_in_threadpool(reconciler.handle, payload, stripe_signature)
    return {"received": True}
