"""FastAPI route receiving payment provider callbacks."""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from commerce.api.dependencies import get_container
from commerce.api.schemas import WebhookAck
from commerce.wiring import Container

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/{provider}", response_model=WebhookAck)
async def receive_webhook(
    provider: str,
    request: Request,
    container: Container = Depends(get_container),
) -> WebhookAck:
    """Verify and reconcile one provider event.

    The signature is checked against the exact bytes received, so the body is
    read raw rather than through a schema.
    """
    body = await request.body()
    result = await run_in_threadpool(container.webhook_ingestion.handle, provider, body, request.headers)
    return WebhookAck(outcome=result.outcome, event_type=result.event_type)
