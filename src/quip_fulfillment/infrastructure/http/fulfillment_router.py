"""FastAPI router for the Dialogflow fulfillment webhook."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from quip_fulfillment.application.dto.fulfillment_models import (
    FulfillmentWebhookRequest,
    FulfillmentWebhookResponse,
)
from quip_fulfillment.application.services.intent_dispatch_service import (
    IntentDispatchService,
)
from quip_fulfillment.infrastructure.http.webhook_auth import (
    WEBHOOK_SECRET_HEADER,
    InvalidWebhookSecretError,
    verify_webhook_secret,
)

logger = logging.getLogger(__name__)


def build_fulfillment_router(
    *,
    dispatch_service: IntentDispatchService,
    webhook_shared_secret: str | None = None,
) -> APIRouter:
    """Build router exposing the fulfillment callback endpoint."""

    router = APIRouter(tags=["fulfillment"])

    @router.post("/fulfillment", response_model=FulfillmentWebhookResponse)
    async def fulfillment(request: Request) -> FulfillmentWebhookResponse:
        try:
            verify_webhook_secret(
                expected_secret=webhook_shared_secret,
                provided_secret=request.headers.get(WEBHOOK_SECRET_HEADER),
            )
        except InvalidWebhookSecretError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc

        raw_body = await request.body()
        try:
            payload = FulfillmentWebhookRequest.model_validate_json(raw_body)
        except ValidationError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error

        logger.info(
            "fulfillment_received intent=%s response_id=%s",
            payload.intent_name,
            payload.response_id,
        )
        reply = await dispatch_service.dispatch(payload)
        return FulfillmentWebhookResponse.from_text(reply)

    @router.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return router
