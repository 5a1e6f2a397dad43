"""fulfillment-api entrypoint and HTTP route wiring."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from quip_fulfillment.application.services.document_service import QuipDocumentService
from quip_fulfillment.application.services.intent_dispatch_service import (
    IntentDispatchService,
)
from quip_fulfillment.config.settings import Settings, load_settings
from quip_fulfillment.infrastructure.http.fulfillment_router import build_fulfillment_router
from quip_fulfillment.infrastructure.logging import configure_logging
from quip_fulfillment.infrastructure.quip.client import QuipClient

FULFILLMENT_API_HOST = "0.0.0.0"
FULFILLMENT_API_PORT = 8000
logger = logging.getLogger(__name__)


def build_quip_client(settings: Settings) -> QuipClient:
    """Build the process-wide Quip client from runtime settings."""

    return QuipClient(
        endpoint=settings.quip_endpoint,
        access_token=settings.quip_access_token,
        timeout_seconds=settings.quip_timeout_seconds,
    )


def create_app(
    *,
    quip_client: QuipClient | None = None,
    dispatch_service: IntentDispatchService | None = None,
    webhook_shared_secret: str | None = None,
) -> FastAPI:
    """Create FastAPI app serving the fulfillment webhook."""

    owned_client: QuipClient | None = None
    if dispatch_service is None and quip_client is None:
        settings = load_settings()
        configure_logging(level=settings.log_level)
        if webhook_shared_secret is None:
            webhook_shared_secret = settings.webhook_shared_secret
        quip_client = owned_client = build_quip_client(settings)
        logger.info(
            "fulfillment_api_configured quip_base_url=%s",
            settings.quip_endpoint.base_url,
        )

    if dispatch_service is None:
        assert quip_client is not None
        dispatch_service = IntentDispatchService(
            document_service=QuipDocumentService(client=quip_client),
        )

    # Injected clients stay open; their owner closes them.
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if owned_client is not None:
            await owned_client.aclose()

    app = FastAPI(lifespan=lifespan)
    app.include_router(
        build_fulfillment_router(
            dispatch_service=dispatch_service,
            webhook_shared_secret=webhook_shared_secret,
        )
    )
    return app


def run_asgi_server(
    *,
    host: str = FULFILLMENT_API_HOST,
    port: int = FULFILLMENT_API_PORT,
) -> None:
    """Run fulfillment-api as a long-lived ASGI process using application factory mode."""

    uvicorn.run(
        "apps.fulfillment_api.main:create_app",
        host=host,
        port=port,
        factory=True,
    )


def main() -> None:
    """Run fulfillment-api runtime process."""

    run_asgi_server()


if __name__ == "__main__":
    main()
