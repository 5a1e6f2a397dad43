"""Route fulfillment intents to document service operations and build reply text."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping

from quip_fulfillment.application.dto.fulfillment_models import FulfillmentWebhookRequest
from quip_fulfillment.application.services.document_service import (
    DOCUMENT_NOT_FOUND_MESSAGE,
    NO_RESULTS_MESSAGE,
    DocumentOutcome,
    QuipDocumentService,
)

logger = logging.getLogger(__name__)

GET_CONTENTS_INTENT = "getQuipContents"
APPEND_CONTENT_INTENT = "appendToQuipDocument"

UNKNOWN_INTENT_REPLY = "Sorry, I can't help with that yet."
MISSING_TITLE_REPLY = "Which document should I look for?"
MISSING_CONTENT_REPLY = "What should I add to the document?"
SERVICE_UNAVAILABLE_REPLY = "Sorry, I couldn't reach Quip right now. Please try again later."

IntentHandler = Callable[[FulfillmentWebhookRequest], Awaitable[str]]


class IntentDispatchService:
    """Resolve an intent name to its handler and return the reply text."""

    def __init__(
        self,
        *,
        document_service: QuipDocumentService,
        extra_handlers: Mapping[str, IntentHandler] | None = None,
    ) -> None:
        self._document_service = document_service
        self._handlers: dict[str, IntentHandler] = {
            GET_CONTENTS_INTENT: self._get_contents,
            APPEND_CONTENT_INTENT: self._append_content,
        }
        if extra_handlers:
            self._handlers.update(extra_handlers)

    @property
    def intent_names(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, request: FulfillmentWebhookRequest) -> str:
        handler = self._handlers.get(request.intent_name)
        if handler is None:
            logger.info("intent_unhandled intent=%s", request.intent_name)
            return UNKNOWN_INTENT_REPLY
        logger.info("intent_dispatched intent=%s session=%s", request.intent_name, request.session)
        return await handler(request)

    async def _get_contents(self, request: FulfillmentWebhookRequest) -> str:
        title = request.parameter("title")
        if title is None:
            return MISSING_TITLE_REPLY

        result = await self._document_service.get_contents_by_title(title)
        if result.outcome is DocumentOutcome.OK:
            return result.text
        if result.outcome is DocumentOutcome.NOT_FOUND:
            return result.message or DOCUMENT_NOT_FOUND_MESSAGE
        return SERVICE_UNAVAILABLE_REPLY

    async def _append_content(self, request: FulfillmentWebhookRequest) -> str:
        title = request.parameter("title")
        if title is None:
            return MISSING_TITLE_REPLY
        content = request.parameter("content")
        if content is None:
            return MISSING_CONTENT_REPLY

        result = await self._document_service.find_and_edit_document(title, content)
        if result.outcome is DocumentOutcome.OK:
            return f"Added your note to {title}."
        if result.outcome is DocumentOutcome.NOT_FOUND:
            return result.message or NO_RESULTS_MESSAGE
        return SERVICE_UNAVAILABLE_REPLY
