"""Pydantic models for Dialogflow v2 fulfillment webhook payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DialogflowModel(BaseModel):
    """Base model accepting camelCase wire names and ignoring unknown fields."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FulfillmentIntent(DialogflowModel):
    name: str | None = None
    display_name: str = Field(alias="displayName", min_length=1)


class FulfillmentQueryResult(DialogflowModel):
    query_text: str | None = Field(default=None, alias="queryText")
    parameters: dict[str, Any] = Field(default_factory=dict)
    intent: FulfillmentIntent
    language_code: str | None = Field(default=None, alias="languageCode")


class FulfillmentWebhookRequest(DialogflowModel):
    """Inbound fulfillment request carrying the matched intent and its parameters."""

    response_id: str | None = Field(default=None, alias="responseId")
    session: str | None = None
    query_result: FulfillmentQueryResult = Field(alias="queryResult")

    @property
    def intent_name(self) -> str:
        return self.query_result.intent.display_name

    def parameter(self, name: str) -> str | None:
        """Return a string parameter, or None when absent or blank."""

        value = self.query_result.parameters.get(name)
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class FulfillmentText(DialogflowModel):
    text: list[str]


class FulfillmentMessage(DialogflowModel):
    text: FulfillmentText


class FulfillmentWebhookResponse(DialogflowModel):
    """Reply sent back to Dialogflow."""

    fulfillment_text: str = Field(alias="fulfillmentText")
    fulfillment_messages: list[FulfillmentMessage] = Field(
        default_factory=list,
        alias="fulfillmentMessages",
    )

    @classmethod
    def from_text(cls, text: str) -> FulfillmentWebhookResponse:
        return cls(
            fulfillment_text=text,
            fulfillment_messages=[FulfillmentMessage(text=FulfillmentText(text=[text]))],
        )
