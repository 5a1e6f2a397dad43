"""Shared-secret verification for the fulfillment webhook."""

from __future__ import annotations

import hmac

WEBHOOK_SECRET_HEADER = "x-webhook-secret"


class InvalidWebhookSecretError(PermissionError):
    """Raised when the webhook secret header is missing or does not match."""


def verify_webhook_secret(*, expected_secret: str | None, provided_secret: str | None) -> None:
    """Require the configured secret; a deployment without one accepts every caller."""

    if expected_secret is None:
        return
    if provided_secret is None or not provided_secret.strip():
        raise InvalidWebhookSecretError("missing webhook secret")
    if not hmac.compare_digest(provided_secret.strip().encode(), expected_secret.encode()):
        raise InvalidWebhookSecretError("invalid webhook secret")
