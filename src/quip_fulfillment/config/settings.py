"""Runtime settings loaded from environment variables."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

NonEmptyStr = Annotated[str, Field(min_length=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]

QuipEnvironment = Literal["production", "qa"]


@dataclass(frozen=True)
class QuipEndpoint:
    """Scheme/host/port of the Quip platform API."""

    scheme: str
    host: str
    port: int

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    def api_url(self, path: str) -> str:
        """Return absolute URL for a versioned API path such as `threads/search`."""

        return f"{self.base_url}/1/{path}"


PRODUCTION_ENDPOINT = QuipEndpoint(scheme="https", host="platform.quip.com", port=443)
QA_ENDPOINT = QuipEndpoint(scheme="http", host="platform.docker.qa", port=10000)

_ENDPOINTS: dict[str, QuipEndpoint] = {
    "production": PRODUCTION_ENDPOINT,
    "qa": QA_ENDPOINT,
}


def resolve_quip_endpoint(environment: QuipEnvironment) -> QuipEndpoint:
    """Map an environment name to its fixed Quip endpoint."""

    return _ENDPOINTS[environment]


class Settings(BaseSettings):
    """Environment-driven application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    quip_access_token: NonEmptyStr = Field(validation_alias="QUIP_ACCESS_TOKEN")
    quip_environment: QuipEnvironment = Field(
        default="production",
        validation_alias="QUIP_ENVIRONMENT",
    )
    quip_timeout_seconds: NonNegativeFloat = Field(
        default=30.0,
        validation_alias="QUIP_TIMEOUT_SECONDS",
    )
    webhook_shared_secret: NonEmptyStr | None = Field(
        default=None,
        validation_alias="WEBHOOK_SHARED_SECRET",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @property
    def quip_endpoint(self) -> QuipEndpoint:
        return resolve_quip_endpoint(self.quip_environment)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache application settings."""

    return Settings()  # type: ignore[call-arg]
