"""
Gateway configuration.

Provider base URLs come from the environment and are read once at startup.
Everything else is a module-level default that can be overridden the same way.
"""

import os
from enum import Enum
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

# Upstream defaults
DEFAULT_TIMEOUT_SECONDS = 30.0
USER_AGENT = "MangaRead-Gateway/1.0"

# Page-server quota published by the primary-content provider
PAGE_SERVER_PATH = "at-home/server"
PAGE_SERVER_LIMIT = 40
PAGE_SERVER_WINDOW_SECONDS = 60.0
RATE_LIMIT_BUFFER_SECONDS = 0.05


class Provider(str, Enum):
    """Closed set of upstream providers the gateway may talk to."""

    PRIMARY_CONTENT = "primary-content"
    METADATA_ART = "metadata-art"

    @classmethod
    def resolve(cls, name: str) -> Optional["Provider"]:
        """Map a logical name or route alias to a provider, None if unknown."""
        if not name:
            return None
        key = name.strip().lower()
        for provider in cls:
            if provider.value == key:
                return provider
        return PROVIDER_ALIASES.get(key)


PROVIDER_ALIASES: Dict[str, Provider] = {
    "mangadex": Provider.PRIMARY_CONTENT,
    "kitsu": Provider.METADATA_ART,
}

BASE_URL_ENV = {
    Provider.PRIMARY_CONTENT: "MANGADEX_API_URL",
    Provider.METADATA_ART: "KITSU_API_URL",
}

STATIC_HEADERS = {
    Provider.PRIMARY_CONTENT: {},
    Provider.METADATA_ART: {"Accept": "application/vnd.api+json"},
}


class ProviderConfig(BaseModel):
    """Resolved upstream binding for one provider."""

    model_config = ConfigDict(frozen=True)

    name: Provider
    base_url: Optional[str] = Field(None, description="Upstream base URL")
    static_headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)


class GatewaySettings(BaseModel):
    """Tunables for the gateway and its page-server limiter."""

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    page_server_limit: int = Field(PAGE_SERVER_LIMIT, ge=1)
    page_server_window_seconds: float = Field(PAGE_SERVER_WINDOW_SECONDS, gt=0)
    page_server_max_wait_seconds: Optional[float] = Field(None, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewaySettings":
        env = os.environ if environ is None else environ
        values = {}
        if env.get("GATEWAY_TIMEOUT_SECONDS"):
            values["timeout_seconds"] = float(env["GATEWAY_TIMEOUT_SECONDS"])
        if env.get("PAGE_SERVER_LIMIT"):
            values["page_server_limit"] = int(env["PAGE_SERVER_LIMIT"])
        if env.get("PAGE_SERVER_WINDOW_SECONDS"):
            values["page_server_window_seconds"] = float(env["PAGE_SERVER_WINDOW_SECONDS"])
        if env.get("PAGE_SERVER_MAX_WAIT_SECONDS"):
            values["page_server_max_wait_seconds"] = float(
                env["PAGE_SERVER_MAX_WAIT_SECONDS"]
            )
        return cls(**values)


def load_provider_configs(
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[Provider, ProviderConfig]:
    """
    Build the provider table from environment variables.

    Providers without a base URL are still present, unconfigured, so a call
    to them fails with a configuration error instead of an unknown-name one.
    """
    env = os.environ if environ is None else environ
    configs = {}
    for provider in Provider:
        base_url = (env.get(BASE_URL_ENV[provider]) or "").strip() or None
        configs[provider] = ProviderConfig(
            name=provider,
            base_url=base_url.rstrip("/") if base_url else None,
            static_headers=dict(STATIC_HEADERS[provider]),
        )
    return configs
