"""
MangaRead Gateway

Rate-limited, credential-hiding proxy in front of the manga content and
metadata providers.
"""

from .config import GatewaySettings, Provider, ProviderConfig, load_provider_configs
from .gateway import (
    ConfigurationError,
    ErrorKind,
    GatewayError,
    GatewayFailure,
    GatewayResponse,
    GatewayResult,
    InvalidRequestError,
    NetworkFailure,
    ProviderGateway,
    RateLimitWaitExceeded,
    UpstreamRejection,
)
from .query import COMMA_JOINED_PARAMS, encode_query
from .ratelimit import RateLimiter, RateLimitTimeout

__all__ = [
    "encode_query",
    "COMMA_JOINED_PARAMS",
    "RateLimiter",
    "RateLimitTimeout",
    "ProviderGateway",
    "GatewayResponse",
    "GatewayFailure",
    "GatewayResult",
    "GatewayError",
    "ConfigurationError",
    "InvalidRequestError",
    "UpstreamRejection",
    "NetworkFailure",
    "RateLimitWaitExceeded",
    "ErrorKind",
    "Provider",
    "ProviderConfig",
    "GatewaySettings",
    "load_provider_configs",
]
