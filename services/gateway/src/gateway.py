"""
Provider Gateway

Single egress point for calls to the upstream providers. Callers name a
provider and a relative path; the gateway resolves the base URL, encodes the
query, waits on the page-server limiter where needed, and turns every
failure into a GatewayFailure so no transport exception escapes.
"""

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import httpx
from pydantic import BaseModel, Field

from .config import (
    PAGE_SERVER_PATH,
    USER_AGENT,
    GatewaySettings,
    Provider,
    ProviderConfig,
    load_provider_configs,
)
from .query import encode_query
from .ratelimit import RateLimiter, RateLimitTimeout

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST")

QueryParams = Union[str, Mapping[str, Any], None]


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    INVALID_REQUEST = "invalid_request"
    UPSTREAM_REJECTION = "upstream_rejection"
    NETWORK_FAILURE = "network_failure"
    RATE_LIMIT_TIMEOUT = "rate_limit_timeout"


# Exceptions raised inside the gateway; all are converted at the call boundary
class GatewayError(Exception):
    kind = ErrorKind.UPSTREAM_REJECTION
    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.status_text = status_text
        self.details = details

    @property
    def retryable(self) -> bool:
        return self.kind in (
            ErrorKind.UPSTREAM_REJECTION,
            ErrorKind.NETWORK_FAILURE,
            ErrorKind.RATE_LIMIT_TIMEOUT,
        )

    def to_failure(self) -> "GatewayFailure":
        return GatewayFailure(
            status=self.status_code,
            kind=self.kind,
            message=self.message,
            status_text=self.status_text,
            details=self.details,
        )


class ConfigurationError(GatewayError):
    kind = ErrorKind.CONFIGURATION
    status_code = 500


class InvalidRequestError(GatewayError):
    kind = ErrorKind.INVALID_REQUEST
    status_code = 400


class UpstreamRejection(GatewayError):
    kind = ErrorKind.UPSTREAM_REJECTION


class NetworkFailure(GatewayError):
    kind = ErrorKind.NETWORK_FAILURE
    status_code = 502


class RateLimitWaitExceeded(GatewayError):
    kind = ErrorKind.RATE_LIMIT_TIMEOUT
    status_code = 503


# Result models handed back to callers
class GatewayResponse(BaseModel):
    """Successful upstream call."""

    status: int = Field(..., description="Upstream status code")
    data: Any = Field(None, description="Decoded JSON body")

    @property
    def ok(self) -> bool:
        return True


class GatewayFailure(BaseModel):
    """Normalized failure of any kind."""

    error: bool = True
    status: int = Field(..., description="HTTP-equivalent status code")
    kind: ErrorKind
    message: str
    status_text: Optional[str] = Field(None, description="Upstream reason phrase")
    details: Optional[str] = Field(None, description="Raw upstream body or cause")

    @property
    def ok(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        return self.kind not in (ErrorKind.CONFIGURATION, ErrorKind.INVALID_REQUEST)

    def to_body(self) -> Dict[str, str]:
        """Body used by the HTTP proxy surface."""
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


GatewayResult = Union[GatewayResponse, GatewayFailure]


def _normalize_path(path: str) -> str:
    path = (path or "").lstrip("/")
    if "://" in path or "?" in path or "#" in path:
        raise InvalidRequestError(f"Malformed path: {path}")
    if any(segment == ".." for segment in path.split("/")):
        raise InvalidRequestError(f"Malformed path: {path}")
    return path


class ProviderGateway:
    """
    Resolves provider names to upstream URLs and forwards calls.

    The gateway owns the page-server rate limiter and, unless one is passed
    in, its own httpx.AsyncClient.
    """

    def __init__(
        self,
        providers: Optional[Mapping[Provider, ProviderConfig]] = None,
        settings: Optional[GatewaySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        page_limiter: Optional[RateLimiter] = None,
    ):
        self.providers: Dict[Provider, ProviderConfig] = dict(
            providers if providers is not None else load_provider_configs()
        )
        self.settings = settings or GatewaySettings()
        self.page_limiter = page_limiter or RateLimiter(
            limit=self.settings.page_server_limit,
            window_seconds=self.settings.page_server_window_seconds,
            max_wait_seconds=self.settings.page_server_max_wait_seconds,
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.settings.timeout_seconds,
            headers={"User-Agent": USER_AGENT},
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProviderGateway":
        return cls(
            providers=load_provider_configs(environ),
            settings=GatewaySettings.from_env(environ),
        )

    async def __aenter__(self) -> "ProviderGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _resolve(self, provider_name: str) -> Tuple[Provider, ProviderConfig]:
        provider = Provider.resolve(provider_name)
        if provider is None:
            raise InvalidRequestError("Invalid API name")

        config = self.providers.get(provider)
        if config is None or not config.is_configured:
            raise ConfigurationError(f"Base URL for {provider_name} not configured")
        return provider, config

    def build_url(self, config: ProviderConfig, path: str, query_string: str) -> str:
        url = f"{config.base_url}/{path}"
        if query_string:
            url = f"{url}?{query_string}"
        return url

    def is_rate_limited(self, provider: Provider, path: str) -> bool:
        return provider is Provider.PRIMARY_CONTENT and path.startswith(PAGE_SERVER_PATH)

    async def call(
        self,
        provider_name: str,
        method: str = "GET",
        path: str = "",
        query_params: QueryParams = None,
        body: Any = None,
    ) -> GatewayResult:
        """
        Forward a call to an upstream provider.

        Args:
            provider_name: Logical provider name or route alias
            method: GET or POST
            path: Path relative to the provider's base URL
            query_params: Parameter mapping, or an already-encoded query string
            body: JSON-serializable body, sent for POST only

        Returns:
            GatewayResponse on upstream success, GatewayFailure otherwise
        """
        try:
            return await self._call(provider_name, method, path, query_params, body)
        except GatewayError as e:
            if e.retryable:
                logger.warning(f"Gateway call to {provider_name}/{path} failed: {e.message}")
            else:
                logger.error(f"Gateway call to {provider_name}/{path} rejected: {e.message}")
            return e.to_failure()

    async def _call(
        self,
        provider_name: str,
        method: str,
        path: str,
        query_params: QueryParams,
        body: Any,
    ) -> GatewayResponse:
        verb = (method or "").upper()
        if verb not in SUPPORTED_METHODS:
            raise InvalidRequestError(f"Unsupported method: {method}")

        provider, config = self._resolve(provider_name)
        path = _normalize_path(path)

        if isinstance(query_params, str):
            query_string = query_params.lstrip("?")
        else:
            query_string = encode_query(query_params)

        url = self.build_url(config, path, query_string)
        headers = dict(config.static_headers)
        headers["Content-Type"] = "application/json"

        if self.is_rate_limited(provider, path):
            try:
                await self.page_limiter.acquire()
            except RateLimitTimeout as e:
                raise RateLimitWaitExceeded(
                    "Rate limit wait exceeded", details=str(e)
                ) from e

        logger.info(f"Proxy {verb} {provider.value}/{path}")
        logger.debug(f"Proxy {verb} fetching URL: {url}")

        try:
            if verb == "POST":
                response = await self._client.post(url, headers=headers, json=body)
            else:
                response = await self._client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkFailure(
                f"Upstream {provider.value} timed out", status_code=504, details=str(e)
            ) from e
        except httpx.TransportError as e:
            raise NetworkFailure(
                f"Failed to reach upstream {provider.value}", details=str(e)
            ) from e

        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> GatewayResponse:
        if not response.is_success:
            error_text = response.text
            logger.error(f"Proxy error response ({response.status_code}): {error_text[:500]}")
            raise UpstreamRejection(
                f"API request failed: {response.reason_phrase}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                details=error_text,
            )

        if not response.content:
            return GatewayResponse(status=response.status_code, data=None)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamRejection(
                "Upstream returned a malformed JSON body",
                status_code=502,
                status_text=response.reason_phrase,
                details=response.text,
            ) from e

        return GatewayResponse(status=response.status_code, data=data)

    def provider_status(self) -> Dict[str, bool]:
        return {
            provider.value: config.is_configured
            for provider, config in self.providers.items()
        }
