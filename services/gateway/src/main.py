"""
MangaRead Gateway API

FastAPI proxy in front of the upstream manga providers. Callers use
``/api/proxy/<provider>/<path>`` and never see upstream base URLs.
"""

import json
import logging
import sys
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .gateway import GatewayFailure, GatewayResult, InvalidRequestError, ProviderGateway

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

SERVICE_NAME = "MangaRead Gateway"
SERVICE_VERSION = "1.0.0"

# FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Rate-limited proxy for manga content and metadata providers",
    version=SERVICE_VERSION,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


class HealthResponse(BaseModel):
    """Response for health endpoint."""

    status: str
    providers: dict = Field(..., description="Provider name -> configured")
    page_server_in_window: int
    page_server_limit: int


# Gateway instance, created on startup
_gateway: Optional[ProviderGateway] = None


def get_gateway() -> ProviderGateway:
    global _gateway
    if _gateway is None:
        _gateway = ProviderGateway.from_env()
    return _gateway


@app.on_event("startup")
async def startup_event():
    """Load provider configuration on startup."""
    gateway = get_gateway()
    for name, configured in gateway.provider_status().items():
        if not configured:
            logger.warning(f"Provider {name} has no base URL configured")


@app.on_event("shutdown")
async def shutdown_event():
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None


def _raw_query(request: Request) -> str:
    # request.url is rebuilt from the decoded path; the scope keeps the query as sent
    return request.scope.get("query_string", b"").decode("latin-1")


def _to_response(result: GatewayResult) -> Response:
    if isinstance(result, GatewayFailure):
        return JSONResponse(result.to_body(), status_code=result.status)
    if result.data is None and result.status == 204:
        return Response(status_code=204)
    return JSONResponse(result.data, status_code=result.status)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(gateway: ProviderGateway = Depends(get_gateway)):
    """Provider configuration and page-server limiter usage."""
    providers = gateway.provider_status()
    return HealthResponse(
        status="healthy" if all(providers.values()) else "degraded",
        providers=providers,
        page_server_in_window=gateway.page_limiter.in_window,
        page_server_limit=gateway.page_limiter.limit,
    )


@app.get("/api/proxy/{provider}/{path:path}", tags=["Proxy"])
async def proxy_get(
    provider: str,
    path: str,
    request: Request,
    gateway: ProviderGateway = Depends(get_gateway),
):
    """
    Forward a GET to the named provider.

    The query string is passed through exactly as received.
    """
    result = await gateway.call(provider, "GET", path, _raw_query(request))
    return _to_response(result)


@app.post("/api/proxy/{provider}/{path:path}", tags=["Proxy"])
async def proxy_post(
    provider: str,
    path: str,
    request: Request,
    gateway: ProviderGateway = Depends(get_gateway),
):
    """Forward a POST with its JSON body to the named provider."""
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except json.JSONDecodeError:
        return _to_response(InvalidRequestError("Request body is not valid JSON").to_failure())

    result = await gateway.call(provider, "POST", path, _raw_query(request), body=body)
    return _to_response(result)


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
