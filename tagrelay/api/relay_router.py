"""
Relay ingress

``<RELAY_PATH_PREFIX>/{token}`` accepts any method; the token is the
encrypted path and query of the original tag-manager request.
"""
from fastapi import APIRouter, Depends, Request

from ..config import get_settings
from ..dependencies import get_relay_pipeline
from ..services.relay import InboundRequest, RelayPipeline

RELAY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

router = APIRouter(prefix=get_settings().RELAY_PATH_PREFIX.rstrip("/"), tags=["relay"])


@router.api_route("/{token}", methods=RELAY_METHODS, include_in_schema=False)
async def relay(
    token: str,
    request: Request,
    pipeline: RelayPipeline = Depends(get_relay_pipeline),
):
    inbound = await InboundRequest.from_request(request, token)
    return await pipeline.relay(inbound)
