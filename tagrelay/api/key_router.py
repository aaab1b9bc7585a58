"""
Key distribution endpoint

Browsers fetch the current shared secret here and cache it until expiry.
"""
from fastapi import APIRouter, Depends, Response

from ..dependencies import get_secret_provisioner
from ..services.crypto import KeyDistributionResponse, SecretProvisioner

router = APIRouter(prefix="/api", tags=["keys"])


@router.get(
    "/get-key",
    response_model=KeyDistributionResponse,
    summary="Get the current shared secret",
    responses={503: {"description": "No secret available"}},
)
async def get_key(
    response: Response,
    provisioner: SecretProvisioner = Depends(get_secret_provisioner),
) -> KeyDistributionResponse:
    """
    Return the current secret and its absolute expiry.

    Responds 503 when no secret can be provisioned.
    """
    secret = await provisioner.get_secret()
    response.headers["Cache-Control"] = "no-store"
    return KeyDistributionResponse.from_secret(secret)
