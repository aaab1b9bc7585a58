"""
Shared-secret cryptography for the relay

- Fragment token encoding/decoding (AES-GCM)
- Secret store and provisioning from the key-issuing service
"""

from .fragment_codec import (
    FragmentCodec,
    FragmentError,
    FragmentFormatError,
    AuthenticationFailure,
)
from .secret_models import (
    Secret,
    KeyIssuanceResponse,
    KeyDistributionResponse,
)
from .secret_store import SecretStore
from .secret_provisioner import SecretProvisioner

__all__ = [
    "FragmentCodec",
    "FragmentError",
    "FragmentFormatError",
    "AuthenticationFailure",
    "Secret",
    "KeyIssuanceResponse",
    "KeyDistributionResponse",
    "SecretStore",
    "SecretProvisioner",
]
