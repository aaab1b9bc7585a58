"""
Holder for the current shared secret
"""

import logging
from typing import Optional

from .secret_models import Secret

logger = logging.getLogger(__name__)


class SecretStore:
    """
    Single-slot store for the current secret.

    The slot holds an immutable ``Secret`` snapshot that is swapped as a
    whole, so readers see either the old secret, the new one, or nothing.
    """

    def __init__(self, secret: Optional[Secret] = None):
        self._current: Optional[Secret] = secret

    def current(self) -> Optional[Secret]:
        """Get the stored secret, expired or not"""
        return self._current

    def fresh(self) -> Optional[Secret]:
        """
        Get the stored secret if it has not expired

        Returns:
            Secret if present and ``now < expires_at``, None otherwise
        """
        secret = self._current
        if secret is None or secret.is_expired:
            return None
        return secret

    def replace(self, secret: Secret) -> None:
        self._current = secret
        logger.debug(f"Stored new secret, expires at {secret.expires_at.isoformat()}")

    def clear(self) -> None:
        self._current = None
        logger.debug("Cleared secret")

    def __bool__(self) -> bool:
        return self.fresh() is not None
