"""Relay error classes.

Fragment codec errors live next to the codec in
``tagrelay.services.crypto.fragment_codec``.
"""


class RelayError(Exception):
    """Base exception for relay failures"""
    pass


class ConfigurationError(RelayError):
    """Raised at startup when required configuration is missing"""
    pass


class SecretUnavailable(RelayError):
    """Raised when no fresh shared secret can be provisioned"""
    pass


class UpstreamError(RelayError):
    """
    Raised when the upstream server cannot be reached.

    Args:
        message: Diagnostic message, recorded server-side only
        status_code: Status to surface to the caller
    """

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class AccountingFailure(RelayError):
    """Raised when a usage report cannot be delivered"""
    pass
