"""Exception hierarchy for queuescaler.

Error taxonomy:
- ConfigurationMissingError: a required unit/queue/credential value is absent.
  The affected cycle does nothing.
- AuthRejectedError: credential acquisition failed. Fatal for the backend
  kind it belongs to, for the current cycle only.
- TransportFailureError: network error or timeout talking to a management
  endpoint. Isolated to one unit.
- UnexpectedStatusError: non-success response from a management endpoint.
  Isolated to one unit.
"""


class ScalerError(Exception):
    """Base exception for all queuescaler errors."""

    pass


class ConfigurationMissingError(ScalerError):
    """Required configuration value is absent."""

    pass


class QueueMonitorError(ScalerError):
    """Failed to read queue depth."""

    pass


class BackendError(ScalerError):
    """Base exception for backend actuation and authentication failures."""

    kind = "backend_error"


class AuthRejectedError(BackendError):
    """Identity provider or management endpoint rejected the credential."""

    kind = "auth_rejected"


class TransportFailureError(BackendError):
    """Network failure or timeout while talking to a cloud endpoint."""

    kind = "transport_failure"


class UnexpectedStatusError(BackendError):
    """Management endpoint answered with a non-success status."""

    kind = "unexpected_status"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "AuthRejectedError",
    "BackendError",
    "ConfigurationMissingError",
    "QueueMonitorError",
    "ScalerError",
    "TransportFailureError",
    "UnexpectedStatusError",
]
