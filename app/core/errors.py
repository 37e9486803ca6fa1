"""Domain errors for connection requests, chat rooms, messages and notifications.

Services raise these; app.main maps them to HTTP responses. Validation errors
(self-connection, invalid state) are never retried. Partial-failure errors
(ProvisioningFailedError, DeliveryError raised after a committed decision)
carry the request id and committed status so the caller can resume the
remaining side effects without re-deciding.
"""

from uuid import UUID


class MarketplaceError(Exception):
    """Base class for all domain errors."""

    code = "marketplace_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SelfConnectionError(MarketplaceError):
    code = "self_connection"


class NotFoundError(MarketplaceError):
    """Entity does not resolve, or resolves outside the caller's permission scope."""

    code = "not_found"


class InvalidStateError(MarketplaceError):
    code = "invalid_state"


class PermissionDeniedError(MarketplaceError):
    code = "permission_denied"


class TransientStoreError(MarketplaceError):
    code = "store_unavailable"


class ProvisioningFailedError(MarketplaceError):
    """Room creation failed after bounded retries; the accept decision stays committed."""

    code = "provisioning_failed"

    def __init__(self, message: str, request_id: UUID | None = None, status: str | None = "accepted"):
        super().__init__(message)
        self.request_id = request_id
        self.status = status


class DeliveryError(MarketplaceError):
    """A message or notification insert failed; uncommitted input must be preserved."""

    code = "delivery_failed"

    def __init__(self, message: str, request_id: UUID | None = None, status: str | None = None):
        super().__init__(message)
        self.request_id = request_id
        self.status = status
