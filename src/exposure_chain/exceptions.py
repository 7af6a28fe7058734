"""Exposure-chain exception hierarchy.

All exceptions inherit from ExposureChainError so callers (report-processing
triggers) can catch everything raised by this package with one clause.

Only malformed input aborts a run. Store and transport failures raised while a
run is in progress are caught per batch group or per document and recorded in
the run's results instead of propagating.
"""

from __future__ import annotations


class ExposureChainError(Exception):
    """Base exception for all exposure-chain errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    code: str = "exposure_chain_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(ExposureChainError):
    """Malformed report or propagation input.

    Raised before any traversal begins, so no partial state exists.

    Attributes:
        field: The field that failed validation.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(ExposureChainError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g. "report", "notification").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(ExposureChainError):
    """Document store operation failed."""

    code: str = "storage_error"


class PushDeliveryError(ExposureChainError):
    """The push transport rejected or could not complete a whole request."""

    code: str = "push_delivery_error"


class ChainIntegrityError(ExposureChainError):
    """A stored notification's chain data is inconsistent.

    Attributes:
        notification_id: The offending notification.
    """

    code: str = "chain_integrity_error"

    def __init__(self, notification_id: str, message: str) -> None:
        self.notification_id = notification_id
        super().__init__(f"{notification_id}: {message}")


class BatcherStateError(ExposureChainError):
    """A batcher was used after it was committed or sent."""

    code: str = "batcher_state_error"


class ConfigurationError(ExposureChainError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class AuthorizationError(ExposureChainError):
    """Caller does not own the resource it tried to modify."""

    code: str = "authorization_error"
