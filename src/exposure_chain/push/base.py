"""Push transport interface.

Transports deliver one localizable payload to many device tokens and report
success or failure per token, in token order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from exposure_chain.models import NotificationType

INVALID_TOKEN_CODE = "messaging/invalid-registration-token"
UNREGISTERED_TOKEN_CODE = "messaging/registration-token-not-registered"
INVALID_TOKEN_CODES = frozenset({INVALID_TOKEN_CODE, UNREGISTERED_TOKEN_CODE})

LOC_KEYS: dict[NotificationType, tuple[str, str]] = {
    NotificationType.EXPOSURE: ("notification_exposure_title", "notification_exposure_body"),
    NotificationType.UPDATE: ("notification_update_title", "notification_update_body"),
    NotificationType.REPORT_DELETED: (
        "notification_report_deleted_title",
        "notification_report_deleted_body",
    ),
}


class PushMessage(BaseModel):
    """A multicast: one payload, many tokens."""

    model_config = ConfigDict(extra="forbid")

    tokens: list[str]
    type: NotificationType
    title_loc_key: str
    body_loc_key: str
    data: dict[str, str] = Field(default_factory=dict)


class SendResponse(BaseModel):
    """Outcome for one token."""

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def is_invalid_token(self) -> bool:
        return not self.success and self.error_code in INVALID_TOKEN_CODES


class MulticastResponse(BaseModel):
    responses: list[SendResponse] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.responses if not r.success)


class PushTransport(ABC):
    """Sends multicasts.

    Implementations raise ``PushDeliveryError`` only when the whole request
    fails; per-token failures are reported in the response.
    """

    max_tokens_per_request: int = 500

    @abstractmethod
    async def send_multicast(self, message: PushMessage) -> MulticastResponse:
        """Send ``message`` to every token in it."""

    async def close(self) -> None:  # noqa: B027
        """Release transport resources."""
