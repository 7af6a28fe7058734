"""Push delivery transports."""

from .base import (
    INVALID_TOKEN_CODES,
    LOC_KEYS,
    MulticastResponse,
    PushMessage,
    PushTransport,
    SendResponse,
)
from .fcm import FcmTransport, build_fcm_message

__all__ = [
    "INVALID_TOKEN_CODES",
    "LOC_KEYS",
    "FcmTransport",
    "MulticastResponse",
    "PushMessage",
    "PushTransport",
    "SendResponse",
    "build_fcm_message",
]
