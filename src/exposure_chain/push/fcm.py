"""Firebase Cloud Messaging transport (HTTP v1 API).

The v1 API accepts one token per request, so a multicast fans out into
concurrent requests bounded by a semaphore. Transient failures (network
errors, 429, 5xx) are retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from exposure_chain.config import Settings
from exposure_chain.exceptions import ConfigurationError, PushDeliveryError

from .base import (
    INVALID_TOKEN_CODE,
    UNREGISTERED_TOKEN_CODE,
    MulticastResponse,
    PushMessage,
    PushTransport,
    SendResponse,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_CODE = "messaging/unavailable"

# FCM v1 error status -> invalid-token code understood by the batcher.
_TOKEN_ERRORS = {
    "UNREGISTERED": UNREGISTERED_TOKEN_CODE,
    "NOT_FOUND": UNREGISTERED_TOKEN_CODE,
    "INVALID_ARGUMENT": INVALID_TOKEN_CODE,
}


class TransientFcmError(Exception):
    """Retryable FCM response (429 or 5xx)."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        super().__init__(f"FCM returned {status_code}: {body[:200]}")


def _log_retry(retry_state: RetryCallState) -> None:
    if retry_state.attempt_number > 1:
        logger.warning(
            "Retrying FCM send",
            extra={
                "attempt": retry_state.attempt_number,
                "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
            },
        )


fcm_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type(
        (
            httpx.ConnectError,
            httpx.TimeoutException,
            TransientFcmError,
        )
    ),
    before_sleep=_log_retry,
    reraise=True,
)


def build_fcm_message(message: PushMessage, token: str, channel_id: str) -> dict[str, Any]:
    """Render the v1 ``message`` object for one token."""
    return {
        "token": token,
        "data": {"type": message.type.value, **message.data},
        "android": {
            "priority": "high",
            "notification": {
                "channel_id": channel_id,
                "title_loc_key": message.title_loc_key,
                "body_loc_key": message.body_loc_key,
                "default_sound": True,
            },
        },
        "apns": {
            "payload": {
                "aps": {
                    "alert": {
                        "title-loc-key": message.title_loc_key,
                        "loc-key": message.body_loc_key,
                    },
                    "sound": "default",
                }
            }
        },
    }


def _error_code(response: httpx.Response) -> tuple[str, str]:
    """Extract (code, message) from an FCM error body."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"http/{response.status_code}", response.text[:200]
    status = error.get("status", "")
    for detail in error.get("details", []):
        if isinstance(detail, dict) and detail.get("errorCode"):
            status = detail["errorCode"]
            break
    code = _TOKEN_ERRORS.get(status, f"messaging/{status.lower() or response.status_code}")
    return code, str(error.get("message", ""))


class FcmTransport(PushTransport):
    """Push transport backed by the FCM HTTP v1 API.

    Example:
        ```python
        transport = FcmTransport.from_settings(settings)
        response = await transport.send_multicast(message)
        await transport.close()
        ```
    """

    def __init__(
        self,
        project_id: str,
        access_token: str,
        base_url: str = "https://fcm.googleapis.com",
        channel_id: str = "exposure_notifications",
        timeout_seconds: float = 10.0,
        max_concurrent: int = 20,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._channel_id = channel_id
        self._timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> FcmTransport:
        if not settings.fcm_project_id or not settings.fcm_access_token:
            raise ConfigurationError("FCM project id and access token are required")
        return cls(
            project_id=settings.fcm_project_id,
            access_token=settings.fcm_access_token,
            base_url=settings.fcm_base_url,
            channel_id=settings.push_channel_id,
            timeout_seconds=settings.push_timeout_seconds,
            max_concurrent=settings.push_max_concurrent,
        )

    @property
    def send_url(self) -> str:
        return f"{self._base_url}/v1/projects/{self._project_id}/messages:send"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @fcm_retry
    async def _post(self, body: dict[str, Any]) -> httpx.Response:
        response = await self._get_client().post(
            self.send_url,
            json={"message": body},
            headers={"Authorization": f"Bearer {self._access_token}"},
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFcmError(response.status_code, response.text)
        return response

    async def _send_one(self, message: PushMessage, token: str) -> SendResponse:
        body = build_fcm_message(message, token, self._channel_id)
        async with self._semaphore:
            try:
                response = await self._post(body)
            except (httpx.RequestError, TransientFcmError) as e:
                return SendResponse(success=False, error_code=UNAVAILABLE_CODE, error_message=str(e))

        if response.is_success:
            return SendResponse(success=True, message_id=response.json().get("name"))

        code, detail = _error_code(response)
        return SendResponse(success=False, error_code=code, error_message=detail)

    async def send_multicast(self, message: PushMessage) -> MulticastResponse:
        """Send ``message`` to each of its tokens.

        Raises:
            PushDeliveryError: If no token could be attempted because FCM was
                unreachable for all of them.
        """
        if not message.tokens:
            return MulticastResponse()

        responses = await asyncio.gather(*(self._send_one(message, t) for t in message.tokens))
        if all(r.error_code == UNAVAILABLE_CODE for r in responses):
            raise PushDeliveryError(
                f"FCM unreachable for all {len(responses)} tokens: {responses[0].error_message}"
            )

        result = MulticastResponse(responses=list(responses))
        logger.debug(
            "FCM multicast %s: %d success, %d failed",
            message.type.value,
            result.success_count,
            result.failure_count,
        )
        return result
