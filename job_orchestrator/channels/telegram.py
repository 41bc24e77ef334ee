import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..errors import ChannelDeliveryError
from .base import Channel


class TelegramRateLimited(ChannelDeliveryError):
    def __init__(self, retry_after: float):
        super().__init__(f"Telegram rate limit, retry after {retry_after}s")
        self.retry_after = retry_after


def _wait_retry_after(retry_state) -> float:
    exc = retry_state.outcome.exception()
    return float(getattr(exc, "retry_after", 1.0))


class TelegramChannel(Channel):
    """Sends messages through the Telegram Bot API (sendMessage).

    Only rate-limit responses are retried here, honouring the server's retry_after.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        token: str,
        base_url: str = "https://api.telegram.org",
        parse_mode: Optional[str] = "Markdown",
        max_attempts: int = 3,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.http = http
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.parse_mode = parse_mode
        self.max_attempts = max(1, int(max_attempts))
        self.timeout = timeout
        self.logger = logger or logging.getLogger("telegram_channel")

    @property
    def url(self) -> str:
        return f"{self.base_url}/bot{self.token}/sendMessage"

    async def send(self, target: str, text: str) -> None:
        body: Dict[str, Any] = {
            "chat_id": target,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self.parse_mode:
            body["parse_mode"] = self.parse_mode
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=_wait_retry_after,
            retry=retry_if_exception_type(TelegramRateLimited),
            reraise=True,
        ):
            with attempt:
                await self._send_once(target, body)

    async def _send_once(self, target: str, body: Dict[str, Any]) -> None:
        try:
            resp = await self.http.post(self.url, json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            self.logger.error("Telegram send error for chat_id=%s: %s", target, e)
            raise ChannelDeliveryError(f"Telegram send error: {e}") from e
        if resp.status_code == 429:
            retry_after = _retry_after(resp)
            self.logger.warning("Telegram rate limit for chat_id=%s, retrying in %ss", target, retry_after)
            raise TelegramRateLimited(retry_after)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if not resp.is_success or not data.get("ok"):
            error_msg = data.get("description") or resp.text or "Unknown error"
            self.logger.error("Telegram send failed for chat_id=%s: %s", target, error_msg)
            raise ChannelDeliveryError(f"Failed to send message: {error_msg}")


def _retry_after(resp: httpx.Response) -> float:
    try:
        return float(resp.json().get("parameters", {}).get("retry_after", 1))
    except (ValueError, TypeError, AttributeError):
        return 1.0
