"""Telegram Bot API channel via httpx."""

from typing import Any, Dict, Optional

import httpx

from herald.exceptions import DeliveryError
from herald.utils.logger import log_debug


class TelegramChannel:
    """Sends HTML messages to Telegram chats with ``sendMessage``."""

    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout_seconds: float = 10.0,
        parse_mode: Optional[str] = "HTML",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._bot_token = bot_token
        self._base_url = f"{api_base_url.rstrip('/')}/bot{bot_token}"
        self._timeout = timeout_seconds
        self._parse_mode = parse_mode
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._bot_token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def send(self, destination: str, text: str) -> None:
        """Send ``text`` to chat ``destination``.

        Raises:
            DeliveryError: On transport errors, non-2xx responses or ``ok: false``
        """
        payload: Dict[str, Any] = {
            "chat_id": destination,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self._parse_mode:
            payload["parse_mode"] = self._parse_mode

        try:
            response = await self._get_client().post("/sendMessage", json=payload)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Telegram request failed: {e}", destination=destination) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not body.get("ok", False):
            description = body.get("description") or response.text[:200]
            raise DeliveryError(
                f"Telegram rejected message ({response.status_code}): {description}",
                destination=destination,
            )
        log_debug(f"Telegram message delivered to {destination}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
