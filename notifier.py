"""Telegram fan-out for alerts.

Sends go to every recipient independently: one recipient failing (blocked bot, bad
chat id, network) is logged and the rest still receive the message.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import httpx

from models import DeliveryReceipt

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """Telegram answered but refused the request."""


@dataclass(frozen=True)
class Recipient:
    chat_id: str
    symbols: Optional[frozenset] = None  # None means every symbol
    thread_id: Optional[int] = None

    def wants(self, symbol: Optional[str]) -> bool:
        return symbol is None or self.symbols is None or symbol in self.symbols


class RecipientDirectory:
    """Read-only recipient set with optional per-recipient symbol preferences."""

    def __init__(self, recipients: Iterable[Recipient] = ()):
        self._recipients: List[Recipient] = list(recipients)

    @classmethod
    def from_settings(cls, settings) -> "RecipientDirectory":
        prefs: Dict[str, List[str]] = settings.telegram_preferences or {}
        recipients = []
        for chat_id in settings.chat_id_list:
            thread_id = None
            if settings.telegram_target_group_id and chat_id == settings.telegram_target_group_id:
                thread_id = settings.telegram_thread_id
                if thread_id is None:
                    logger.warning("Target group %s configured without a thread id", chat_id)
            wanted = prefs.get(chat_id)
            symbols = frozenset(s.upper() for s in wanted) if wanted else None
            recipients.append(Recipient(chat_id=chat_id, symbols=symbols, thread_id=thread_id))
        return cls(recipients)

    def recipients(self, symbol: Optional[str] = None) -> List[Recipient]:
        return [r for r in self._recipients if r.wants(symbol)]

    def __len__(self) -> int:
        return len(self._recipients)


class NotificationChannel(Protocol):
    async def send(self, text: str, recipients: Sequence[Recipient]) -> List[DeliveryReceipt]:
        ...

    async def edit(self, receipt: DeliveryReceipt, text: str) -> bool:
        ...

    async def aclose(self) -> None:
        ...


class TelegramChannel:
    def __init__(self, token: Optional[str], api_url: str = "https://api.telegram.org", timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.token) and self.token != "your_telegram_bot_token_here"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _call(self, method: str, payload: Dict) -> Dict:
        url = f"{self.api_url}/bot{self.token}/{method}"
        r = await self._get_client().post(url, json=payload)
        try:
            data = r.json()
        except ValueError:
            r.raise_for_status()
            raise DeliveryError(f"{method}: non-JSON response ({r.status_code})")
        if not isinstance(data, dict):
            raise DeliveryError(f"{method}: unexpected response ({r.status_code})")
        if not data.get("ok"):
            raise DeliveryError(f"{method}: {r.status_code} {data.get('description', 'unknown error')}")
        return data.get("result") or {}

    async def send(self, text: str, recipients: Sequence[Recipient]) -> List[DeliveryReceipt]:
        if not self.configured:
            logger.warning("Telegram credentials not set; message not sent")
            return []
        if not recipients:
            logger.warning("No Telegram recipients configured; message not sent")
            return []

        receipts = []
        for recipient in recipients:
            payload = {"chat_id": recipient.chat_id, "text": text}
            if recipient.thread_id is not None:
                payload["message_thread_id"] = recipient.thread_id
            try:
                result = await self._call("sendMessage", payload)
            except (httpx.HTTPError, DeliveryError) as e:
                logger.warning("Telegram delivery to %s failed: %s", recipient.chat_id, e)
                continue
            receipts.append(DeliveryReceipt(recipient.chat_id, int(result.get("message_id", 0)), recipient.thread_id))
        return receipts

    async def edit(self, receipt: DeliveryReceipt, text: str) -> bool:
        if not self.configured:
            logger.warning("Telegram credentials not set; message not edited")
            return False
        payload = {"chat_id": receipt.recipient_id, "message_id": receipt.message_id, "text": text}
        try:
            await self._call("editMessageText", payload)
        except (httpx.HTTPError, DeliveryError) as e:
            logger.warning("Telegram edit of %s/%s failed: %s", receipt.recipient_id, receipt.message_id, e)
            return False
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
