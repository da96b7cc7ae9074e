import json

import httpx
import pytest

from models import DeliveryReceipt
from notifier import Recipient, RecipientDirectory, TelegramChannel
from settings import Settings


def _channel(handler, token="123:abc"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramChannel(token, client=client)


@pytest.mark.asyncio
async def test_send_fans_out_and_survives_one_failure():
    seen = []

    def handler(request):
        body = json.loads(request.content)
        seen.append(body)
        if body["chat_id"] == "bad":
            return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was blocked by the user"})
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(seen)}})

    channel = _channel(handler)
    receipts = await channel.send("hi", [Recipient("1"), Recipient("bad"), Recipient("3")])
    assert [r.recipient_id for r in receipts] == ["1", "3"]
    assert [b["chat_id"] for b in seen] == ["1", "bad", "3"]
    await channel.aclose()


@pytest.mark.asyncio
async def test_send_survives_non_object_reply():
    def handler(request):
        body = json.loads(request.content)
        if body["chat_id"] == "1":
            return httpx.Response(200, json=[])
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 9}})

    channel = _channel(handler)
    receipts = await channel.send("hi", [Recipient("1"), Recipient("2")])
    assert receipts == [DeliveryReceipt("2", 9, None)]
    await channel.aclose()


@pytest.mark.asyncio
async def test_send_attaches_thread_id():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

    channel = _channel(handler)
    receipts = await channel.send("hi", [Recipient("-100", thread_id=42), Recipient("5")])
    assert seen[0]["message_thread_id"] == 42
    assert "message_thread_id" not in seen[1]
    assert receipts[0] == DeliveryReceipt("-100", 7, 42)


@pytest.mark.asyncio
async def test_network_error_is_per_recipient():
    def handler(request):
        if json.loads(request.content)["chat_id"] == "1":
            raise httpx.ConnectError("down")
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    receipts = await _channel(handler).send("hi", [Recipient("1"), Recipient("2")])
    assert [r.recipient_id for r in receipts] == ["2"]


@pytest.mark.asyncio
async def test_missing_token_sends_nothing():
    def handler(request):
        raise AssertionError("no request expected")

    channel = _channel(handler, token=None)
    assert await channel.send("hi", [Recipient("1")]) == []
    assert await channel.edit(DeliveryReceipt("1", 1), "x") is False


@pytest.mark.asyncio
async def test_edit_message():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": True})

    channel = _channel(handler)
    assert await channel.edit(DeliveryReceipt("9", 55), "new text") is True
    path, body = seen[0]
    assert path.endswith("/editMessageText")
    assert body == {"chat_id": "9", "message_id": 55, "text": "new text"}


def test_directory_from_settings():
    settings = Settings(
        _env_file=None,
        telegram_chat_id="111, -100200, 111,",
        telegram_target_group_id="-100200",
        telegram_thread_id=9,
        telegram_preferences={"111": ["btcusdt"]},
    )
    directory = RecipientDirectory.from_settings(settings)
    assert len(directory) == 2
    assert [r.chat_id for r in directory.recipients()] == ["111", "-100200"]
    assert directory.recipients()[1].thread_id == 9
    assert [r.chat_id for r in directory.recipients("ETHUSDT")] == ["-100200"]
    assert [r.chat_id for r in directory.recipients("BTCUSDT")] == ["111", "-100200"]
