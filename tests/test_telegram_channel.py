import json

import httpx
import pytest

from herald.channels.base import CallbackChannel
from herald.channels.telegram import TelegramChannel
from herald.exceptions import DeliveryError


def telegram(handler) -> TelegramChannel:
    return TelegramChannel(
        bot_token="123:ABC",
        api_base_url="https://api.telegram.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_send_posts_send_message_payload():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    channel = telegram(handler)
    await channel.send("-1001", "<b>Standup</b> at 10:10")
    await channel.close()

    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/bot123:ABC/sendMessage"
    assert json.loads(request.content) == {
        "chat_id": "-1001",
        "text": "<b>Standup</b> at 10:10",
        "disable_web_page_preview": True,
        "parse_mode": "HTML",
    }


@pytest.mark.asyncio
async def test_api_rejection_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was kicked"})

    channel = telegram(handler)

    with pytest.raises(DeliveryError) as excinfo:
        await channel.send("-1001", "hello")

    assert "bot was kicked" in str(excinfo.value)
    assert excinfo.value.destination == "-1001"
    await channel.close()


@pytest.mark.asyncio
async def test_ok_false_with_200_is_a_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": False, "description": "Bad Request: chat not found"})

    channel = telegram(handler)

    with pytest.raises(DeliveryError):
        await channel.send("42", "hello")
    await channel.close()


@pytest.mark.asyncio
async def test_transport_error_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    channel = telegram(handler)

    with pytest.raises(DeliveryError):
        await channel.send("42", "hello")
    await channel.close()


def test_is_configured_requires_a_token():
    assert TelegramChannel(bot_token="123:ABC").is_configured
    assert not TelegramChannel(bot_token="").is_configured


@pytest.mark.asyncio
async def test_callback_channel_wraps_errors():
    received = []
    ok = CallbackChannel(lambda destination, text: received.append((destination, text)))
    await ok.send("terminal", "hi")
    assert received == [("terminal", "hi")]

    def broken(destination, text):
        raise OSError("stdout closed")

    with pytest.raises(DeliveryError):
        await CallbackChannel(broken).send("terminal", "hi")


@pytest.mark.asyncio
async def test_callback_channel_accepts_coroutines():
    received = []

    async def deliver(destination, text):
        received.append(text)

    await CallbackChannel(deliver).send("terminal", "hello")

    assert received == ["hello"]
