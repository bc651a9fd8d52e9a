import json

import httpx
import pytest

from chatwallet.providers.telegram import TelegramAPIError, TelegramTransport


def _transport(handler) -> TelegramTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramTransport(token="123:abc", base_url="https://bot.test", timeout=5, client=client)


@pytest.mark.asyncio
async def test_send_message_posts_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 5}})

    transport = _transport(handler)

    result = await transport.send_message(42, "hi", reply_markup={"force_reply": True})

    assert result == {"message_id": 5}
    assert seen["path"] == "/bot123:abc/sendMessage"
    assert seen["body"] == {"chat_id": 42, "text": "hi", "reply_markup": {"force_reply": True}}


@pytest.mark.asyncio
async def test_send_document_is_multipart():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 6}})

    transport = _transport(handler)

    await transport.send_document(42, b'{"privateKey": "x"}', filename="hedera_wallet.json", caption="keep safe")

    assert seen["content_type"].startswith("multipart/form-data")
    assert b'filename="hedera_wallet.json"' in seen["body"]
    assert b"keep safe" in seen["body"]


@pytest.mark.asyncio
async def test_api_error_is_raised():
    transport = _transport(
        lambda request: httpx.Response(400, json={"ok": False, "description": "chat not found", "error_code": 400})
    )

    with pytest.raises(TelegramAPIError) as exc:
        await transport.delete_message(42, 1)

    assert exc.value.error_code == 400
    assert exc.value.method == "deleteMessage"


@pytest.mark.asyncio
async def test_get_updates_passes_offset():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": []})

    transport = _transport(handler)

    assert await transport.get_updates(offset=7, timeout=0) == []
    assert seen["body"]["offset"] == 7
    assert seen["body"]["timeout"] == 0
