import asyncio
import json

import httpx
import pytest

from client.poller import RETRY_DELAY, ChatClientError, SlimChatClient

MESSAGE = {"type": "message", "room": "R1", "data": {"datetime": 1, "sender": "A", "message": "hi"}}


def make_client(handler, **kwargs):
    return SlimChatClient("http://chat.test", "R1", transport=httpx.MockTransport(handler), **kwargs)


def test_default_retry_delay_is_one_second():
    assert RETRY_DELAY == 1.0


async def test_send_passes_wire_parameters():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200)

    async with make_client(handler) as client:
        await client.send("A", "hello there")

    assert seen == [{"type": "send", "sender": "A", "data": "hello there", "room": "R1"}]


async def test_receive_normalizes_message_and_queue():
    payloads = [MESSAGE, {"type": "queue", "data": [MESSAGE, MESSAGE]}]

    def handler(request):
        return httpx.Response(200, json=payloads.pop(0))

    async with make_client(handler) as client:
        single = await client.receive("B")
        batch = await client.receive("B")

    assert [(m.sender, m.message, m.room) for m in single] == [("A", "hi", "R1")]
    assert len(batch) == 2


async def test_refusal_raises_client_error():
    async with make_client(lambda request: httpx.Response(406, text="unauthorized")) as client:
        with pytest.raises(ChatClientError) as excinfo:
            await client.stats("B")

    assert excinfo.value.status_code == 406
    assert excinfo.value.detail == "unauthorized"


async def test_history_parses_log_lines():
    log = "\n".join(json.dumps(r) for r in [{"datetime": 1, "sender": "A", "message": "hi"}]) + "\n"

    async with make_client(lambda request: httpx.Response(200, text=log)) as client:
        messages = await client.history("B")

    assert [(m.sender, m.message, m.room) for m in messages] == [("A", "hi", "R1")]


async def test_set_lock_sends_flag():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200)

    async with make_client(handler) as client:
        await client.set_lock("A", True)
        await client.set_lock("A", False)

    assert [p["lock"] for p in seen] == ["true", "false"]
    assert seen[0]["userID"] == "A"


async def test_listen_retries_after_failures():
    stop = asyncio.Event()
    responses = [
        httpx.ConnectError("refused"),
        httpx.Response(406, text="unauthorized"),
        httpx.Response(200, json=MESSAGE),
    ]
    received = []

    def handler(request):
        outcome = responses.pop(0) if responses else httpx.Response(200, json=MESSAGE)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def on_message(message):
        received.append(message.message)
        stop.set()

    async with make_client(handler, retry_delay=0) as client:
        await asyncio.wait_for(client.listen("B", on_message, stop), 2)

    assert received == ["hi"]
    assert responses == []
