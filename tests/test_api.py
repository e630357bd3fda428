import asyncio
import json
from http import HTTPStatus

import pytest

from tests.conftest import wait_until_waiting


async def test_scenario_waiting_receiver_gets_message(api, presence, make_room):
    room_id = await make_room("A", "B")

    poll = asyncio.create_task(api.get("/", params={"type": "receive", "receiver": "B", "room": room_id}))
    await wait_until_waiting(presence, "B")
    sent = await api.get("/", params={"type": "send", "sender": "A", "room": room_id, "data": "hi"})

    assert sent.status_code == HTTPStatus.OK
    assert sent.content == b""
    resp = await asyncio.wait_for(poll, 2)
    assert resp.status_code == HTTPStatus.OK
    body = resp.json()
    assert body["type"] == "message"
    assert body["room"] == room_id
    assert body["data"]["sender"] == "A"
    assert body["data"]["message"] == "hi"


async def test_scenario_queue_flushed_in_send_order(api, presence, make_room):
    room_id = await make_room("A", "B")
    await presence.mark_online("B")

    for _ in range(2):
        await api.get("/", params={"type": "send", "sender": "A", "room": room_id, "data": "hi"})
    resp = await api.get("/", params={"type": "receive", "receiver": "B", "room": room_id})

    body = resp.json()
    assert body["type"] == "queue"
    assert [(m["data"]["sender"], m["data"]["message"]) for m in body["data"]] == [("A", "hi"), ("A", "hi")]


@pytest.mark.parametrize(
    "params",
    [
        {},
        {"type": "bogus"},
        {"type": "send", "sender": "A", "room": "R"},
        {"type": "receive", "room": "R"},
        {"type": "history", "receiver": "../etc", "room": "R"},
        {"type": "roomlock", "userID": "A", "room": "R", "lock": "maybe"},
    ],
)
async def test_malformed_requests_are_invalid(api, params):
    resp = await api.get("/", params=params)

    assert resp.status_code == 406
    assert resp.text == "invalid request"


async def test_unauthorized_send_is_plain_406(api, make_room):
    room_id = await make_room("A", "B")

    resp = await api.get("/", params={"type": "send", "sender": "C", "room": room_id, "data": "hi"})

    assert resp.status_code == 406
    assert resp.text == "unauthorized"


async def test_unknown_room_is_plain_406(api):
    resp = await api.get("/", params={"type": "receive", "receiver": "A", "room": "nowhere"})

    assert resp.status_code == 406
    assert resp.text == "unauthorized"


async def test_history_returns_ndjson_log(api, make_room):
    room_id = await make_room("A", "B")
    await api.get("/", params={"type": "send", "sender": "A", "room": room_id, "data": "hi"})
    await api.get("/", params={"type": "send", "sender": "B", "room": room_id, "data": "yo"})

    resp = await api.get("/", params={"type": "history", "receiver": "B", "room": room_id})

    assert resp.status_code == HTTPStatus.OK
    assert resp.headers["content-type"].startswith("application/x-ndjson")
    records = [json.loads(line) for line in resp.text.splitlines()]
    assert [(r["sender"], r["message"]) for r in records] == [("A", "hi"), ("B", "yo")]


async def test_stats_lists_other_members(api, presence, make_room):
    room_id = await make_room("A", "B")
    await presence.mark_online("B")

    resp = await api.get("/", params={"type": "stats", "receiver": "A", "room": room_id})

    assert resp.json() == {"B": "now"}


async def test_roomlock_flow(api, make_room):
    room_id = await make_room("A", "B")

    locked = await api.get("/", params={"type": "roomlock", "userID": "A", "room": room_id, "lock": "true"})
    assert locked.status_code == HTTPStatus.OK

    blocked = await api.get("/", params={"type": "send", "sender": "B", "room": room_id, "data": "hi"})
    assert blocked.status_code == 406

    wrong = await api.get("/", params={"type": "roomlock", "userID": "B", "room": room_id, "lock": "false"})
    assert wrong.status_code == 406
    assert wrong.text == "unauthorized"

    unlocked = await api.get("/", params={"type": "roomlock", "userID": "A", "room": room_id, "lock": "0"})
    assert unlocked.status_code == HTTPStatus.OK


async def test_group_room_lock_refused(api, make_room):
    room_id = await make_room("u1", "u2", "u3")

    for flag in ("true", "false"):
        resp = await api.get("/", params={"type": "roomlock", "userID": "u1", "room": room_id, "lock": flag})

        assert resp.status_code == 406
        assert resp.text == "cannot lock a group chatroom"


async def test_store_failure_is_server_error(api, store, make_room, monkeypatch):
    from core.errors import StoreIOError

    room_id = await make_room("A", "B")

    async def broken_append(room_id, entry):
        raise StoreIOError("disk full")

    monkeypatch.setattr(store, "append_log", broken_append)

    resp = await api.get("/", params={"type": "send", "sender": "A", "room": room_id, "data": "hi"})

    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.text == "Unknown error occurred."


async def test_room_administration(api, store):
    assert (await api.post("/users", json={"user_id": "alice"})).status_code == HTTPStatus.CREATED
    assert (await api.post("/users", json={"user_id": "bob"})).status_code == HTTPStatus.CREATED
    assert (await api.post("/users", json={"user_id": "bob"})).status_code == HTTPStatus.CONFLICT

    created = await api.post("/rooms")
    assert created.status_code == HTTPStatus.CREATED
    room_id = created.json()["id"]

    for user_id in ("alice", "bob"):
        joined = await api.post(f"/rooms/{room_id}/members", json={"user_id": user_id})
        assert joined.status_code == HTTPStatus.OK
    assert sorted(joined.json()["users"]) == ["alice", "bob"]

    again = await api.post(f"/rooms/{room_id}/members", json={"user_id": "bob"})
    assert again.status_code == HTTPStatus.CONFLICT

    left = await api.delete(f"/rooms/{room_id}/members/alice")
    assert left.json() == {"status": "removed", "room_deleted": False}
    last = await api.delete(f"/rooms/{room_id}/members/bob")
    assert last.json() == {"status": "removed", "room_deleted": True}
    assert await store.get_room(room_id) is None


async def test_admin_body_validation_is_invalid_request(api):
    resp = await api.post("/users", json={})

    assert resp.status_code == 406
    assert resp.text == "invalid request"


async def test_health_reports_presence(api, presence, make_room):
    room_id = await make_room("A", "B")
    await presence.mark_online("B")
    await api.get("/", params={"type": "send", "sender": "A", "room": room_id, "data": "hi"})

    body = (await api.get("/health")).json()

    assert body["status"] == "healthy"
    assert body["online"] == 1
    assert body["queued"] == 1
    assert body["total_messages"] == 1
