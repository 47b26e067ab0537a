#!/usr/bin/env python3
"""
Inbox 處理測試：簽章、偽造檢查與活動分派
"""

import httpx
import orjson
import pytest

from app.core.activitypub.inbox import MalformedActivity
from app.main import app

SERVER_URL = "https://inks.example"
ALICE = "https://remote.example/users/alice"
MALLORY = "https://evil.example/users/mallory"


def follow(actor=ALICE, target=SERVER_URL):
    return {
        "@context": "https://www.w3.org/ns/activitystreams",
        "id": f"{actor}#follows/1",
        "type": "Follow",
        "actor": actor,
        "object": target,
    }


@pytest.fixture
def alice(remote, remote_keys):
    return remote.add_actor(ALICE, public_key_pem=remote_keys[0])


@pytest.fixture
def post(federation, signed_headers):
    async def _post(activity, key_id=f"{ALICE}#main-key"):
        body = orjson.dumps(activity)
        headers = signed_headers(body, key_id)
        kind = await federation.inbox.process("POST", "/inbox", headers, body)
        await federation.runner.join()
        return kind
    return _post


async def test_follow_is_accepted(federation, remote, alice, post):
    assert await post(follow()) == "Follow"

    assert await federation.followers.list() == [ALICE]
    accepts = remote.posts_to(f"{ALICE}/inbox")
    assert len(accepts) == 1
    accept = orjson.loads(accepts[0].content)
    assert accept["type"] == "Accept"
    assert accept["actor"] == SERVER_URL
    assert accept["to"] == ALICE
    assert accept["object"]["type"] == "Follow"
    assert accept["object"]["id"] == f"{ALICE}#follows/1"
    assert "signature" in accepts[0].headers


async def test_follow_of_other_object_is_ignored(federation, remote, alice, post):
    assert await post(follow(target="https://inks.example/l/1")) == "Follow"
    assert await federation.followers.list() == []
    assert remote.posts == []


async def test_unknown_type_is_ignored_before_verification(federation, remote, post):
    assert await post({"type": "Like", "actor": ALICE, "object": SERVER_URL}) is None
    assert remote.gets == []


async def test_forged_actor_is_dropped(federation, remote, remote_keys, post):
    # mallory 用自己的金鑰簽章，卻冒充 alice
    remote.add_actor(MALLORY, public_key_pem=remote_keys[0])
    remote.add_actor(ALICE, public_key_pem=remote_keys[0])
    assert await post(follow(), key_id=f"{MALLORY}#main-key") is None
    assert await federation.followers.list() == []
    assert remote.posts == []


async def test_missing_actor_is_dropped(federation, remote, alice, post):
    assert await post({"type": "Create", "actor": "", "object": {}}) is None
    assert await post({"type": "Create", "object": {}}) is None


async def test_bad_signature_is_dropped(federation, remote, alice, signed_headers):
    body = orjson.dumps(follow())
    headers = {k.lower(): v for k, v in signed_headers(body, f"{ALICE}#main-key").items()}
    headers["date"] = "Thu, 01 Jan 1970 00:00:00 GMT"
    assert await federation.inbox.process("POST", "/inbox", headers, body) is None
    await federation.runner.join()
    assert await federation.followers.list() == []


async def test_unsigned_request_is_dropped(federation, remote, alice):
    body = orjson.dumps(follow())
    assert await federation.inbox.process("POST", "/inbox", {}, body) is None


async def test_create_is_logged(federation, alice, post):
    create = {
        "type": "Create",
        "id": f"{ALICE}/statuses/1/activity",
        "actor": ALICE,
        "object": {"type": "Note", "content": "hi"},
    }
    assert await post(create) == "Create"
    assert await post(dict(create, id=f"{ALICE}/statuses/2/activity")) == "Create"

    with open(federation.ctx.inbox_log_path, "rb") as f:
        lines = f.read().splitlines()
    assert [orjson.loads(line)["id"] for line in lines] == [
        f"{ALICE}/statuses/1/activity",
        f"{ALICE}/statuses/2/activity",
    ]


async def test_undo_follow_removes_follower(federation, alice, post):
    await federation.followers.add(ALICE)
    undo = {"type": "Undo", "actor": ALICE, "object": follow()}
    assert await post(undo) == "Undo"
    assert await federation.followers.list() == []

    # 不在名單中也不算錯誤
    assert await post(undo) == "Undo"


async def test_undo_of_other_activity_keeps_follower(federation, alice, post):
    await federation.followers.add(ALICE)
    undo = {"type": "Undo", "actor": ALICE, "object": {"type": "Like", "object": SERVER_URL}}
    assert await post(undo) == "Undo"
    assert await federation.followers.list() == [ALICE]


async def test_malformed_body_raises(federation):
    with pytest.raises(MalformedActivity):
        await federation.inbox.process("POST", "/inbox", {}, b"not json")
    with pytest.raises(MalformedActivity):
        await federation.inbox.process("POST", "/inbox", {}, b"[1, 2]")


@pytest.fixture
async def client(federation):
    app.state.federation = federation
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=SERVER_URL) as client:
        yield client
    app.state.federation = None


async def test_inbox_endpoint_rejects_bad_payload(client):
    response = await client.post("/inbox", content=b"{nope")
    assert response.status_code == 406
    assert response.text == "bad payload"


async def test_inbox_endpoint_accepts_signed_follow(client, federation, remote, alice, signed_headers):
    body = orjson.dumps(follow())
    response = await client.post("/inbox", content=body, headers=signed_headers(body, f"{ALICE}#main-key"))
    assert response.status_code == 200
    await federation.runner.join()
    assert await federation.followers.list() == [ALICE]


async def test_inbox_endpoint_hides_forgery(client, federation, remote, remote_keys, signed_headers):
    remote.add_actor(MALLORY, public_key_pem=remote_keys[0])
    body = orjson.dumps(follow())
    response = await client.post("/inbox", content=body, headers=signed_headers(body, f"{MALLORY}#main-key"))
    assert response.status_code == 200
    await federation.runner.join()
    assert await federation.followers.list() == []


async def test_malformed_key_id_is_dropped(federation, remote, alice, post):
    assert await post(follow(), key_id="https://[bad#main-key") is None
    assert await federation.followers.list() == []
    assert remote.gets == []


async def test_inbox_endpoint_hides_malformed_key_id(client, federation, remote, alice, signed_headers):
    body = orjson.dumps(follow())
    response = await client.post("/inbox", content=body, headers=signed_headers(body, "https://[bad#main-key"))
    assert response.status_code == 200
    await federation.runner.join()
    assert await federation.followers.list() == []
