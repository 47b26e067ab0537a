#!/usr/bin/env python3
"""
ActivityPub 端點與管理 API 測試
"""

import asyncio

import httpx
import orjson
import pytest
from cryptography.hazmat.primitives import serialization

from app.core.activitypub.utils import AP_PUBLIC
from app.main import app

SERVER_URL = "https://inks.example"
ADMIN = {"Authorization": "Bearer sekrit"}


@pytest.fixture
async def client(federation):
    app.state.federation = federation
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=SERVER_URL) as client:
        yield client
    app.state.federation = None


async def test_actor_document(client, federation):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/ld+json")
    assert response.headers["cache-control"] == "max-age=300"
    actor = response.json()
    assert actor["id"] == SERVER_URL
    assert actor["type"] == "Application"
    assert actor["preferredUsername"] == "inks"
    assert actor["inbox"] == f"{SERVER_URL}/inbox"
    assert actor["outbox"] == f"{SERVER_URL}/outbox"
    assert actor["followers"] == f"{SERVER_URL}/followers"
    assert actor["publicKey"]["id"] == f"{SERVER_URL}#key"
    assert actor["publicKey"]["owner"] == SERVER_URL

    key = serialization.load_pem_public_key(actor["publicKey"]["publicKeyPem"].encode())
    expected = federation.ctx.private_key.public_key()
    assert key.public_numbers() == expected.public_numbers()


async def test_webfinger(client):
    response = await client.get("/.well-known/webfinger", params={"resource": "acct:inks@inks.example"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/jrd+json")
    data = response.json()
    assert data["subject"] == "acct:inks@inks.example"
    assert data["links"] == [{"rel": "self", "type": "application/activity+json", "href": SERVER_URL}]


async def test_webfinger_by_actor_url(client):
    response = await client.get("/.well-known/webfinger", params={"resource": SERVER_URL})
    assert response.status_code == 200
    assert response.json()["subject"] == "acct:inks@inks.example"


@pytest.mark.parametrize("resource,status", [
    ("acct:someone@inks.example", 404),
    ("acct:inks@elsewhere.example", 404),
    ("inks", 400),
    ("", 400),
])
async def test_webfinger_errors(client, resource, status):
    response = await client.get("/.well-known/webfinger", params={"resource": resource})
    assert response.status_code == status


@pytest.mark.parametrize("path", ["/followers", "/following"])
async def test_collections_are_private(client, path):
    response = await client.get(path)
    assert response.status_code == 403
    assert response.text == "no"


async def test_note_endpoint(client, federation):
    link_id = await federation.content.save_item(
        url="https://example.com/", title="Example", summary="see \"this\"", tags=["foo"]
    )
    response = await client.get(f"/l/{link_id}")
    assert response.status_code == 200
    note = response.json()
    assert note["@context"] == "https://www.w3.org/ns/activitystreams"
    assert note["id"] == f"{SERVER_URL}/l/{link_id}"
    assert note["to"] == AP_PUBLIC
    assert "see “this”" in note["content"]

    assert (await client.get("/l/999")).status_code == 404


async def test_admin_requires_token(client):
    link = {"url": "https://example.com/", "title": "Example"}
    assert (await client.post("/api/v1/links/", json=link)).status_code == 401
    bad = {"Authorization": "Bearer nope"}
    assert (await client.post("/api/v1/links/", json=link, headers=bad)).status_code == 401


async def test_admin_disabled_without_token(client, federation):
    federation.admin_token = None
    link = {"url": "https://example.com/", "title": "Example"}
    assert (await client.post("/api/v1/links/", json=link, headers=ADMIN)).status_code == 403


async def test_create_and_edit_link(client, federation, remote):
    follower = "https://remote.example/users/alice"
    remote.add_actor(follower)
    await federation.followers.add(follower)

    link = {"url": " https://example.com/ ", "title": "BIG NEWS TODAY", "tags": "foo bar", "summary": "hi"}
    response = await client.post("/api/v1/links/", json=link, headers=ADMIN)
    assert response.status_code == 201
    link_id = response.json()["id"]
    assert response.json()["published"] == "create"

    item = await federation.content.get_item(link_id)
    assert item.url == "https://example.com/"
    assert item.title == "Big News Today"
    assert item.tags == ["foo", "bar"]
    assert item.site == "example.com"

    # 與上一筆相同網址視為重複送出
    assert (await client.post("/api/v1/links/", json=link, headers=ADMIN)).status_code == 400

    edit = {"url": "https://example.com/", "title": "Big news", "tags": ["baz"]}
    response = await client.put(f"/api/v1/links/{link_id}", json=edit, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["published"] == "update"
    assert (await federation.content.get_item(link_id)).tags == ["baz"]

    await federation.join()
    kinds = sorted(orjson.loads(r.content)["type"] for r in remote.posts_to(f"{follower}/inbox"))
    assert kinds == ["Create", "Update"]


async def test_link_validation(client):
    response = await client.post("/api/v1/links/", json={"url": "  ", "title": "x"}, headers=ADMIN)
    assert response.status_code == 400
    response = await client.put("/api/v1/links/42", json={"url": "https://a.example/", "title": "x"}, headers=ADMIN)
    assert response.status_code == 404


async def test_health(client, federation):
    await federation.followers.add("https://remote.example/users/alice")
    response = await client.get("/api/v1/health/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "healthy"
    assert data["followers"] == 1
    assert data["queued_deliveries"] == 0
    assert data["waiting_retries"] == 0
    assert data["service"] == "inks.example"


async def test_not_ready_without_federation():
    app.state.federation = None
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=SERVER_URL) as client:
        response = await client.get("/")
    assert response.status_code == 503


async def test_concurrent_reposts_save_once(client, federation):
    link = {"url": "https://example.com/same", "title": "Same"}
    responses = await asyncio.gather(*[
        client.post("/api/v1/links/", json=link, headers=ADMIN) for _ in range(3)
    ])
    assert sorted(r.status_code for r in responses) == [201, 400, 400]
    assert len(await federation.content.list_items()) == 1
