"""Shared fixtures: a local actor, a fake fediverse and a wired Federation."""

from typing import Any, Dict, List, Optional

import httpx
import orjson
import pytest

from app.core.activitypub.federation import Federation, create_http_client
from app.core.activitypub.signatures import sign_request
from app.core.activitypub.utils import generate_key_pair
from app.core.config import Settings
from app.core.context import build_context, load_private_key
from app.core.database import create_engine, init_db

SERVER_NAME = "inks.example"
SERVER_URL = f"https://{SERVER_NAME}"


class RemoteServer:
    """Fake remote fediverse behind an httpx.MockTransport."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.inbox_status: Dict[str, int] = {}
        self.gets: List[str] = []
        self.posts: List[httpx.Request] = []

    def add_actor(
        self,
        actor: str,
        public_key_pem: Optional[str] = None,
        shared_inbox: Optional[str] = None,
        inbox: Optional[str] = None,
    ) -> Dict[str, Any]:
        doc = {
            "@context": "https://www.w3.org/ns/activitystreams",
            "id": actor,
            "type": "Person",
            "inbox": inbox or f"{actor}/inbox",
        }
        if shared_inbox:
            doc["endpoints"] = {"sharedInbox": shared_inbox}
        if public_key_pem:
            doc["publicKey"] = {"id": f"{actor}#main-key", "owner": actor, "publicKeyPem": public_key_pem}
        self.documents[actor] = doc
        return doc

    def posts_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.posts if str(r.url) == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url.copy_with(fragment=None))
        if request.method == "GET":
            self.gets.append(url)
            doc = self.documents.get(url)
            if doc is None:
                return httpx.Response(404)
            return httpx.Response(200, content=orjson.dumps(doc), headers={"Content-Type": "application/activity+json"})
        self.posts.append(request)
        return httpx.Response(self.inbox_status.get(url, 202))


@pytest.fixture(scope="session")
def local_key_pem() -> str:
    return generate_key_pair()[1]


@pytest.fixture(scope="session")
def remote_keys():
    public_pem, private_pem = generate_key_pair()
    return public_pem, load_private_key(private_pem)


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides) -> Settings:
        values = dict(
            SERVER_NAME=SERVER_NAME,
            ACTIVITYPUB_PROTOCOL="https",
            DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/inks.db",
            INBOX_LOG_PATH=str(tmp_path / "savedinbox.json"),
            SETTLE_DELAY=0,
            RETRY_INTERVAL=0,
            DELIVERY_WORKERS=2,
        )
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def ctx(make_settings, local_key_pem):
    return build_context(make_settings(), private_key_pem=local_key_pem)


@pytest.fixture
def remote():
    return RemoteServer()


@pytest.fixture
async def federation(ctx, remote, make_settings):
    engine = create_engine(make_settings().DATABASE_URL)
    await init_db(engine)
    client = create_http_client(ctx, transport=httpx.MockTransport(remote.handler))
    fed = Federation(ctx, engine, client, admin_token="sekrit")
    fed.start()
    yield fed
    await fed.close()
    await client.aclose()
    await engine.dispose()


@pytest.fixture
def signed_headers(remote_keys):
    """Sign an inbox POST as ``key_id`` with the remote key."""
    def _sign(body: bytes, key_id: str, private_key=None) -> httpx.Headers:
        request = httpx.Request(
            "POST",
            f"{SERVER_URL}/inbox",
            content=body,
            headers={"Content-Type": "application/activity+json"},
        )
        sign_request(key_id, private_key or remote_keys[1], request, body)
        return request.headers
    return _sign
