"""Immutable server context built once at startup.

Every component receives the context in its constructor instead of
reading the global settings object while handling requests.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from app.core.config import Settings


class ConfigurationError(Exception):
    """Unrecoverable configuration problem detected at startup."""
    pass


@dataclass(frozen=True)
class ServerContext:
    server_name: str
    server_url: str
    account_name: str
    tag_name: str
    private_key: rsa.RSAPrivateKey
    public_key_pem: str
    inbox_log_path: str
    settle_delay: timedelta
    retry_interval: timedelta
    max_retries: int
    actor_fetch_timeout: float
    delivery_timeout: float
    delivery_workers: int
    delivery_queue_size: int
    box_cache_ttl: Optional[timedelta] = None
    signed_fetch: bool = False
    user_agent: str = "inks-ap/1.0"

    @property
    def key_id(self) -> str:
        return f"{self.server_url}#key"

    @property
    def inbox_url(self) -> str:
        return f"{self.server_url}/inbox"

    @property
    def outbox_url(self) -> str:
        return f"{self.server_url}/outbox"

    @property
    def followers_url(self) -> str:
        return f"{self.server_url}/followers"

    @property
    def following_url(self) -> str:
        return f"{self.server_url}/following"

    def link_url(self, link_id: int) -> str:
        return f"{self.server_url}/l/{link_id}"

    def tag_url(self, tag: str) -> str:
        return f"{self.server_url}/tag/{tag}"


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    """載入 PEM 私鑰，僅接受 RSA"""
    try:
        key = serialization.load_pem_private_key(pem.encode(), password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"invalid private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("private key must be RSA")
    return key


def _read_private_pem(settings: Settings) -> str:
    if settings.PRIVATE_KEY_PEM:
        return settings.PRIVATE_KEY_PEM
    path = settings.PRIVATE_KEY_PATH
    if not os.path.exists(path):
        raise ConfigurationError(f"private key not found at {path}; run `python -m app.cli genkey`")
    with open(path) as f:
        return f.read()


def build_context(settings: Settings, private_key_pem: Optional[str] = None) -> ServerContext:
    """從設定建立 ServerContext"""
    if not settings.SERVER_NAME:
        raise ConfigurationError("SERVER_NAME is required")
    if settings.MAX_RETRIES < 0:
        raise ConfigurationError("MAX_RETRIES must not be negative")
    if settings.DELIVERY_WORKERS < 1:
        raise ConfigurationError("DELIVERY_WORKERS must be at least 1")

    private_key = load_private_key(private_key_pem or _read_private_pem(settings))
    public_key_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")

    ttl = settings.BOX_CACHE_TTL
    return ServerContext(
        server_name=settings.SERVER_NAME,
        server_url=f"{settings.ACTIVITYPUB_PROTOCOL}://{settings.SERVER_NAME}",
        account_name=settings.ACCOUNT_NAME,
        tag_name=f"{settings.SERVER_NAME},{settings.TAG_YEAR}",
        private_key=private_key,
        public_key_pem=public_key_pem,
        inbox_log_path=settings.INBOX_LOG_PATH,
        settle_delay=timedelta(seconds=settings.SETTLE_DELAY),
        retry_interval=timedelta(seconds=settings.RETRY_INTERVAL),
        max_retries=settings.MAX_RETRIES,
        actor_fetch_timeout=settings.ACTOR_FETCH_TIMEOUT,
        delivery_timeout=settings.DELIVERY_TIMEOUT,
        delivery_workers=settings.DELIVERY_WORKERS,
        delivery_queue_size=settings.DELIVERY_QUEUE_SIZE,
        box_cache_ttl=timedelta(seconds=ttl) if ttl is not None else None,
        signed_fetch=settings.SIGNED_FETCH,
        user_agent=settings.USER_AGENT,
    )
