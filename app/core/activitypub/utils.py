import secrets
from datetime import datetime, timezone
from typing import Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

AP_CONTEXT = "https://www.w3.org/ns/activitystreams"
AP_PUBLIC = "https://www.w3.org/ns/activitystreams#Public"
AP_TYPES = [
    "application/activity+json",
    "application/ld+json",
]
AP_BEST_TYPE = 'application/ld+json; profile="https://www.w3.org/ns/activitystreams"'

# 64 個字元，對應 6 bits 的隨機值
XID_LETTERS = "BCDFGHJKLMNPQRSTVWXYZbcdfghjklmnpqrstvwxyz1234567891234567891234"

class FederationError(Exception):
    """Base error for federation operations."""
    pass

def random_xid() -> str:
    """產生 18 字元的隨機識別碼"""
    return "".join(XID_LETTERS[b & 63] for b in secrets.token_bytes(18))

def format_timestamp(dt: datetime) -> str:
    """RFC 3339 (UTC, 秒精度)"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def generate_key_pair() -> Tuple[str, str]:
    """生成 RSA 金鑰對"""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )

    public_key = private_key.public_key()

    # 序列化公鑰
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

    # 序列化私鑰
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')

    return public_pem, private_pem
