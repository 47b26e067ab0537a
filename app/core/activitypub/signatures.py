"""
HTTP Signatures for ActivityPub.

Signs outgoing requests and verifies incoming ones using RSA-SHA256 over
``(request-target) host date digest``. Public keys are looked up from
the actor document named by the signature's ``keyId``.
"""

import base64
import hashlib
import re
from email.utils import formatdate
from typing import Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import urldefrag, urlsplit

import httpx
import orjson
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from app.core.activitypub.utils import AP_TYPES, FederationError

SIGNED_HEADERS = ["(request-target)", "host", "date", "digest"]

_re_param = re.compile(r'(\w+)="([^"]*)"')

KeyGetter = Callable[[str], Awaitable[rsa.RSAPublicKey]]


class SignatureError(FederationError):
    """Signature missing, malformed or not valid for the request."""
    pass


def compute_digest(body: bytes) -> str:
    """SHA-256 digest header value"""
    return "SHA-256=" + base64.b64encode(hashlib.sha256(body).digest()).decode()


def parse_signature_header(header: str) -> Dict[str, str]:
    """Parse a ``Signature`` header into its parameters."""
    return {k: v for k, v in _re_param.findall(header)}


def signing_string(method: str, target: str, headers: Mapping[str, str], names: List[str]) -> str:
    lines = []
    for name in names:
        if name == "(request-target)":
            lines.append(f"(request-target): {method.lower()} {target}")
        else:
            value = headers.get(name)
            if value is None:
                raise SignatureError(f"missing signed header: {name}")
            lines.append(f"{name}: {value}")
    return "\n".join(lines)


def _request_target(url: httpx.URL) -> str:
    target = url.raw_path.decode("ascii")
    return target or "/"


def sign_request(key_id: str, private_key: rsa.RSAPrivateKey, request: httpx.Request, body: bytes) -> None:
    """
    Add Host, Date, Digest and Signature headers to an outgoing request.

    Args:
        key_id: Public key id (actor IRI + ``#key``)
        private_key: Signing key
        request: Request to mutate
        body: Exact bytes that will be sent
    """
    request.headers["Host"] = request.url.netloc.decode("ascii")
    if "date" not in request.headers:
        request.headers["Date"] = formatdate(usegmt=True)
    request.headers["Digest"] = compute_digest(body)

    names = SIGNED_HEADERS
    headers = {k.lower(): v for k, v in request.headers.items()}
    text = signing_string(request.method, _request_target(request.url), headers, names)
    signature = private_key.sign(text.encode(), padding.PKCS1v15(), hashes.SHA256())

    request.headers["Signature"] = (
        f'keyId="{key_id}",'
        f'algorithm="rsa-sha256",'
        f'headers="{" ".join(names)}",'
        f'signature="{base64.b64encode(signature).decode()}"'
    )


async def verify_request(
    method: str,
    target: str,
    headers: Mapping[str, str],
    body: bytes,
    key_getter: KeyGetter,
) -> str:
    """
    Verify the HTTP signature of an incoming request.

    Args:
        method: HTTP method
        target: Path plus query string
        headers: Request headers (case-insensitive mapping)
        body: Raw request body
        key_getter: Resolves a keyId to a public key

    Returns:
        The keyId that produced the signature

    Raises:
        SignatureError: Missing, malformed or invalid signature
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    header = lowered.get("signature")
    if not header:
        raise SignatureError("no signature header")
    params = parse_signature_header(header)
    key_id = params.get("keyId")
    signature = params.get("signature")
    if not key_id or not signature:
        raise SignatureError("malformed signature header")
    algorithm = params.get("algorithm", "rsa-sha256").lower()
    if algorithm not in ("rsa-sha256", "hs2019"):
        raise SignatureError(f"unsupported algorithm: {algorithm}")
    names = params.get("headers", "date").lower().split()

    if body and "digest" not in names:
        raise SignatureError("body digest not signed")
    if "digest" in names:
        digest = lowered.get("digest", "")
        if digest != compute_digest(body):
            raise SignatureError("digest mismatch")

    text = signing_string(method, target, lowered, names)
    try:
        raw_signature = base64.b64decode(signature, validate=True)
    except ValueError as e:
        raise SignatureError(f"bad signature encoding: {e}") from e

    public_key = await key_getter(key_id)
    try:
        public_key.verify(raw_signature, text.encode(), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature as e:
        raise SignatureError(f"signature does not verify for {key_id}") from e
    return key_id


def _find_public_key_pem(document: dict, key_id: str) -> Optional[str]:
    keys = document.get("publicKey")
    if isinstance(keys, dict):
        keys = [keys]
    if not isinstance(keys, list):
        return None
    candidates = [k for k in keys if isinstance(k, dict) and k.get("publicKeyPem")]
    for key in candidates:
        if key.get("id") == key_id:
            return key["publicKeyPem"]
    return candidates[0]["publicKeyPem"] if candidates else None


class ActivityPubKeyGetter:
    """Fetch the actor document named by a keyId and load its public key."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 5.0):
        self.client = client
        self.timeout = timeout

    async def __call__(self, key_id: str) -> rsa.RSAPublicKey:
        try:
            url, _ = urldefrag(key_id)
            scheme = urlsplit(url).scheme
        except ValueError as e:
            raise SignatureError(f"malformed keyId {key_id!r}: {e}") from e
        if scheme not in ("http", "https"):
            raise SignatureError(f"unfetchable keyId: {key_id}")
        try:
            response = await self.client.get(
                url,
                headers={"Accept": AP_TYPES[0]},
                timeout=self.timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            document = orjson.loads(response.content)
        except (httpx.HTTPError, httpx.InvalidURL, orjson.JSONDecodeError) as e:
            raise SignatureError(f"error fetching key {key_id}: {e}") from e
        if not isinstance(document, dict):
            raise SignatureError(f"bad key document for {key_id}")
        pem = _find_public_key_pem(document, key_id)
        if not pem:
            raise SignatureError(f"no public key in {url}")
        try:
            key = serialization.load_pem_public_key(pem.encode())
        except ValueError as e:
            raise SignatureError(f"bad public key for {key_id}: {e}") from e
        if not isinstance(key, rsa.RSAPublicKey):
            raise SignatureError(f"non-RSA key for {key_id}")
        return key
