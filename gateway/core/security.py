import base64
import binascii
import hashlib
import hmac
import json
import re
import secrets
from decimal import Decimal

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gateway.core.exceptions import SecretDecryptionError

NONCE_SIZE = 12
TAG_SIZE = 16
SIGNATURE_PATTERN = re.compile(r"[0-9a-f]{64}")


def _json_default(value):
    if isinstance(value, Decimal):
        # integral decimals stay integers so 100 signs as "100", not "100.0"
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(payload: dict) -> str:
    """Serialize a payload the same way for signing and for transport.

    Key order is the dict's insertion order, separators are compact.
    """
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def sign_payload(payload: str, secret: str) -> str:
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: str, signature: str, secret: str) -> bool:
    if not isinstance(payload, str) or not isinstance(signature, str):
        return False
    # signatures are emitted as lowercase hex; any other spelling is a mismatch
    if not SIGNATURE_PATTERN.fullmatch(signature):
        return False
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii"))


def hash_api_key(api_key: str, secret: str) -> str:
    # deterministic so keys can be looked up without being stored
    return hmac.new(secret.encode("utf-8"), api_key.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_api_key() -> str:
    return f"pk_{secrets.token_hex(24)}"


def generate_api_secret() -> str:
    return f"sk_{secrets.token_hex(32)}"


def _derive_key(secret: str) -> bytes:
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt_secret(plain: str, secret: str) -> str:
    """AES-256-GCM, stored as base64(nonce):base64(tag):base64(ciphertext)."""
    nonce = secrets.token_bytes(NONCE_SIZE)
    sealed = AESGCM(_derive_key(secret)).encrypt(nonce, plain.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
    )


def decrypt_secret(blob: str, secret: str) -> str:
    parts = blob.split(":") if isinstance(blob, str) else []
    if len(parts) != 3 or not all(parts[:2]):
        raise SecretDecryptionError("Invalid encrypted payload format")

    try:
        nonce, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
    except (binascii.Error, ValueError) as exc:
        raise SecretDecryptionError("Invalid encrypted payload encoding") from exc
    if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise SecretDecryptionError("Invalid encrypted payload format")

    try:
        plain = AESGCM(_derive_key(secret)).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise SecretDecryptionError() from exc
    return plain.decode("utf-8")
