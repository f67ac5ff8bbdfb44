import base64
from decimal import Decimal

import pytest

from gateway.core.exceptions import SecretDecryptionError
from gateway.core.security import (
    canonical_json,
    decrypt_secret,
    encrypt_secret,
    generate_api_key,
    generate_api_secret,
    hash_api_key,
    sign_payload,
    verify_signature,
)

SECRET = "test-webhook-secret"
PAYLOADS = [
    "",
    "{}",
    '{"paymentId":"pay_1","status":"confirmed","amount":100}',
    '{"note":"café ✓"}',
]


def _flip_bit(text: str, index: int) -> str:
    raw = bytearray(text.encode("utf-8"))
    raw[index] ^= 0x01
    return raw.decode("utf-8", errors="replace")


@pytest.mark.parametrize("payload", PAYLOADS)
@pytest.mark.parametrize("secret", [SECRET, "another-secret", "s"])
def test_sign_then_verify_is_true(payload, secret):
    signature = sign_payload(payload, secret)

    assert len(signature) == 64
    assert verify_signature(payload, signature, secret) is True


def test_signature_is_deterministic_lowercase_hex():
    payload = PAYLOADS[2]

    assert sign_payload(payload, SECRET) == sign_payload(payload, SECRET)
    assert sign_payload(payload, SECRET) == sign_payload(payload, SECRET).lower()


def test_single_bit_flip_in_payload_fails_verification():
    payload = PAYLOADS[2]
    signature = sign_payload(payload, SECRET)

    for index in range(len(payload)):
        mutated = _flip_bit(payload, index)
        assert mutated != payload
        assert verify_signature(mutated, signature, SECRET) is False


def test_any_change_to_signature_fails_verification():
    payload = PAYLOADS[2]
    signature = sign_payload(payload, SECRET)
    raw = bytes.fromhex(signature)

    for byte_index in range(len(raw)):
        for bit in range(8):
            mutated = bytearray(raw)
            mutated[byte_index] ^= 1 << bit
            assert verify_signature(payload, mutated.hex(), SECRET) is False


def test_any_bit_flip_in_signature_text_fails_verification():
    signature = sign_payload(PAYLOADS[2], SECRET)

    for index, char in enumerate(signature):
        for bit in range(7):
            mutated = signature[:index] + chr(ord(char) ^ (1 << bit)) + signature[index + 1 :]
            assert verify_signature(PAYLOADS[2], mutated, SECRET) is False


def test_uppercase_signature_is_rejected():
    signature = sign_payload(PAYLOADS[2], SECRET)
    assert any(char in "abcdef" for char in signature)

    assert verify_signature(PAYLOADS[2], signature.upper(), SECRET) is False


def test_wrong_secret_fails_verification():
    signature = sign_payload(PAYLOADS[2], SECRET)

    assert verify_signature(PAYLOADS[2], signature, "wrong-secret") is False


@pytest.mark.parametrize(
    "signature",
    ["", "not-hex", "abc", sign_payload(PAYLOADS[2], SECRET)[:-2], None, 12345],
)
def test_malformed_signature_is_false_not_error(signature):
    assert verify_signature(PAYLOADS[2], signature, SECRET) is False


def test_non_string_payload_is_false():
    assert verify_signature({"a": 1}, sign_payload("{}", SECRET), SECRET) is False


def test_canonical_json_is_compact_and_keeps_key_order():
    body = canonical_json({"b": 1, "a": Decimal("100"), "c": Decimal("0.5"), "d": None})

    assert body == '{"b":1,"a":100,"c":0.5,"d":null}'


def test_api_key_helpers():
    key = generate_api_key()
    secret = generate_api_secret()

    assert key.startswith("pk_") and len(key) == 3 + 48
    assert secret.startswith("sk_") and len(secret) == 3 + 64
    assert hash_api_key(key, "k") == hash_api_key(key, "k")
    assert hash_api_key(key, "k") != hash_api_key(key, "other")


def test_encrypt_then_decrypt_returns_plaintext():
    blob = encrypt_secret("sk_live_value", "api-key-secret")

    nonce, tag, ciphertext = blob.split(":")
    assert len(base64.b64decode(nonce)) == 12
    assert len(base64.b64decode(tag)) == 16
    assert decrypt_secret(blob, "api-key-secret") == "sk_live_value"


def test_encryption_uses_a_fresh_nonce():
    assert encrypt_secret("same", "key") != encrypt_secret("same", "key")


def test_decrypt_with_wrong_key_raises():
    blob = encrypt_secret("sk_live_value", "api-key-secret")

    with pytest.raises(SecretDecryptionError):
        decrypt_secret(blob, "another-key")


def test_decrypt_tampered_ciphertext_raises():
    nonce, tag, ciphertext = encrypt_secret("sk_live_value", "key").split(":")
    raw = bytearray(base64.b64decode(ciphertext))
    raw[0] ^= 0x01
    tampered = ":".join([nonce, tag, base64.b64encode(bytes(raw)).decode("ascii")])

    with pytest.raises(SecretDecryptionError):
        decrypt_secret(tampered, "key")


@pytest.mark.parametrize(
    "blob",
    [
        "",
        "only-one-part",
        "a:b",
        "a:b:c:d",
        "!!!:@@@:###",
        f"{base64.b64encode(b'short').decode()}:{base64.b64encode(bytes(16)).decode()}:",
    ],
)
def test_decrypt_malformed_blob_raises(blob):
    with pytest.raises(SecretDecryptionError):
        decrypt_secret(blob, "key")
