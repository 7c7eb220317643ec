"""
AES-256-GCM helpers for signup passwords held between checkout and webhook.

Ciphertext format is ``base64(iv):base64(tag):base64(data)``, the same layout
the storefront used when it wrote encrypted passwords into Stripe metadata,
so those legacy values still decrypt here.
"""
import base64
import binascii
import secrets
import string

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.config import settings

IV_BYTES = 16
TAG_BYTES = 16


class DecryptionError(ValueError):
    pass


def _key() -> bytes:
    secret = settings.ENCRYPTION_KEY or settings.STRIPE_SECRET_KEY
    if not secret:
        raise RuntimeError("ENCRYPTION_KEY (or STRIPE_SECRET_KEY) must be set")
    return secret[:32].ljust(32, "0").encode("utf-8")[:32]


def encrypt(text: str) -> str:
    iv = secrets.token_bytes(IV_BYTES)
    sealed = AESGCM(_key()).encrypt(iv, text.encode("utf-8"), None)
    data, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return ":".join(base64.b64encode(part).decode("ascii") for part in (iv, tag, data))


def decrypt(blob: str) -> str:
    parts = blob.split(":")
    if len(parts) != 3:
        raise DecryptionError("Invalid encrypted data format")
    try:
        iv, tag, data = (base64.b64decode(p, validate=True) for p in parts)
        plain = AESGCM(_key()).decrypt(iv, data + tag, None)
    except (binascii.Error, InvalidTag, ValueError) as e:
        raise DecryptionError("Failed to decrypt data") from e
    return plain.decode("utf-8")


def is_encrypted(value: str) -> bool:
    return value.count(":") == 2


def generate_random_password(length: int = 32) -> str:
    """Random password that satisfies Clerk's upper/lower/digit/symbol rules."""
    alphabet = string.ascii_letters + string.digits
    body = "".join(secrets.choice(alphabet) for _ in range(length))
    return (
        body
        + secrets.choice(string.ascii_uppercase)
        + secrets.choice(string.ascii_lowercase)
        + secrets.choice(string.digits)
        + secrets.choice("!@#$%^&*")
    )
