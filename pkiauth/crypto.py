"""RSA signature helpers for the challenge-response protocol.

The scheme is fixed: RSA with PKCS#1 v1.5 padding over a SHA-256 digest.
Public keys travel as base64 of a DER-encoded SubjectPublicKeyInfo.
"""

from __future__ import annotations

import base64
import binascii
import re

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import CryptoError

DEFAULT_KEY_BITS = 2048
PUBLIC_EXPONENT = 65537

_NOT_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def _b64decode(value: str, what: str) -> bytes:
    # Padding is optional and the URL-safe alphabet is accepted; characters
    # outside the alphabet are ignored.
    text = _NOT_BASE64.sub("", value.replace("-", "+").replace("_", "/"))
    if len(text) % 4 == 1:
        text = text[:-1]
    try:
        return base64.b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as exc:
        raise CryptoError(f"invalid base64 {what}: {exc}") from exc


def load_public_key(public_key_b64: str) -> rsa.RSAPublicKey:
    """Decode a base64 SPKI DER public key, rejecting anything but RSA."""

    der = _b64decode(public_key_b64, "public key")
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CryptoError(f"invalid public key: {exc}") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise CryptoError("public key is not an RSA key")
    return key


def decode_signature(signature_b64: str) -> bytes:
    return _b64decode(signature_b64, "signature")


def verify_signature(public_key_b64: str, signature_b64: str, message: str) -> bool:
    """Check ``signature_b64`` over the UTF-8 bytes of ``message``.

    Returns ``False`` for a signature that does not verify, including an
    empty one, and raises :class:`CryptoError` when the key cannot be decoded.
    """

    public_key = load_public_key(public_key_b64)
    signature = decode_signature(signature_b64)
    if not signature:
        return False
    try:
        public_key.verify(signature, message.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def generate_private_key(bits: int = DEFAULT_KEY_BITS) -> rsa.RSAPrivateKey:
    """Generate a fresh RSA private key for a participant."""

    return rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=bits)


def public_key_to_base64(public_key: rsa.RSAPublicKey) -> str:
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


def private_key_to_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key_pem(data: bytes) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(data, password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("Private key is not an RSA key")
    return key


def sign_challenge(private_key: rsa.RSAPrivateKey, challenge: str) -> str:
    """Sign a challenge the way a participant does, returning base64."""

    signature = private_key.sign(challenge.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


__all__ = [
    "decode_signature",
    "generate_private_key",
    "load_private_key_pem",
    "load_public_key",
    "private_key_to_pem",
    "public_key_to_base64",
    "sign_challenge",
    "verify_signature",
]
