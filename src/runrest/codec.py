"""Token codec — RSA-OAEP encryption of identity strings, base64 on the wire."""

from __future__ import annotations

import base64
import binascii
from functools import lru_cache

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from runrest.errors import DecryptionError

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


@lru_cache(maxsize=64)
def _public_key(pem: str) -> rsa.RSAPublicKey:
    key = serialization.load_pem_public_key(pem.encode("ascii"))
    if not isinstance(key, rsa.RSAPublicKey):
        raise TypeError("Token keys must be RSA public keys")
    return key


@lru_cache(maxsize=64)
def _private_key(pem: str) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(pem.encode("ascii"), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise TypeError("Token keys must be RSA private keys")
    return key


def encrypt(public_key: str, plaintext: str) -> str:
    ciphertext = _public_key(public_key).encrypt(plaintext.encode("utf-8"), _OAEP)
    return base64.b64encode(ciphertext).decode("ascii")


def decrypt(private_key: str, ciphertext: str) -> str:
    """Inverse of encrypt(). Any failure is reported as DecryptionError."""
    key = _private_key(private_key)
    try:
        raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        return key.decrypt(raw, _OAEP).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeError, UnsupportedAlgorithm) as exc:
        raise DecryptionError("Ciphertext could not be decrypted") from exc
