"""The key ring — a fixed, ordered set of RSA key pairs.

Rotation never touches the ring. Which pair decrypts incoming tokens is
chosen by ActiveKeyIndex, which lives beside the ring.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Iterator, Sequence

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from runrest.errors import DeserializationError, KeyGenerationError

DEFAULT_KEY_COUNT = 10
KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class KeyPair:
    """One RSA key pair, both halves PKCS1 PEM."""

    public_key: str
    private_key: str

    def to_dict(self) -> dict[str, str]:
        return {"publicKey": self.public_key, "privateKey": self.private_key}


def _generate_pair() -> KeyPair:
    private = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=KEY_SIZE)
    private_pem = private.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.PKCS1,
    )
    return KeyPair(public_key=public_pem.decode("ascii"), private_key=private_pem.decode("ascii"))


def _check_pair(index: int, pair: KeyPair) -> None:
    try:
        private = serialization.load_pem_private_key(pair.private_key.encode("ascii"), password=None)
        public = serialization.load_pem_public_key(pair.public_key.encode("ascii"))
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm) as exc:
        raise DeserializationError(f"Key {index}: unreadable PEM ({exc})") from exc
    if not isinstance(private, rsa.RSAPrivateKey) or not isinstance(public, rsa.RSAPublicKey):
        raise DeserializationError(f"Key {index}: not an RSA key pair")
    if private.public_key().public_numbers() != public.public_numbers():
        raise DeserializationError(f"Key {index}: public key does not match private key")


class KeyRing(Sequence[KeyPair]):
    """Immutable ordered sequence of key pairs. Index order is rotation order."""

    def __init__(self, pairs: Sequence[KeyPair]):
        if not pairs:
            raise ValueError("A key ring needs at least one key pair")
        self._pairs = tuple(pairs)

    @classmethod
    def generate(cls, n: int = DEFAULT_KEY_COUNT) -> KeyRing:
        if n < 1:
            raise KeyGenerationError(f"Key count must be at least 1, got {n}")
        try:
            return cls([_generate_pair() for _ in range(n)])
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise KeyGenerationError(f"RSA key generation failed: {exc}") from exc

    @classmethod
    def load(cls, serialized: str | bytes) -> KeyRing:
        """Load a ring written by dumps(): a JSON list of {publicKey, privateKey}."""
        try:
            data = json.loads(serialized)
        except (ValueError, TypeError) as exc:
            raise DeserializationError(f"Key ring is not valid JSON: {exc}") from exc
        if not isinstance(data, list) or not data:
            raise DeserializationError("Key ring must be a non-empty JSON list")

        pairs = []
        for index, item in enumerate(data):
            if not isinstance(item, dict):
                raise DeserializationError(f"Key {index}: expected an object")
            public_key = item.get("publicKey")
            private_key = item.get("privateKey")
            if not isinstance(public_key, str) or not isinstance(private_key, str):
                raise DeserializationError(f"Key {index}: publicKey and privateKey must be strings")
            pair = KeyPair(public_key=public_key, private_key=private_key)
            _check_pair(index, pair)
            pairs.append(pair)
        return cls(pairs)

    def dumps(self) -> str:
        return json.dumps([pair.to_dict() for pair in self._pairs])

    def __getitem__(self, index):
        return self._pairs[index]

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[KeyPair]:
        return iter(self._pairs)

    def __repr__(self) -> str:
        return f"KeyRing(size={len(self._pairs)})"


class ActiveKeyIndex:
    """Which key pair decrypts incoming tokens. Reads and writes are atomic."""

    def __init__(self, size: int, index: int = 0):
        self._size = size
        self._lock = threading.Lock()
        self._index = self._validate(index)

    def _validate(self, index: int) -> int:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < self._size:
            raise ValueError(f"Active key index must be in [0, {self._size}), got {index!r}")
        return index

    @property
    def size(self) -> int:
        return self._size

    def get(self) -> int:
        with self._lock:
            return self._index

    def set(self, index: int) -> int:
        index = self._validate(index)
        with self._lock:
            self._index = index
        return index

    def advance(self) -> int:
        """Rotate to the next key, wrapping around the ring."""
        with self._lock:
            self._index = (self._index + 1) % self._size
            return self._index
