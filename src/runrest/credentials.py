"""Credential issuance and verification.

A token bundle holds one ciphertext per key in the ring, so a bundle keeps
working after the active key index is rotated. Each ciphertext wraps a
structured payload naming the group; no string-prefix matching is involved.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from runrest import codec
from runrest.errors import AuthorizationError, DecryptionError
from runrest.keyring import ActiveKeyIndex, KeyRing

logger = logging.getLogger("runrest.credentials")

NONCE_BYTES = 16
INVALID_TOKEN = "Invalid token"


class TokenPayload(BaseModel):
    """What a single token decrypts to."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    group: str = Field(min_length=1)
    nonce: str = Field(min_length=2 * NONCE_BYTES, pattern=r"^[0-9a-f]+$")

    @classmethod
    def mint(cls, group: str) -> TokenPayload:
        return cls(group=group, nonce=secrets.token_hex(NONCE_BYTES))

    def dumps(self) -> str:
        return self.model_dump_json()


class CredentialIssuer:
    def __init__(self, keyring: KeyRing):
        self._keyring = keyring

    def issue(self, group_name: str) -> list[str]:
        """Mint a token bundle for a group: one fresh payload per key."""
        return [
            codec.encrypt(pair.public_key, TokenPayload.mint(group_name).dumps())
            for pair in self._keyring
        ]


class CredentialVerifier:
    def __init__(self, keyring: KeyRing, active_index: ActiveKeyIndex):
        self._keyring = keyring
        self._active_index = active_index

    def verify(self, bundle: Any, group_name: str) -> TokenPayload:
        """Check that the bundle's token at the active index was minted for group_name.

        Every failure raises the same AuthorizationError.
        """
        index = self._active_index.get()
        if (
            not isinstance(bundle, list)
            or len(bundle) != len(self._keyring)
            or not isinstance(bundle[index], str)
        ):
            raise AuthorizationError(INVALID_TOKEN)

        try:
            plaintext = codec.decrypt(self._keyring[index].private_key, bundle[index])
        except DecryptionError:
            logger.debug("Token at key %d for group %s did not decrypt", index, group_name)
            raise AuthorizationError(INVALID_TOKEN) from None

        try:
            payload = TokenPayload.model_validate_json(plaintext)
        except ValidationError:
            logger.debug("Token at key %d for group %s has a malformed payload", index, group_name)
            raise AuthorizationError(INVALID_TOKEN) from None

        if payload.group != group_name:
            logger.debug("Token minted for another group presented to %s", group_name)
            raise AuthorizationError(INVALID_TOKEN)
        return payload
