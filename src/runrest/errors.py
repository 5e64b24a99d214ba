"""Error taxonomy for RunRest.

Server-side errors carry the HTTP status the gateway answers with.
Authorization failures are deliberately coarse: a caller never learns
whether a token was undecryptable or minted for another group.
"""

from __future__ import annotations


class RunRestError(Exception):
    """Base class for all RunRest errors."""

    status_code = 500


class ConfigurationError(RunRestError):
    """A group cannot be added (missing secret, bad name, duplicate)."""


class UnknownGroupError(RunRestError):
    """A function was defined against a group that was never added."""


class SignatureError(RunRestError):
    """A callable does not fit the one-argument call signature."""


class KeyGenerationError(RunRestError):
    """The key ring could not be generated."""


class DeserializationError(RunRestError):
    """A serialized key ring could not be loaded."""


class DecryptionError(RunRestError):
    """Ciphertext was malformed or not produced under the matching key."""


class AuthorizationError(RunRestError):
    status_code = 401


class GroupNotFoundError(RunRestError):
    status_code = 404


class FunctionNotFoundError(RunRestError):
    status_code = 404

    def __init__(self, name: str):
        super().__init__(f'Function "{name}" not found')
        self.name = name


class InvalidArgumentError(RunRestError):
    status_code = 422


class FunctionExecutionError(RunRestError):
    """The invoked function raised. The message is forwarded verbatim."""

    status_code = 500


# ── Client side ───────────────────────────────────────────────


class ClientError(Exception):
    """Base class for errors raised by ClientSession."""


class RegistrationError(ClientError):
    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"Server responded with a status of {status_code}")
        self.status_code = status_code
        self.message = message


class NotRegisteredError(ClientError):
    def __init__(self):
        super().__init__("Not registered to any group.")


class ExecutionError(ClientError):
    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"Server responded with a status of {status_code}")
        self.status_code = status_code
        self.message = message
