"""Configuration for the RunRest gateway.

Reads from config/runrest.ini if present, environment variables override.
Group secrets come from a [groups] section or GROUP_<NAME>_PASSWORD variables.
Nothing else in the package reads the environment: the loaded config object
is handed to the server explicitly.
"""

from __future__ import annotations

import configparser
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

_CONFIG_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "runrest.ini"
_GROUP_SECRET_ENV = re.compile(r"^GROUP_(?P<name>[A-Z0-9_]+)_PASSWORD$")


@dataclass(frozen=True)
class RunRestConfig:
    """Gateway configuration. Immutable once loaded."""

    host: str = "127.0.0.1"
    port: int = 8000
    api_key: str = ""
    key_count: int = 10
    active_key_index: int = 0
    keys: str | None = None
    group_secrets: Mapping[str, str] = field(default_factory=dict)
    setup: str = ""

    def __post_init__(self):
        normalized = {name.upper(): secret for name, secret in self.group_secrets.items()}
        object.__setattr__(self, "group_secrets", MappingProxyType(normalized))

    def group_secret(self, group_name: str) -> str | None:
        """Secret for a group, looked up by its uppercased name."""
        secret = self.group_secrets.get(group_name.upper())
        return secret or None


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunRestConfig:
    """Load config from INI file, then override with environment variables."""
    path = config_path or _CONFIG_FILE
    env = os.environ if environ is None else environ
    kwargs: dict = {}
    secrets: dict[str, str] = {}

    if path.exists():
        parser = configparser.ConfigParser()
        parser.read(path)
        if parser.has_section("gateway"):
            for ini_key in ("api_key", "host", "setup"):
                val = parser.get("gateway", ini_key, fallback=None)
                if val is not None:
                    kwargs[ini_key] = val
            port_str = parser.get("gateway", "port", fallback=None)
            if port_str is not None:
                kwargs["port"] = int(port_str)
        if parser.has_section("keys"):
            for ini_key, config_key in [
                ("count", "key_count"),
                ("active_index", "active_key_index"),
            ]:
                val = parser.get("keys", ini_key, fallback=None)
                if val is not None:
                    kwargs[config_key] = int(val)
        if parser.has_section("groups"):
            for name, secret in parser.items("groups"):
                secrets[name.upper()] = secret

    env_map = {
        "RUNREST_HOST": "host",
        "RUNREST_PORT": "port",
        "RUNREST_API_KEY": "api_key",
        "RUNREST_KEYS": "keys",
        "RUNREST_KEY_COUNT": "key_count",
        "RUNREST_ACTIVE_KEY_INDEX": "active_key_index",
        "RUNREST_SETUP": "setup",
    }
    for env_key, config_key in env_map.items():
        val = env.get(env_key)
        if val is not None:
            if config_key in ("port", "key_count", "active_key_index"):
                kwargs[config_key] = int(val)
            else:
                kwargs[config_key] = val

    for env_key, val in env.items():
        match = _GROUP_SECRET_ENV.match(env_key)
        if match and val:
            secrets[match.group("name")] = val

    kwargs = {k: v for k, v in kwargs.items() if v is not None}
    return RunRestConfig(group_secrets=secrets, **kwargs)
