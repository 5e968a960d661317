"""Connection settings for the Lotus daemon and miner APIs."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Dict, Mapping, Optional, Tuple

from .types import ConfigurationError

DEFAULT_DAEMON_ADDR = "127.0.0.1:1234"
DEFAULT_MINER_ADDR = "127.0.0.1:2345"
DEFAULT_API_VERSION = "v0"
DEFAULT_TIMEOUT = 5.0
DEFAULT_STORAGE_CONCURRENCY = 8

API_VERSIONS = ("v0", "v1")

# Lotus' own "<token>:<multiaddr>" variables, used as fallbacks.
FULLNODE_API_INFO_ENV = "FULLNODE_API_INFO"
MINER_API_INFO_ENV = "MINER_API_INFO"

ENV_VARS = {
    "daemon_addr": "LOTUS_DAEMON_ADDR",
    "daemon_token": "LOTUS_DAEMON_TOKEN",
    "daemon_api_version": "LOTUS_DAEMON_API_VERSION",
    "daemon_enabled": "LOTUS_DAEMON_ENABLED",
    "miner_addr": "LOTUS_MINER_ADDR",
    "miner_token": "LOTUS_MINER_TOKEN",
    "miner_enabled": "LOTUS_MINER_ENABLED",
    "timeout": "LOTUS_RPC_TIMEOUT",
    "storage_concurrency": "LOTUS_STORAGE_CONCURRENCY",
    "cycle_timeout": "LOTUS_CYCLE_TIMEOUT",
}

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class LotusConfig:
    """Validated connection settings.

    Build one with `LotusConfig.from_env()` (or the constructor) and pass it
    to the collector; nothing downstream reads the environment.
    """
    daemon_addr: str = DEFAULT_DAEMON_ADDR
    daemon_token: str = ""
    daemon_api_version: str = DEFAULT_API_VERSION
    daemon_enabled: bool = True
    miner_addr: str = DEFAULT_MINER_ADDR
    miner_token: str = ""
    miner_enabled: bool = True
    timeout: float = DEFAULT_TIMEOUT
    storage_concurrency: int = DEFAULT_STORAGE_CONCURRENCY
    cycle_timeout: Optional[float] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        errors = []
        if self.daemon_enabled:
            errors.extend(_check_endpoint("daemon", self.daemon_addr, self.daemon_token))
            if self.daemon_api_version not in API_VERSIONS:
                errors.append(
                    f"daemon API version must be one of {', '.join(API_VERSIONS)}, "
                    f"got {self.daemon_api_version!r}"
                )
        if self.miner_enabled:
            errors.extend(_check_endpoint("miner", self.miner_addr, self.miner_token))
        if self.timeout <= 0:
            errors.append(f"timeout must be > 0, got {self.timeout}")
        if self.storage_concurrency < 1:
            errors.append(f"storage concurrency must be >= 1, got {self.storage_concurrency}")
        if self.cycle_timeout is not None and self.cycle_timeout <= 0:
            errors.append(f"cycle timeout must be > 0, got {self.cycle_timeout}")
        if errors:
            raise ConfigurationError("; ".join(errors))

    @property
    def daemon_url(self) -> str:
        return f"http://{self.daemon_addr}/rpc/{self.daemon_api_version}"

    @property
    def miner_url(self) -> str:
        # The miner only serves the v0 API.
        return f"http://{self.miner_addr}/rpc/v0"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'LotusConfig':
        """Read settings from LOTUS_* variables, then apply non-None overrides.

        Raises:
            ConfigurationError: a value is malformed or a required one is missing.
        """
        if environ is None:
            environ = os.environ
        values: Dict[str, object] = {}

        for name, (addr, token) in (
            ("daemon", _parse_api_info(environ.get(FULLNODE_API_INFO_ENV, ""))),
            ("miner", _parse_api_info(environ.get(MINER_API_INFO_ENV, ""))),
        ):
            if addr:
                values[f"{name}_addr"] = addr
            if token:
                values[f"{name}_token"] = token

        types = {f.name: f.type for f in fields(cls)}
        for key, var in ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw.strip() == "":
                continue
            values[key] = _coerce(var, raw.strip(), types[key])

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _check_endpoint(name: str, addr: str, token: str):
    errors = []
    host, sep, port = (addr or "").rpartition(":")
    if not addr:
        errors.append(f"{name} address can't be an empty string")
    elif not sep or not host:
        errors.append(f"{name} address must be host:port, got {addr!r}")
    elif not port.isdigit() or not (1 <= int(port) <= 65535):
        errors.append(f"{name} port must be between 1 and 65535, got {port!r}")
    if not token:
        errors.append(f"{name} token can't be an empty string")
    return errors


def _coerce(var: str, raw: str, type_name: str):
    # Annotations are strings under `from __future__ import annotations`.
    try:
        if type_name == "bool":
            if raw.lower() in _TRUE:
                return True
            if raw.lower() in _FALSE:
                return False
            raise ValueError(f"expected a boolean, got {raw!r}")
        if type_name == "int":
            return int(raw)
        if type_name in ("float", "Optional[float]"):
            return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{var}: {e}") from e
    return raw


def _parse_api_info(info: str) -> Tuple[str, str]:
    """Split a `<token>:/ip4/<host>/tcp/<port>/http` string into (addr, token).

    The token is optional. IPv6 hosts come back bracketed (`[::1]:1234`).
    """
    if not info:
        return "", ""
    if info.startswith("/"):
        # no token, just the multiaddr
        token, maddr = "", info
    else:
        token, _, maddr = info.partition(":")
    parts = maddr.strip("/").split("/")
    host = port = ""
    for proto, value in zip(parts[::2], parts[1::2]):
        if proto == "ip6":
            host = f"[{value}]"
        elif proto in ("ip4", "dns", "dns4", "dns6"):
            host = value
        elif proto == "tcp":
            port = value
    if not host or not port:
        raise ConfigurationError(f"can't parse API info multiaddr {maddr!r}")
    return f"{host}:{port}", token
