# discgraph_sdk/core/config.py
# SPDX-License-Identifier: Apache-2.0
"""
Process settings read from ``DISCGRAPH_*`` environment variables.

Credentials are only ever read from the environment; nothing here is logged
except through ``Settings.redacted()``.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Mapping, Optional, Tuple

from discgraph_sdk.core.errors import ConfigurationError

ENV_PREFIX = "DISCGRAPH_"

_MODES = {"thin", "standalone"}


def _env(environ: Mapping[str, str], name: str, default: str) -> str:
    return environ.get(ENV_PREFIX + name, default).strip()


def _float(environ: Mapping[str, str], name: str, default: float, *, minimum: float) -> float:
    raw = _env(environ, name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be a number, got {raw!r}"
        ) from None
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def _int(environ: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = _env(environ, name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be an integer, got {raw!r}"
        ) from None
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Attributes:
        arango_url / arango_user / arango_password / arango_db:
            Graph store endpoint and credentials.
        rpc_url: Ledger JSON-RPC endpoint.
        rpc_commitment: Commitment level passed to getProgramAccounts.
        rpc_timeout_s: Per-request HTTP timeout.
        poll_interval_s: Delay between poller iterations.
        programs: Extra program ids to poll besides those already stored.
        ingest_retry_attempts: Attempts for caller-side ingest retries.
        log_level: Root log level for the command line.
        mode: Gate mode for store and ledger ("thin" or "standalone").
    """
    arango_url: str = "http://localhost:8529"
    arango_user: str = "root"
    arango_password: str = field(default="", repr=False)
    arango_db: str = "disc_dir"
    rpc_url: str = "https://api.devnet.solana.com"
    rpc_commitment: str = "confirmed"
    rpc_timeout_s: float = 30.0
    poll_interval_s: float = 10.0
    programs: Tuple[str, ...] = ()
    ingest_retry_attempts: int = 3
    log_level: str = "INFO"
    mode: str = "thin"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        mode = _env(env, "MODE", cls.mode).lower()
        if mode not in _MODES:
            raise ConfigurationError(
                f"{ENV_PREFIX}MODE must be one of {sorted(_MODES)}, got {mode!r}"
            )
        programs = tuple(
            p.strip() for p in _env(env, "PROGRAMS", "").split(",") if p.strip()
        )
        return cls(
            arango_url=_env(env, "ARANGO_URL", cls.arango_url),
            arango_user=_env(env, "ARANGO_USER", cls.arango_user),
            arango_password=env.get(ENV_PREFIX + "ARANGO_PASSWORD", ""),
            arango_db=_env(env, "ARANGO_DB", cls.arango_db),
            rpc_url=_env(env, "RPC_URL", cls.rpc_url),
            rpc_commitment=_env(env, "RPC_COMMITMENT", cls.rpc_commitment),
            rpc_timeout_s=_float(env, "RPC_TIMEOUT_S", cls.rpc_timeout_s, minimum=0.1),
            poll_interval_s=_float(env, "POLL_INTERVAL_S", cls.poll_interval_s, minimum=0.0),
            programs=programs,
            ingest_retry_attempts=_int(
                env, "INGEST_RETRY_ATTEMPTS", cls.ingest_retry_attempts, minimum=1
            ),
            log_level=_env(env, "LOG_LEVEL", cls.log_level).upper(),
            mode=mode,
        )

    def redacted(self) -> dict:
        data = asdict(self)
        data["arango_password"] = "***" if self.arango_password else ""
        return data


__all__ = ["ENV_PREFIX", "Settings"]
