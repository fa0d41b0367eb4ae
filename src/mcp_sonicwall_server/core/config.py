"""Environment configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .cache import SWEEP_INTERVAL, TTL_LOGS, TTL_STATS, TTL_THREATS
from .models import Dialect
from .session import DEFAULT_TOKEN_LIFETIME
from .transport import DEFAULT_TIMEOUT

ENV_PREFIX = "SONICWALL_"

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class Settings:
    host: str
    username: str
    password: str
    dialect: Dialect = Dialect.V7
    use_https: bool = True
    verify_tls: bool = False
    request_timeout: float = DEFAULT_TIMEOUT
    call_timeout: float = 60.0
    max_backoff: float = 30.0
    token_lifetime: int = DEFAULT_TOKEN_LIFETIME
    cache_ttl_logs: float = TTL_LOGS
    cache_ttl_threats: float = TTL_THREATS
    cache_ttl_stats: float = TTL_STATS
    cache_sweep_interval: float = SWEEP_INTERVAL
    placeholder_on_failure: bool = True

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}"

    def __repr__(self) -> str:
        return (
            f"Settings(host={self.host!r}, username={self.username!r}, password='***', "
            f"dialect={self.dialect.value!r})"
        )


def _required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ValueError(f"Required environment variable {name} is not set")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def _positive(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from SONICWALL_* environment variables."""
    env = os.environ if env is None else env
    p = ENV_PREFIX
    return Settings(
        host=_required(env, f"{p}HOST"),
        username=_required(env, f"{p}USERNAME"),
        password=_required(env, f"{p}PASSWORD"),
        dialect=Dialect.parse(env.get(f"{p}VERSION") or "7"),
        use_https=_bool(env, f"{p}USE_HTTPS", True),
        verify_tls=_bool(env, f"{p}VERIFY_TLS", False),
        request_timeout=_positive(env, f"{p}REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
        call_timeout=_positive(env, f"{p}CALL_TIMEOUT", 60.0),
        max_backoff=_positive(env, f"{p}MAX_BACKOFF", 30.0),
        token_lifetime=int(_positive(env, f"{p}TOKEN_LIFETIME", DEFAULT_TOKEN_LIFETIME)),
        cache_ttl_logs=_positive(env, f"{p}CACHE_TTL_LOGS", TTL_LOGS),
        cache_ttl_threats=_positive(env, f"{p}CACHE_TTL_THREATS", TTL_THREATS),
        cache_ttl_stats=_positive(env, f"{p}CACHE_TTL_STATS", TTL_STATS),
        cache_sweep_interval=_positive(env, f"{p}CACHE_SWEEP_INTERVAL", SWEEP_INTERVAL),
        placeholder_on_failure=_bool(env, f"{p}PLACEHOLDER_ON_FAILURE", True),
    )
