"""Environment-driven configuration for orchestrator and runner modes."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlrunner.errors import ConfigError

DEFAULT_NAMESPACE = "default"
DEFAULT_SECRET_NAME = "sql-connection-secret"
DEFAULT_SECRET_KEY = "CONN_STR"
DEFAULT_JOB_COUNT = 50
DEFAULT_BATCH_INTERVAL_SECONDS = 60
DEFAULT_JOB_TTL_SECONDS = 300
DEFAULT_DURATION_MINUTES = 1
DEFAULT_DIRECT_WAIT_SECONDS = 1
DEFAULT_ENDPOINT_WAIT_SECONDS = 10
DEFAULT_QUERY_TEXT = "SELECT COUNT(1) FROM [SalesLT].[Customer]"
DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

_TRUTHY = {"1", "true", "yes", "on"}


def safe_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def positive_int(x: Any, default: int) -> int:
    """Parse ``x`` as an integer > 0, falling back to ``default``."""
    value = safe_int(x, default)
    return value if value > 0 else default


def non_negative_int(x: Any, default: int) -> int:
    value = safe_int(x, default)
    return value if value >= 0 else default


def env_flag(x: Optional[str], default: bool = False) -> bool:
    if x is None or not x.strip():
        return default
    return x.strip().lower() in _TRUTHY


def _required(env: Mapping[str, str], key: str, mode: str) -> str:
    value = env.get(key)
    if not value:
        raise ConfigError(f"{key} environment variable is required in {mode} mode.")
    return value


@dataclass(frozen=True)
class RunnerConfig:
    """Settings for the query loop and the local query endpoint."""
    conn_str: str
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    query_wait_seconds: int = DEFAULT_DIRECT_WAIT_SECONDS
    use_endpoint: bool = False
    query_text: str = DEFAULT_QUERY_TEXT
    endpoint_host: str = "127.0.0.1"
    endpoint_port: int = 8080
    endpoint_startup_seconds: int = 2
    pool_min: int = 1
    pool_max: int = 5
    connect_timeout: int = 30
    odbc_driver: str = DEFAULT_ODBC_DRIVER

    @property
    def endpoint_url(self) -> str:
        return f"http://{self.endpoint_host}:{self.endpoint_port}/query"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RunnerConfig":
        env = os.environ if env is None else env
        use_endpoint = env_flag(env.get("USE_QUERY_ENDPOINT"))
        wait_default = DEFAULT_ENDPOINT_WAIT_SECONDS if use_endpoint else DEFAULT_DIRECT_WAIT_SECONDS
        pool_min = positive_int(env.get("DB_POOL_MIN"), 1)
        pool_max = max(pool_min, positive_int(env.get("DB_POOL_MAX"), 5))
        return cls(
            conn_str=_required(env, "CONN_STR", "runner"),
            duration_minutes=non_negative_int(env.get("RUNNER_DURATION_MINUTES"), DEFAULT_DURATION_MINUTES),
            query_wait_seconds=positive_int(env.get("QUERY_WAIT_SECONDS"), wait_default),
            use_endpoint=use_endpoint,
            query_text=env.get("QUERY_TEXT") or DEFAULT_QUERY_TEXT,
            endpoint_host=env.get("ENDPOINT_HOST") or "127.0.0.1",
            endpoint_port=positive_int(env.get("ENDPOINT_PORT"), 8080),
            endpoint_startup_seconds=non_negative_int(env.get("ENDPOINT_STARTUP_SECONDS"), 2),
            pool_min=pool_min,
            pool_max=pool_max,
            connect_timeout=positive_int(env.get("DB_CONNECT_TIMEOUT"), 30),
            odbc_driver=env.get("ODBC_DRIVER") or DEFAULT_ODBC_DRIVER,
        )


@dataclass(frozen=True)
class OrchestratorConfig:
    """Settings for the batch submission loop."""
    image: str
    namespace: str = DEFAULT_NAMESPACE
    secret_name: str = DEFAULT_SECRET_NAME
    secret_key: str = DEFAULT_SECRET_KEY
    job_count: int = DEFAULT_JOB_COUNT
    interval_seconds: int = DEFAULT_BATCH_INTERVAL_SECONDS
    ttl_seconds: int = DEFAULT_JOB_TTL_SECONDS
    # Forwarded to every runner job
    runner_duration_minutes: int = DEFAULT_DURATION_MINUTES
    runner_wait_seconds: Optional[int] = None
    runner_use_endpoint: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "OrchestratorConfig":
        env = os.environ if env is None else env
        # The connection string is only referenced through the secret, but an
        # orchestrator without one is misconfigured.
        _required(env, "CONN_STR", "orchestrator")
        wait = env.get("QUERY_WAIT_SECONDS")
        return cls(
            image=_required(env, "IMAGE_NAME", "orchestrator"),
            namespace=env.get("NAMESPACE") or DEFAULT_NAMESPACE,
            secret_name=env.get("SECRET_NAME") or DEFAULT_SECRET_NAME,
            secret_key=env.get("SECRET_KEY") or DEFAULT_SECRET_KEY,
            job_count=positive_int(env.get("JOB_COUNT"), DEFAULT_JOB_COUNT),
            interval_seconds=positive_int(env.get("BATCH_INTERVAL_SECONDS"), DEFAULT_BATCH_INTERVAL_SECONDS),
            ttl_seconds=positive_int(env.get("JOB_TTL_SECONDS"), DEFAULT_JOB_TTL_SECONDS),
            runner_duration_minutes=non_negative_int(env.get("RUNNER_DURATION_MINUTES"), DEFAULT_DURATION_MINUTES),
            runner_wait_seconds=positive_int(wait, 0) or None,
            runner_use_endpoint=env_flag(env.get("USE_QUERY_ENDPOINT")),
        )
