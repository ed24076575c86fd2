"""SQLAlchemy engines for the runner.

Two engine flavours:
- direct: NullPool, a new connection per query (the plain runner loop)
- pooled: QueuePool bounded by DB_POOL_MIN/DB_POOL_MAX (the local endpoint)
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote_plus

from sqlalchemy import create_engine, pool, text
from sqlalchemy.engine import Engine

from sqlrunner.config import RunnerConfig

logger = logging.getLogger(__name__)

TIMESTAMP_QUERY = "SELECT CURRENT_TIMESTAMP"


def build_url(conn_str: str, odbc_driver: str) -> str:
    """Turn CONN_STR into a SQLAlchemy URL.

    Strings that already look like URLs are used as-is. Anything else is
    an ODBC-style ``key=value;`` connection string handed to pyodbc.
    """
    conn_str = conn_str.strip()
    if "://" in conn_str:
        return conn_str
    if "driver=" not in conn_str.lower():
        conn_str = f"Driver={{{odbc_driver}}};{conn_str}"
    return f"mssql+pyodbc:///?odbc_connect={quote_plus(conn_str)}"


def create_direct_engine(cfg: RunnerConfig) -> Engine:
    logger.info("Using NullPool - new connection per query")
    return create_engine(
        build_url(cfg.conn_str, cfg.odbc_driver),
        poolclass=pool.NullPool,
        connect_args={"timeout": cfg.connect_timeout},
    )


def create_pooled_engine(cfg: RunnerConfig) -> Engine:
    logger.info(
        f"Using connection pooling - pool_size={cfg.pool_min}, max_overflow={cfg.pool_max - cfg.pool_min}"
    )
    return create_engine(
        build_url(cfg.conn_str, cfg.odbc_driver),
        poolclass=pool.QueuePool,
        pool_size=cfg.pool_min,
        max_overflow=cfg.pool_max - cfg.pool_min,
        pool_timeout=cfg.connect_timeout,
        pool_pre_ping=True,
        connect_args={"timeout": cfg.connect_timeout},
    )


def execute_scalar(engine: Engine, query_text: str) -> Any:
    """Open a connection from ``engine``, run ``query_text`` and return its scalar."""
    with engine.connect() as conn:
        return conn.execute(text(query_text)).scalar()
