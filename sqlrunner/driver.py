"""Bounded query loop run by each runner job."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import requests
from sqlalchemy.engine import Engine

from sqlrunner.config import RunnerConfig
from sqlrunner.database import execute_scalar

logger = logging.getLogger(__name__)

QueryFn = Callable[[], Awaitable[Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DriverState:
    """Per-run loop state."""
    started_at: datetime
    ends_at: datetime
    executed: int = 0
    failed: int = 0


def direct_query_fn(engine: Engine, query_text: str) -> QueryFn:
    """Query the database directly; a NullPool engine opens a fresh connection each time."""
    async def _query() -> Any:
        return await asyncio.to_thread(execute_scalar, engine, query_text)
    return _query


def endpoint_query_fn(url: str, timeout: float = 30.0, session: Optional[requests.Session] = None) -> QueryFn:
    """Query through the local HTTP endpoint and return the response body."""
    session = session or requests.Session()

    def _get() -> str:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
        return response.text.strip()

    async def _query() -> Any:
        return await asyncio.to_thread(_get)
    return _query


def _describe(exc: BaseException) -> str:
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return f"{exc} {exc.response.text.strip()}".strip()
    return str(exc) or exc.__class__.__name__


class QueryDriver:
    """Runs ``query_fn`` sequentially until the configured duration has elapsed."""

    def __init__(
        self,
        cfg: RunnerConfig,
        query_fn: QueryFn,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cfg = cfg
        self.query_fn = query_fn
        self._clock = clock
        self._sleep = sleep

    def _minutes_label(self) -> str:
        minutes = self.cfg.duration_minutes
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"

    async def run(self) -> DriverState:
        started = self._clock()
        state = DriverState(
            started_at=started,
            ends_at=started + timedelta(minutes=self.cfg.duration_minutes),
        )
        logger.info(
            f"Starting SQL query execution for {self._minutes_label()} "
            f"(until {state.ends_at:%Y-%m-%d %H:%M:%S} UTC)..."
        )

        # The end time is only checked between iterations; an in-flight query finishes.
        while self._clock() < state.ends_at:
            try:
                result = await self.query_fn()
            except Exception as e:
                state.failed += 1
                logger.error(f"ERROR executing query: {_describe(e)}")
            else:
                state.executed += 1
                logger.info(f"Query {state.executed}: {result}")

            await self._sleep(self.cfg.query_wait_seconds)

        logger.info(f"Runner completed. {state.executed} queries executed in {self._minutes_label()}.")
        if state.failed:
            logger.warning(f"{state.failed} queries failed")
        return state
