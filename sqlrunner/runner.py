"""Runner mode: drive queries directly or through the local endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sqlrunner.config import RunnerConfig
from sqlrunner.database import create_direct_engine, create_pooled_engine
from sqlrunner.driver import DriverState, QueryDriver, direct_query_fn, endpoint_query_fn
from sqlrunner.endpoint import EndpointServer, create_app

logger = logging.getLogger(__name__)


async def run_direct(cfg: RunnerConfig, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> DriverState:
    engine = create_direct_engine(cfg)
    try:
        driver = QueryDriver(cfg, direct_query_fn(engine, cfg.query_text), sleep=sleep)
        return await driver.run()
    finally:
        engine.dispose()


async def run_with_endpoint(
    cfg: RunnerConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    server: Optional[EndpointServer] = None,
) -> DriverState:
    engine = create_pooled_engine(cfg)
    server = server or EndpointServer(create_app(engine), cfg.endpoint_host, cfg.endpoint_port)
    server.start()
    try:
        logger.info(f"Waiting {cfg.endpoint_startup_seconds} seconds for the query endpoint to start...")
        await sleep(cfg.endpoint_startup_seconds)
        driver = QueryDriver(cfg, endpoint_query_fn(server.url), sleep=sleep)
        return await driver.run()
    finally:
        server.stop()
        engine.dispose()


async def run_runner(cfg: RunnerConfig) -> DriverState:
    logger.info("Runner mode: Executing SQL queries...")
    if cfg.use_endpoint:
        return await run_with_endpoint(cfg)
    return await run_direct(cfg)
