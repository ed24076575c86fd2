from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Mapping, Optional

from sqlrunner.config import OrchestratorConfig, RunnerConfig
from sqlrunner.errors import ConfigError

logger = logging.getLogger(__name__)

MODES = ("orchestrator", "runner")


def configure_logging(level: Optional[str] = None) -> None:
    """Plain-text diagnostics on stdout."""
    logging.basicConfig(
        stream=sys.stdout,
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run_orchestrator(cfg: OrchestratorConfig) -> None:
    from sqlrunner.submitter import BatchSubmitter

    logger.info(
        f"Orchestrator mode: Creating {cfg.job_count} Kubernetes jobs every "
        f"{cfg.interval_seconds} seconds in namespace '{cfg.namespace}'..."
    )
    await BatchSubmitter(cfg).run_forever()


def main(env: Optional[Mapping[str, str]] = None) -> int:
    env = os.environ if env is None else env
    mode = (env.get("MODE") or "runner").lower()
    logger.info(f"Starting application in {mode.upper()} mode...")

    if mode not in MODES:
        logger.error(f"Invalid MODE '{mode}'. Must be 'orchestrator' or 'runner'.")
        return 1

    config_cls = OrchestratorConfig if mode == "orchestrator" else RunnerConfig
    try:
        cfg = config_cls.from_env(env)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    try:
        if mode == "orchestrator":
            asyncio.run(run_orchestrator(cfg))
        else:
            from sqlrunner.runner import run_runner
            asyncio.run(run_runner(cfg))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


def cli() -> None:
    configure_logging()
    sys.exit(main())


if __name__ == "__main__":
    cli()
