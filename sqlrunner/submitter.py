"""Orchestrator loop submitting batches of runner jobs to Kubernetes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client import V1Job
from kubernetes.client.exceptions import ApiException

from k8s_executor.job_gen import generate_runner_job
from sqlrunner.config import OrchestratorConfig
from sqlrunner.errors import CredentialNotFoundError

logger = logging.getLogger(__name__)

BATCH_ID_FORMAT = "%Y%m%d%H%M%S"


@dataclass
class JobSubmission:
    """Outcome of a single create-job call."""
    name: str
    ok: bool
    error: Optional[str] = None


@dataclass
class BatchOutcome:
    """Outcome of one submission round."""
    batch_id: Optional[str]
    requested: int
    created: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed


def _load_kube_config() -> None:
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except Exception:
        try:
            config.load_kube_config()
            logger.info("Loaded kubeconfig")
        except Exception as e:
            logger.warning(f"Could not load Kubernetes config: {e}")


def _describe(exc: BaseException) -> str:
    if isinstance(exc, ApiException):
        return f"status={exc.status}, reason={exc.reason}"
    return str(exc) or exc.__class__.__name__


class BatchSubmitter:
    """Periodically creates a batch of runner jobs and waits for every submission."""

    def __init__(
        self,
        cfg: OrchestratorConfig,
        batch_api: Optional[client.BatchV1Api] = None,
        core_api: Optional[client.CoreV1Api] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        node_os: Optional[str] = None,
    ) -> None:
        """
        Initialize the submitter.

        Args:
            cfg: Orchestrator configuration
            batch_api: BatchV1Api used to create jobs (built from kube config if omitted)
            core_api: CoreV1Api used to read the credential secret
            sleep: Coroutine used between rounds
            node_os: Override for the node OS selector of generated jobs
        """
        self.cfg = cfg
        if batch_api is None or core_api is None:
            _load_kube_config()
        self.batch = batch_api or client.BatchV1Api()
        self.core = core_api or client.CoreV1Api()
        self._sleep = sleep
        self._node_os = node_os

    def verify_credential(self) -> None:
        """
        Confirm the credential secret exists.

        Raises:
            CredentialNotFoundError: If the secret is missing
            ApiException: For any other Kubernetes API failure
        """
        try:
            self.core.read_namespaced_secret(name=self.cfg.secret_name, namespace=self.cfg.namespace)
        except ApiException as e:
            if e.status == 404:
                raise CredentialNotFoundError(self.cfg.namespace, self.cfg.secret_name) from e
            raise

    @staticmethod
    def make_batch_id(now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        return now.strftime(BATCH_ID_FORMAT)

    def build_jobs(self, batch_id: str) -> List[V1Job]:
        return [
            generate_runner_job(
                batch_id=batch_id,
                sequence=seq,
                image=self.cfg.image,
                secret_name=self.cfg.secret_name,
                secret_key=self.cfg.secret_key,
                ttl_seconds=self.cfg.ttl_seconds,
                duration_minutes=self.cfg.runner_duration_minutes,
                wait_seconds=self.cfg.runner_wait_seconds,
                use_endpoint=self.cfg.runner_use_endpoint,
                node_os=self._node_os,
            )
            for seq in range(1, self.cfg.job_count + 1)
        ]

    async def submit_job(self, job: V1Job) -> JobSubmission:
        """Create one job; failures are logged and returned, never raised."""
        name = job.metadata.name
        try:
            await asyncio.to_thread(
                self.batch.create_namespaced_job,
                namespace=self.cfg.namespace,
                body=job,
            )
        except Exception as e:
            message = _describe(e)
            logger.error(f"ERROR creating job {name}: {message}")
            return JobSubmission(name=name, ok=False, error=message)
        logger.info(f"Created job: {name}")
        return JobSubmission(name=name, ok=True)

    async def run_round(self) -> BatchOutcome:
        """Run a single submission round. Never raises."""
        requested = self.cfg.job_count
        try:
            await asyncio.to_thread(self.verify_credential)
        except Exception as e:
            return BatchOutcome(batch_id=None, requested=requested, error=_describe(e))

        batch_id = self.make_batch_id()
        logger.info(f"Creating {requested} jobs in batch {batch_id}...")
        try:
            jobs = self.build_jobs(batch_id)
        except Exception as e:
            return BatchOutcome(batch_id=batch_id, requested=requested, error=_describe(e))

        results = await asyncio.gather(*(self.submit_job(job) for job in jobs))

        outcome = BatchOutcome(batch_id=batch_id, requested=requested)
        for result in results:
            if result.ok:
                outcome.created.append(result.name)
            else:
                outcome.failed[result.name] = result.error or "unknown error"
        return outcome

    def _log_outcome(self, outcome: BatchOutcome) -> None:
        if outcome.error is not None:
            logger.error(f"ERROR creating jobs: {outcome.error}")
        elif outcome.failed:
            logger.warning(
                f"Created {len(outcome.created)}/{outcome.requested} jobs in batch {outcome.batch_id} "
                f"({len(outcome.failed)} failed)"
            )
        else:
            logger.info(f"Successfully created {len(outcome.created)} jobs in batch {outcome.batch_id}")

    async def run_forever(self, max_rounds: Optional[int] = None) -> List[BatchOutcome]:
        """
        Submit a batch every interval. Runs until cancelled unless ``max_rounds``
        is given.

        Returns:
            Outcomes of the completed rounds (only reachable with ``max_rounds``)
        """
        outcomes: List[BatchOutcome] = []
        rounds = 0
        while max_rounds is None or rounds < max_rounds:
            outcome = await self.run_round()
            self._log_outcome(outcome)
            if max_rounds is not None:
                outcomes.append(outcome)
            rounds += 1

            logger.info(f"Waiting {self.cfg.interval_seconds} seconds before creating next batch...")
            await self._sleep(self.cfg.interval_seconds)
        return outcomes
