"""Generate Kubernetes V1Job objects for runner batches."""

from __future__ import annotations

import platform
from typing import Dict, List, Optional

from kubernetes.client import (
    V1Container,
    V1EnvVar,
    V1EnvVarSource,
    V1Job,
    V1JobSpec,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
    V1SecretKeySelector,
)

APP_LABEL = "sql-runner"
CONTAINER_NAME = "sql-runner"


def host_node_os(system: Optional[str] = None) -> str:
    """Map the orchestrator's own platform to a ``kubernetes.io/os`` value.

    Runner jobs land on nodes matching the orchestrator's OS, not the
    workload's. Only correct while both images target the same platform.
    """
    system = (system or platform.system()).lower()
    return "windows" if system.startswith("win") else "linux"


def job_name_for(batch_id: str, sequence: int) -> str:
    return f"{APP_LABEL}-{batch_id}-{sequence}"


def _batch_labels(batch_id: str) -> Dict[str, str]:
    return {"app": APP_LABEL, "batch": batch_id}


def _runner_env(
    secret_name: str,
    secret_key: str,
    duration_minutes: int,
    wait_seconds: Optional[int],
    use_endpoint: bool,
) -> List[V1EnvVar]:
    env = [
        V1EnvVar(name="MODE", value="runner"),
        V1EnvVar(name="RUNNER_DURATION_MINUTES", value=str(duration_minutes)),
        V1EnvVar(name="USE_QUERY_ENDPOINT", value="true" if use_endpoint else "false"),
        # Reference the secret, never the value
        V1EnvVar(
            name="CONN_STR",
            value_from=V1EnvVarSource(
                secret_key_ref=V1SecretKeySelector(name=secret_name, key=secret_key),
            ),
        ),
    ]
    if wait_seconds:
        env.insert(2, V1EnvVar(name="QUERY_WAIT_SECONDS", value=str(wait_seconds)))
    return env


def generate_runner_job(
    batch_id: str,
    sequence: int,
    image: str,
    secret_name: str,
    secret_key: str = "CONN_STR",
    ttl_seconds: int = 300,
    duration_minutes: int = 1,
    wait_seconds: Optional[int] = None,
    use_endpoint: bool = False,
    node_os: Optional[str] = None,
) -> V1Job:
    """
    Generate a run-to-completion V1Job that starts this program in runner mode.

    Args:
        batch_id: UTC timestamp shared by every job of the batch
        sequence: 1-based position of the job within the batch
        image: Container image reference
        secret_name: Secret holding the connection string
        secret_key: Key of the connection string inside the secret
        ttl_seconds: Retention after completion before cluster-side cleanup
        duration_minutes: Runner duration forwarded to the container
        wait_seconds: Runner wait between queries (omitted to use its default)
        use_endpoint: Whether the runner goes through the local query endpoint
        node_os: Node OS selector (defaults to the orchestrator host OS)

    Returns:
        V1Job object ready for creation
    """
    job_name = job_name_for(batch_id, sequence)
    labels = _batch_labels(batch_id)

    container = V1Container(
        name=CONTAINER_NAME,
        image=image,
        env=_runner_env(secret_name, secret_key, duration_minutes, wait_seconds, use_endpoint),
    )

    pod_spec = V1PodSpec(
        containers=[container],
        restart_policy="Never",
        node_selector={"kubernetes.io/os": node_os or host_node_os()},
    )

    return V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=V1ObjectMeta(name=job_name, labels=dict(labels)),
        spec=V1JobSpec(
            backoff_limit=0,
            ttl_seconds_after_finished=ttl_seconds,
            template=V1PodTemplateSpec(
                metadata=V1ObjectMeta(labels=dict(labels)),
                spec=pod_spec,
            ),
        ),
    )
