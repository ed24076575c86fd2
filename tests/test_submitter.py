import asyncio
import re
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from sqlrunner.config import OrchestratorConfig
from sqlrunner.submitter import BatchSubmitter

NAME_RE = re.compile(r"^sql-runner-(\d{14})-(\d+)$")


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class RecordingBatchApi:
    """Thread-safe stand-in for BatchV1Api.create_namespaced_job."""

    def __init__(self, fail=lambda name: False):
        self.created = []
        self.namespaces = set()
        self._fail = fail
        self._lock = threading.Lock()

    def create_namespaced_job(self, namespace, body):
        name = body.metadata.name
        with self._lock:
            self.created.append(name)
            self.namespaces.add(namespace)
        if self._fail(name):
            raise ApiException(status=409, reason="Conflict")
        return body


@pytest.fixture
def cfg():
    return OrchestratorConfig(image="registry/sql-runner:1", namespace="load", job_count=5, interval_seconds=30)


def make_submitter(cfg, batch_api, core_api=None, sleep=None):
    return BatchSubmitter(
        cfg,
        batch_api=batch_api,
        core_api=core_api or MagicMock(),
        sleep=sleep or FakeSleep(),
        node_os="linux",
    )


def test_round_submits_exactly_n_distinct_jobs(cfg):
    api = RecordingBatchApi()
    submitter = make_submitter(cfg, api)

    outcome = asyncio.run(submitter.run_round())

    assert outcome.ok
    assert len(api.created) == cfg.job_count
    assert len(set(api.created)) == cfg.job_count
    assert api.namespaces == {"load"}

    matches = [NAME_RE.match(name) for name in api.created]
    assert all(matches)
    assert {m.group(1) for m in matches} == {outcome.batch_id}
    assert sorted(int(m.group(2)) for m in matches) == list(range(1, cfg.job_count + 1))
    assert sorted(outcome.created) == sorted(api.created)


def test_round_completes_when_every_creation_fails(cfg):
    api = RecordingBatchApi(fail=lambda name: True)
    sleep = FakeSleep()
    submitter = make_submitter(cfg, api, sleep=sleep)

    outcomes = asyncio.run(submitter.run_forever(max_rounds=1))

    assert len(api.created) == cfg.job_count
    outcome = outcomes[0]
    assert outcome.error is None
    assert outcome.created == []
    assert len(outcome.failed) == cfg.job_count
    assert all("409" in message for message in outcome.failed.values())
    assert sleep.calls == [30]


def test_one_failure_does_not_affect_siblings(cfg):
    api = RecordingBatchApi(fail=lambda name: name.endswith("-2"))
    submitter = make_submitter(cfg, api)

    outcome = asyncio.run(submitter.run_round())

    assert len(outcome.created) == cfg.job_count - 1
    assert list(outcome.failed) == [f"sql-runner-{outcome.batch_id}-2"]


def test_missing_credential_skips_creation_and_still_waits(cfg, caplog):
    api = RecordingBatchApi()
    core = MagicMock()
    core.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")
    sleep = FakeSleep()
    submitter = make_submitter(cfg, api, core_api=core, sleep=sleep)

    outcomes = asyncio.run(submitter.run_forever(max_rounds=2))

    assert api.created == []
    assert all(o.batch_id is None and "sql-connection-secret" in o.error for o in outcomes)
    assert sleep.calls == [30, 30]
    core.read_namespaced_secret.assert_called_with(name="sql-connection-secret", namespace="load")
    assert "ERROR creating jobs" in caplog.text


def test_credential_api_error_is_contained(cfg):
    core = MagicMock()
    core.read_namespaced_secret.side_effect = ApiException(status=500, reason="Internal Server Error")
    submitter = make_submitter(cfg, RecordingBatchApi(), core_api=core)

    outcome = asyncio.run(submitter.run_round())

    assert outcome.error == "status=500, reason=Internal Server Error"


def test_unexpected_exception_is_logged_per_job(cfg):
    api = MagicMock()
    api.create_namespaced_job.side_effect = RuntimeError("connection reset")
    submitter = make_submitter(cfg, api)

    outcome = asyncio.run(submitter.run_round())

    assert set(outcome.failed.values()) == {"connection reset"}


def test_batch_id_is_utc_second_precision():
    now = datetime(2026, 10, 17, 8, 5, 9, 123456, tzinfo=timezone.utc)
    assert BatchSubmitter.make_batch_id(now) == "20261017080509"
