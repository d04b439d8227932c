import time

import pytest

from commentary_worker.models import COMPLETED, JobPayload
from commentary_worker.orchestrator import JobOrchestrator
from commentary_worker.service import WorkerService


@pytest.fixture
def worker(config, job_store, job_source, processor):
    service = WorkerService(config)
    service.job_store = job_store
    service.job_source = job_source
    service.orchestrator = JobOrchestrator(config, job_source, job_store, processor)
    return service


def test_run_once_processes_one_claimed_job(worker, job_store, job_source, stages):
    job = job_store.create_job(JobPayload.model_validate({
        "jobId": "job-1",
        "videoUrl": "https://youtu.be/abc123XYZ_-",
        "personas": [{"name": "Alice"}],
    }))
    job_source.pending.append(job)

    assert worker.run_once() is True
    assert job_store.get_job("job-1").status == COMPLETED
    assert worker.run_once() is False


def test_run_once_survives_source_errors(worker, job_source):
    def broken_claim():
        raise RuntimeError("database went away")

    job_source.claim_job = broken_claim

    assert worker.run_once() is False


def test_idle_polling_backs_off_to_ceiling(worker, config, monkeypatch):
    sleeps = []
    monkeypatch.setattr(time, "sleep", sleeps.append)

    for _ in range(10):
        worker._sleep_with_backoff()

    assert sleeps[0] == config.POLL_INTERVAL_MS / 1000.0
    assert sleeps[1] == pytest.approx(config.POLL_INTERVAL_MS * config.BACKOFF_MULTIPLIER / 1000.0)
    assert max(sleeps) == config.MAX_BACKOFF_MS / 1000.0


def test_stats_include_orchestrator(worker):
    stats = worker.get_stats()

    assert stats['config']['job_source_type'] == "postgres"
    assert stats['orchestrator']['jobs_processed'] == 0
