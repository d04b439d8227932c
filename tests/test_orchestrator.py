import pytest

from commentary_worker.errors import AcquisitionError
from commentary_worker.models import COMPLETED, FAILED, PROCESSING, QUEUED, JobPayload, SynthesisResult
from commentary_worker.orchestrator import JobOrchestrator


def submit(job_store, job_id="job-1", **overrides):
    message = {
        "jobId": job_id,
        "videoUrl": "https://youtu.be/abc123XYZ_-",
        "personas": [{"name": "Alice", "style": "sarcastic"}, {"name": "Bob"}],
        "speakingPace": 1.25,
    }
    message.update(overrides)
    return job_store.create_job(JobPayload.model_validate(message))


@pytest.fixture
def orchestrator(config, job_source, job_store, processor):
    return JobOrchestrator(config, job_source, job_store, processor)


def test_full_lifecycle(orchestrator, job_store, job_source, stages):
    job = submit(job_store)
    assert job_store.get_job("job-1").status == QUEUED

    seen = []
    stages.on_dialogue = lambda: seen.append(job_store.get_job("job-1").status)

    result = orchestrator.execute_job(job)

    assert seen == [PROCESSING]
    stored = job_store.get_job("job-1")
    assert stored.status == COMPLETED
    assert stored.result_refs['video_url'] is not None
    assert stored.status_message == "Video generated."
    assert result.success is True
    assert job_source.acknowledged == ["job-1"]


def test_fatal_error_marks_failed_with_message(orchestrator, job_store, stages):
    job = submit(job_store)
    stages.errors['acquire'] = AcquisitionError("Download failed")

    orchestrator.execute_job(job)

    stored = job_store.get_job("job-1")
    assert stored.status == FAILED
    assert stored.error_message == "Acquisition failed: Download failed"


def test_empty_parse_completes_with_no_speakable_lines(orchestrator, job_store, stages):
    job = submit(job_store)
    stages.dialogue_text = "Sorry, no commentary today."

    orchestrator.execute_job(job)

    stored = job_store.get_job("job-1")
    assert stored.status == COMPLETED
    assert "no speakable lines" in stored.status_message
    assert stored.result_refs['dialogue'] == []


def test_all_tts_failures_complete_with_dialogue(orchestrator, job_store, stages):
    job = submit(job_store)
    stages.synthesis = SynthesisResult(buffers=[None, None], voices={}, errors=["quota", "quota"])

    orchestrator.execute_job(job)

    stored = job_store.get_job("job-1")
    assert stored.status == COMPLETED
    assert stored.status_message.startswith("No audio was produced")
    assert [line['speaker'] for line in stored.result_refs['dialogue']] == ["Alice", "Bob"]


def test_unexpected_processor_error_fails_job(orchestrator, job_store, stages):
    job = submit(job_store)
    stages.errors['tts'] = RuntimeError("event loop exploded")

    result = orchestrator.execute_job(job)

    assert result.success is False
    stored = job_store.get_job("job-1")
    assert stored.status == FAILED
    assert "event loop exploded" in stored.error_message
    assert [line['speaker'] for line in stored.result_refs['dialogue']] == ["Alice", "Bob"]


def test_terminal_job_is_skipped(orchestrator, job_store, job_source, stages):
    job = submit(job_store)
    orchestrator.execute_job(job)
    first_refs = dict(job_store.get_job("job-1").result_refs)

    assert orchestrator.execute_job(job) is None

    assert stages.count("dialogue") == 1
    assert job_store.get_job("job-1").result_refs == first_refs
    assert job_source.acknowledged == ["job-1", "job-1"]
    assert orchestrator.get_stats()['jobs_skipped'] == 1


def test_stats(orchestrator, job_store, stages):
    orchestrator.execute_job(submit(job_store, "a"))
    stages.errors['acquire'] = AcquisitionError("gone")
    orchestrator.execute_job(submit(job_store, "b", videoUrl="https://youtu.be/otherVideo1"))

    stats = orchestrator.get_stats()
    assert stats['jobs_processed'] == 2
    assert stats['jobs_completed'] == 1
    assert stats['jobs_failed'] == 1
    assert stats['success_rate'] == 0.5

    orchestrator.reset_stats()
    assert orchestrator.get_stats()['jobs_processed'] == 0
