import asyncio
import os
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from commentary_worker import processor as processor_module
from commentary_worker.adapters.base import AssetCacheStore, JobSourceAdapter, JobStore, ObjectStorage
from commentary_worker.clients import ServiceClients
from commentary_worker.config import WorkerConfig
from commentary_worker.errors import StorageError
from commentary_worker.models import (
    COMPLETED, FAILED, PROCESSING, TERMINAL_STATUSES,
    CachedVideoAsset, JobPayload, Persona, SynthesisResult, VideoJob,
)
from commentary_worker.pipeline.dialogue import parse_dialogue_script
from commentary_worker.processor import CommentaryProcessor


class FakeJobStore(JobStore):
    def __init__(self):
        self.jobs: Dict[str, VideoJob] = {}

    def create_job(self, payload: JobPayload) -> VideoJob:
        if payload.job_id not in self.jobs:
            self.jobs[payload.job_id] = payload.to_job()
        return self.jobs[payload.job_id]

    def get_job(self, job_id: str) -> Optional[VideoJob]:
        return self.jobs.get(job_id)

    def mark_processing(self, job_id: str) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.status in TERMINAL_STATUSES:
            return False
        job.status = PROCESSING
        return True

    def complete_job(self, job_id, result_refs, status_message) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.status in TERMINAL_STATUSES:
            return False
        job.status = COMPLETED
        job.result_refs = dict(result_refs)
        job.status_message = status_message
        return True

    def fail_job(self, job_id, error, result_refs=None) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.status in TERMINAL_STATUSES:
            return False
        job.status = FAILED
        job.error_message = error
        if result_refs:
            job.result_refs = dict(result_refs)
        return True


class FakeJobSource(JobSourceAdapter):
    def __init__(self, jobs: Optional[List[VideoJob]] = None):
        self.pending = list(jobs or [])
        self.acknowledged: List[str] = []

    def connect(self):
        pass

    def claim_job(self):
        return self.pending.pop(0) if self.pending else None

    def acknowledge(self, job):
        self.acknowledged.append(job.id)

    def close(self):
        pass


class FakeCacheStore(AssetCacheStore):
    """
    In-memory cache; set get_error, put_error or touch_error to make that call raise.

    race_winner is inserted just before the next put, as if another job won the race.
    """

    def __init__(self):
        self.rows: Dict[str, CachedVideoAsset] = {}
        self.get_calls = 0
        self.put_calls = 0
        self.touched: List[str] = []
        self.get_error: Optional[Exception] = None
        self.put_error: Optional[Exception] = None
        self.touch_error: Optional[Exception] = None
        self.race_winner: Optional[CachedVideoAsset] = None

    def get(self, identifier):
        self.get_calls += 1
        if self.get_error:
            raise self.get_error
        return self.rows.get(identifier)

    def put_if_absent(self, asset):
        self.put_calls += 1
        if self.put_error:
            raise self.put_error
        if self.race_winner:
            self.rows[self.race_winner.source_video_identifier] = self.race_winner
            self.race_winner = None
        if asset.source_video_identifier in self.rows:
            return False
        self.rows[asset.source_video_identifier] = asset
        return True

    def touch(self, identifier):
        if self.touch_error:
            raise self.touch_error
        self.touched.append(identifier)


class FakeStorage(ObjectStorage):
    """In-memory object storage; keys starting with any of fail_prefixes raise"""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.public_keys: List[str] = []
        self.fail_prefixes: List[str] = []

    def _check(self, key):
        if any(key.startswith(prefix) for prefix in self.fail_prefixes):
            raise StorageError(f"simulated failure for {key}")

    def put_bytes(self, key, data, content_type, public=False):
        self._check(key)
        self.objects[key] = data
        if public:
            self.public_keys.append(key)
        return key

    def upload_file(self, key, local_path, content_type, public=False):
        with open(local_path, 'rb') as f:
            return self.put_bytes(key, f.read(), content_type, public)

    def get_bytes(self, key):
        self._check(key)
        if key not in self.objects:
            raise StorageError(f"missing {key}")
        return self.objects[key]

    def download_file(self, key, local_path):
        data = self.get_bytes(key)
        with open(local_path, 'wb') as f:
            f.write(data)
        return local_path

    def signed_url(self, key, ttl_sec):
        self._check(key)
        return f"https://signed.example/{key}?expires={ttl_sec}"

    def public_url(self, key):
        return f"https://public.example/{key}"


class FakeCompletions:
    """chat.completions stand-in returning fixed content or raising"""

    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_chat_client(content=None, error=None):
    completions = FakeCompletions(content, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class FakeAsyncSpeech:
    """audio.speech stand-in; texts in fail_texts raise"""

    def __init__(self, fail_texts=(), delays=None):
        self.fail_texts = set(fail_texts)
        self.delays = delays or {}
        self.calls: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(kwargs['input'], 0.001))
            if kwargs['input'] in self.fail_texts:
                raise RuntimeError(f"tts rejected {kwargs['input']!r}")
            return SimpleNamespace(content=f"WAV[{kwargs['voice']}:{kwargs['input']}]".encode())
        finally:
            self.in_flight -= 1


class FakeAsyncClient:
    def __init__(self, speech: FakeAsyncSpeech):
        self.audio = SimpleNamespace(speech=speech)
        self.closed = False

    async def close(self):
        self.closed = True


@pytest.fixture
def config(tmp_path) -> WorkerConfig:
    cfg = WorkerConfig()
    cfg.DATABASE_URL = "postgresql://test"
    cfg.STORAGE_BUCKET = "bucket"
    cfg.OPENAI_API_KEY = "sk-test"
    cfg.DATA_DIR = str(tmp_path / "data")
    cfg.TEMP_DIR = str(tmp_path / "work")
    return cfg


@pytest.fixture
def job_store() -> FakeJobStore:
    return FakeJobStore()


@pytest.fixture
def job_source() -> FakeJobSource:
    return FakeJobSource()


@pytest.fixture
def cache_store() -> FakeCacheStore:
    return FakeCacheStore()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def clients() -> ServiceClients:
    return ServiceClients(openai=make_chat_client("unused"), async_openai_factory=lambda: None)


@pytest.fixture
def personas() -> List[Persona]:
    return [Persona(name="Alice", style="sarcastic"), Persona(name="Bob", style="earnest")]


@pytest.fixture
def make_job(personas):
    def _make(job_id="job-1", url="https://www.youtube.com/watch?v=abc123XYZ_-", **kwargs):
        return VideoJob(id=job_id, source_video_url=url, personas=list(personas), **kwargs)
    return _make


def _touch(path, data=b"data"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)
    return path


class StageStubs:
    """
    Replaces every stage function imported by the processor with a recording fake.

    Set an attribute to an exception instance to make that stage raise it.
    """

    def __init__(self):
        self.calls: Dict[str, int] = {}
        self.workspaces: List[str] = []
        self.dialogue_text = "Alice: Hi there\nBob: Hello!\nThat's all folks"
        self.transcript = "someone talks about dogs"
        self.description = "man smiles, dog jumps"
        self.synthesis: Optional[SynthesisResult] = None
        self.errors: Dict[str, Exception] = {}
        self.dialogue_args: Dict[str, Any] = {}
        self.on_dialogue = None

    def _record(self, name, workspace=None):
        self.calls[name] = self.calls.get(name, 0) + 1
        if workspace is not None and workspace.root not in self.workspaces:
            self.workspaces.append(workspace.root)
        if name in self.errors:
            raise self.errors[name]

    def count(self, name):
        return self.calls.get(name, 0)

    def download_and_clip_video(self, url, workspace, job_id, max_duration_sec=60, start_sec=0):
        self._record("acquire", workspace)
        return _touch(workspace.path("source_clip.mp4"), b"clip")

    def sample_frames(self, video_path, workspace, job_id, interval_sec=5):
        self._record("frames", workspace)
        return [_touch(workspace.path("frames", f"frame_000{i}.jpg"), b"jpg") for i in (1, 2, 3)]

    def select_frames(self, frame_paths, max_frames):
        return list(frame_paths[:max_frames])

    def transcribe_clip(self, client, video_path, workspace, job_id, **kwargs):
        self._record("transcribe", workspace)
        return self.transcript

    def describe_frames(self, client, frame_paths, job_id, **kwargs):
        self._record("vision")
        return self.description

    def generate_dialogue(self, client, personas, transcript, frame_descriptions, user_guidance, job_id, **kwargs):
        self._record("dialogue")
        self.dialogue_args = {
            'transcript': transcript,
            'frame_descriptions': frame_descriptions,
            'user_guidance': user_guidance,
        }
        if self.on_dialogue:
            self.on_dialogue()
        return parse_dialogue_script(self.dialogue_text)

    def synthesize_dialogue(self, client_factory, lines, speaking_pace, job_id, **kwargs):
        self._record("tts")
        if self.synthesis is not None:
            return self.synthesis
        return SynthesisResult(
            buffers=[f"wav{i}".encode() for i in range(len(lines))],
            voices={"Alice": "alloy", "Bob": "fable"},
        )

    def merge_audio_buffers(self, buffers, workspace, job_id):
        self._record("merge", workspace)
        return _touch(workspace.path("merged_voiceover.wav"), b"".join(b for b in buffers if b))

    def compose_video_with_audio(self, video_path, audio_path, workspace, job_id):
        self._record("compose", workspace)
        return _touch(workspace.path("final_video.mp4"), b"final")

    def install(self, monkeypatch):
        for name in (
            "download_and_clip_video", "sample_frames", "select_frames", "transcribe_clip",
            "describe_frames", "generate_dialogue", "synthesize_dialogue",
            "merge_audio_buffers", "compose_video_with_audio",
        ):
            monkeypatch.setattr(processor_module, name, getattr(self, name))
        return self


@pytest.fixture
def stages(monkeypatch) -> StageStubs:
    return StageStubs().install(monkeypatch)


@pytest.fixture
def processor(config, clients, cache_store, storage, stages) -> CommentaryProcessor:
    return CommentaryProcessor(config, clients, cache_store, storage)
