"""
Commentary processing pipeline.

Runs the stages for one job in a fixed order, turning each stage's
exception into a StageResult and deciding from it whether the job
continues, degrades to a partial deliverable, or fails. All local
artifacts live in one JobWorkspace that is removed on every exit path.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional

from .config import WorkerConfig
from .clients import ServiceClients
from .errors import PipelineError, CacheStoreError
from .logging_setup import log_exception
from .identity import get_video_identifier
from .models import (
    VideoJob, CachedVideoAsset, DialogueScript, ProcessingResult, StageResult,
    STAGE_OK, STAGE_SOFT_FAILED, STAGE_FATAL,
)
from .adapters.base import AssetCacheStore, ObjectStorage
from .pipeline.workspace import JobWorkspace
from .pipeline.acquire import download_and_clip_video, fetch_cached_clip
from .pipeline.transcribe import transcribe_clip
from .pipeline.frames import sample_frames, select_frames
from .pipeline.vision import describe_frames, PLACEHOLDER_DESCRIPTION
from .pipeline.dialogue import generate_dialogue, PLACEHOLDER_TRANSCRIPT
from .pipeline.tts import synthesize_dialogue
from .pipeline.merge import merge_audio_buffers
from .pipeline.compose import compose_video_with_audio
from .pipeline.publish import AssetPublisher

logger = logging.getLogger("commentary_worker")

STAGE_NAMES = {
    "acquire": "Acquisition",
    "transcribe": "Transcription",
    "frames": "Frame sampling",
    "vision": "Vision analysis",
    "dialogue": "Dialogue generation",
    "tts": "Voice synthesis",
    "merge": "Audio merge",
    "compose": "Composition",
    "publish": "Publication",
    "cache": "Cache",
}

MSG_VIDEO_GENERATED = "Video generated."
MSG_AUDIO_ONLY = "Audio generated (no source video)."
MSG_NO_LINES = "Dialogue contained no speakable lines."


def stage_failure_message(stage: str, error: Optional[str]) -> str:
    return f"{STAGE_NAMES.get(stage, stage)} failed: {error}"


class JobRun:
    """Mutable state of one job run, turned into a ProcessingResult at the end"""

    def __init__(self, job: VideoJob, identifier: Optional[str]):
        self.job = job
        self.start_time = time.time()
        self.stages_completed: List[str] = []
        self.warnings: List[str] = []
        self.metrics: Dict[str, Any] = {}
        self.result_refs: Dict[str, Any] = {
            'video_url': None,
            'audio_url': None,
            'thumbnail_url': None,
            'dialogue': [],
            'closing_remark': None,
            'source_video_identifier': identifier,
            'cache_hit': False,
        }

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def set_script(self, script: DialogueScript) -> None:
        self.result_refs['dialogue'] = [line.to_dict() for line in script.lines]
        self.result_refs['closing_remark'] = script.closing_remark

    def _finish(self, success: bool, status_message: Optional[str], error: Optional[str]) -> ProcessingResult:
        processing_time = time.time() - self.start_time
        self.metrics['processing_time_sec'] = processing_time
        return ProcessingResult(
            success=success,
            stages_completed=list(self.stages_completed),
            status_message=status_message,
            error=error,
            result_refs=dict(self.result_refs),
            warnings=list(self.warnings),
            metrics=dict(self.metrics),
            processing_time_sec=processing_time,
        )

    def completed(self, message: str) -> ProcessingResult:
        if self.warnings:
            message = f"{message} Warnings: {'; '.join(self.warnings)}"
        return self._finish(True, message, None)

    def failed(self, error: str) -> ProcessingResult:
        return self._finish(False, None, error)


class CommentaryProcessor:
    """Handles commentary pipeline execution for one job at a time"""

    def __init__(
        self,
        config: WorkerConfig,
        clients: ServiceClients,
        cache_store: AssetCacheStore,
        storage: ObjectStorage,
        publisher: Optional[AssetPublisher] = None
    ):
        self.config = config
        self.clients = clients
        self.cache_store = cache_store
        self.storage = storage
        self.publisher = publisher or AssetPublisher(storage, config)

    def run_stage(self, job: VideoJob, stage: str, func: Callable, *args, fatal: bool = False, **kwargs) -> StageResult:
        """
        Call one stage function and classify its outcome.

        Pipeline errors become a soft or fatal StageResult; anything else is
        a bug and ends the run as a failure in process_job.
        """
        logger.info(f"Job {job.id}: {stage.upper()} started")
        stage_start = time.time()
        try:
            value = func(*args, **kwargs)
        except PipelineError as e:
            outcome = STAGE_FATAL if fatal else STAGE_SOFT_FAILED
            log = logger.error if fatal else logger.warning
            log(f"Job {job.id}: {stage.upper()} {outcome}: {e}")
            return StageResult(stage=stage, outcome=outcome, error=str(e))

        logger.info(f"Job {job.id}: {stage.upper()} finished in {time.time() - stage_start:.2f}s")
        return StageResult(stage=stage, outcome=STAGE_OK, value=value)

    def process_job(self, job: VideoJob) -> ProcessingResult:
        """
        Process a single job through the complete pipeline.

        Returns:
            ProcessingResult; success means the job should be marked completed
        """
        identifier = get_video_identifier(job.source_video_url) if job.source_video_url else None
        run = JobRun(job, identifier)

        logger.info(
            f"Job {job.id}: processing {job.source_video_url or 'summary-only job'} "
            f"(identifier: {identifier}, personas: {len(job.personas)}, pace: {job.speaking_pace})"
        )

        with JobWorkspace(self.config.temp_dir, job.id) as workspace:
            try:
                result = self._run_pipeline(run, workspace)
            except Exception as e:
                # Keep whatever the run produced so far (dialogue, published URLs)
                error_msg = f"Unexpected error in pipeline execution: {e}"
                log_exception(logger, f"Job {job.id}: {error_msg}")
                result = run.failed(error_msg)

        logger.info(
            f"Job {job.id}: pipeline finished in {result.processing_time_sec:.2f}s "
            f"(success: {result.success}, stages: {result.stages_completed})"
        )
        return result

    def _run_pipeline(self, run: JobRun, workspace: JobWorkspace) -> ProcessingResult:
        job = run.job
        identifier = run.result_refs['source_video_identifier']
        clip_path = None
        frame_paths: List[str] = []
        transcript = None
        frame_descriptions = None

        if job.source_video_url:
            cached = self._lookup_cache(run, identifier)

            if cached:
                run.result_refs['cache_hit'] = True
                transcript = cached.audio_transcript
                frame_descriptions = cached.frame_descriptions
                if cached.clipped_video_ref:
                    clip_path = fetch_cached_clip(self.storage, cached.clipped_video_ref, workspace, job.id)

            if clip_path is None:
                acquired = self.run_stage(
                    job, "acquire", download_and_clip_video,
                    job.source_video_url, workspace, job.id,
                    max_duration_sec=self.config.MAX_CLIP_SEC,
                    start_sec=self.config.CLIP_START_SEC,
                    fatal=True
                )
                if acquired.fatal:
                    return run.failed(stage_failure_message("acquire", acquired.error))
                clip_path = acquired.value
                run.stages_completed.append("acquire")

            sampled = self.run_stage(
                job, "frames", sample_frames, clip_path, workspace, job.id,
                interval_sec=self.config.FRAME_INTERVAL_SEC
            )
            if sampled.ok:
                frame_paths = sampled.value
                run.stages_completed.append("frames")
            else:
                run.warn(stage_failure_message("frames", sampled.error))
            run.metrics['frames_sampled'] = len(frame_paths)

            if not cached:
                transcript, frame_descriptions = self._analyze_clip(run, workspace, clip_path, frame_paths)

        generated = self._generate_script(run, transcript, frame_descriptions)
        if generated.fatal:
            return run.failed(stage_failure_message("dialogue", generated.error))
        script = generated.value
        if script.is_empty:
            return run.completed(MSG_NO_LINES)

        synthesis = self.run_stage(
            job, "tts", synthesize_dialogue,
            self.clients.async_openai_factory, script.lines, job.speaking_pace, job.id,
            model=self.config.TTS_MODEL,
            max_concurrent=self.config.TTS_MAX_CONCURRENT
        )
        if not synthesis.ok:
            return run.completed(f"No audio was produced: {synthesis.error}")

        voiced = synthesis.value
        run.result_refs['voices'] = voiced.voices
        run.metrics['voiced_lines'] = len(voiced.produced)
        if voiced.all_failed:
            return run.completed(f"No audio was produced: {voiced.errors[0]}")
        run.stages_completed.append("tts")
        if voiced.errors:
            run.warn(f"{len(voiced.errors)} of {len(script.lines)} lines could not be voiced")

        merged = self.run_stage(job, "merge", merge_audio_buffers, voiced.buffers, workspace, job.id)
        if not merged.ok:
            return run.completed(f"Audio merge failed: {merged.error}")
        merged_audio_path = merged.value
        run.stages_completed.append("merge")

        if not job.source_video_url:
            return self._publish_audio_only(run, merged_audio_path)

        composed = self.run_stage(
            job, "compose", compose_video_with_audio, clip_path, merged_audio_path, workspace, job.id,
            fatal=True
        )
        if composed.fatal:
            return run.failed(stage_failure_message("compose", composed.error))
        run.stages_completed.append("compose")

        return self._publish_video(run, composed.value, merged_audio_path, frame_paths)

    def _lookup_cache(self, run: JobRun, identifier: Optional[str]) -> Optional[CachedVideoAsset]:
        """The run's single cache read"""
        job = run.job
        if not identifier:
            logger.info(f"Job {job.id}: CACHE skipped, no canonical identifier for {job.source_video_url}")
            return None
        if not self.config.ENABLE_CACHE:
            return None

        try:
            cached = self.cache_store.get(identifier)
        except CacheStoreError as e:
            logger.warning(f"Job {job.id}: CACHE lookup failed, processing without cache: {e}")
            run.warn(stage_failure_message("cache", e))
            return None

        if not cached:
            logger.info(f"Job {job.id}: CACHE miss for {identifier}")
            return None

        logger.info(f"Job {job.id}: CACHE hit for {identifier}")
        try:
            self.cache_store.touch(identifier)
        except CacheStoreError as e:
            logger.warning(f"Job {job.id}: CACHE touch failed: {e}")
        return cached

    def _analyze_clip(self, run: JobRun, workspace: JobWorkspace, clip_path: str, frame_paths: List[str]):
        """Transcript and visual description for a cache miss; both are soft"""
        job = run.job
        transcript = None
        frame_descriptions = None

        if self.config.ENABLE_TRANSCRIPTION:
            transcribed = self.run_stage(
                job, "transcribe", transcribe_clip,
                self.clients.openai, clip_path, workspace, job.id,
                model=self.config.TRANSCRIPTION_MODEL,
                max_bytes=self.config.MAX_TRANSCRIPTION_BYTES,
                max_chars=self.config.MAX_TRANSCRIPT_CHARS
            )
            if transcribed.ok:
                transcript = transcribed.value
                run.stages_completed.append("transcribe")
            else:
                run.warn(stage_failure_message("transcribe", transcribed.error))

        vision_frames: List[str] = []
        if self.config.ENABLE_VISION_ANALYSIS:
            vision_frames = select_frames(frame_paths, self.config.MAX_VISION_FRAMES)
            described = self.run_stage(
                job, "vision", describe_frames,
                self.clients.openai, vision_frames, job.id,
                model=self.config.VISION_MODEL,
                max_tokens=self.config.VISION_MAX_TOKENS
            )
            if described.ok:
                frame_descriptions = described.value
                run.stages_completed.append("vision")
            else:
                run.warn(stage_failure_message("vision", described.error))

        identifier = run.result_refs['source_video_identifier']
        if identifier and self.config.ENABLE_CACHE and transcript and frame_descriptions:
            self._populate_cache(run, identifier, clip_path, vision_frames, transcript, frame_descriptions)

        return transcript, frame_descriptions

    def _populate_cache(
        self,
        run: JobRun,
        identifier: str,
        clip_path: str,
        frame_paths: List[str],
        transcript: str,
        frame_descriptions: str
    ) -> None:
        """The run's single cache write; every failure here is soft"""
        job = run.job
        logger.info(f"Job {job.id}: CACHE storing analysis for {identifier}")

        clip_ref, frame_refs = self.publisher.upload_cache_assets(identifier, clip_path, frame_paths, job.id)
        asset = CachedVideoAsset(
            source_video_identifier=identifier,
            clipped_video_ref=clip_ref,
            audio_transcript=transcript,
            frame_descriptions=frame_descriptions,
            frame_refs=frame_refs,
        )

        try:
            inserted = self.cache_store.put_if_absent(asset)
        except CacheStoreError as e:
            logger.warning(f"Job {job.id}: CACHE write failed: {e}")
            run.warn(stage_failure_message("cache", e))
            return

        if inserted:
            logger.info(f"Job {job.id}: CACHE stored {identifier}")
        else:
            logger.info(f"Job {job.id}: CACHE entry for {identifier} already written by another job")

    def _generate_script(
        self,
        run: JobRun,
        transcript: Optional[str],
        frame_descriptions: Optional[str]
    ) -> StageResult:
        """Dialogue stage; placeholders stand in for missing transcript and visuals"""
        job = run.job
        generated = self.run_stage(
            job, "dialogue", generate_dialogue,
            self.clients.openai,
            job.personas,
            transcript or job.transcript_summary or PLACEHOLDER_TRANSCRIPT,
            frame_descriptions or PLACEHOLDER_DESCRIPTION,
            job.user_guidance,
            job.id,
            model=self.config.DIALOGUE_MODEL,
            max_tokens=self.config.DIALOGUE_MAX_TOKENS,
            temperature=self.config.DIALOGUE_TEMPERATURE,
            fatal=True
        )
        if generated.ok:
            script = generated.value
            run.set_script(script)
            run.metrics['dialogue_lines'] = len(script.lines)
            run.stages_completed.append("dialogue")
        return generated

    def _publish_audio_only(self, run: JobRun, audio_path: str) -> ProcessingResult:
        job = run.job
        published = self.run_stage(job, "publish", self.publisher.publish_audio, job.id, audio_path, fatal=True)
        if published.fatal:
            return run.failed(stage_failure_message("publish", published.error))

        _, run.result_refs['audio_url'] = published.value
        run.stages_completed.append("publish")
        return run.completed(MSG_AUDIO_ONLY)

    def _publish_video(
        self,
        run: JobRun,
        video_path: str,
        audio_path: str,
        frame_paths: List[str]
    ) -> ProcessingResult:
        job = run.job

        def publish_outputs():
            video = self.publisher.publish_video(job.id, video_path)
            audio = self.publisher.publish_audio(job.id, audio_path)
            return video, audio

        published = self.run_stage(job, "publish", publish_outputs, fatal=True)
        if published.fatal:
            return run.failed(stage_failure_message("publish", published.error))

        (_, video_url), (_, audio_url) = published.value
        run.result_refs['video_url'] = video_url
        run.result_refs['audio_url'] = audio_url
        run.stages_completed.append("publish")

        if self.config.ENABLE_THUMBNAILS:
            thumbnail_url = self.publisher.publish_thumbnail(job.id, frame_paths[0] if frame_paths else None)
            if thumbnail_url:
                run.result_refs['thumbnail_url'] = thumbnail_url
            else:
                run.warn("Thumbnail was not published")

        return run.completed(MSG_VIDEO_GENERATED)
