"""
Job state machine and outcome persistence.

Moves a claimed job from queued to processing, runs the processor and
records the terminal state: completed with result references or failed
with an error message. Terminal jobs are never processed again.
"""

import time
import logging
from typing import Optional, Dict, Any
from datetime import datetime

from .models import VideoJob, ProcessingResult
from .adapters.base import JobSourceAdapter, JobStore
from .processor import CommentaryProcessor
from .config import WorkerConfig
from .logging_setup import log_exception

logger = logging.getLogger("commentary_worker")


class JobOrchestrator:
    """Manages job lifecycle around the commentary processor"""

    def __init__(
        self,
        config: WorkerConfig,
        job_source: JobSourceAdapter,
        job_store: JobStore,
        processor: CommentaryProcessor
    ):
        self.config = config
        self.job_source = job_source
        self.job_store = job_store
        self.processor = processor
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'jobs_completed': 0,
            'jobs_failed': 0,
            'jobs_skipped': 0,
            'total_processing_time': 0.0,
            'start_time': datetime.now()
        }

    def execute_job(self, job: VideoJob) -> Optional[ProcessingResult]:
        """
        Execute the complete pipeline for one delivered job.

        Returns:
            ProcessingResult, or None if the job was already terminal and skipped
        """
        if not self.job_store.mark_processing(job.id):
            logger.warning(f"Job {job.id}: missing or already terminal, skipping duplicate delivery")
            self.stats['jobs_skipped'] += 1
            self._acknowledge(job)
            return None

        logger.info(f"Job {job.id}: status processing")
        start_time = time.time()

        try:
            result = self.processor.process_job(job)
        except Exception as e:
            error_msg = f"Unexpected error in pipeline execution: {str(e)}"
            log_exception(logger, f"Job {job.id}: {error_msg}")
            result = ProcessingResult(
                success=False,
                stages_completed=[],
                error=error_msg,
                processing_time_sec=time.time() - start_time
            )

        self._record_outcome(job, result)
        self.stats['total_processing_time'] += time.time() - start_time
        self._acknowledge(job)
        return result

    def _record_outcome(self, job: VideoJob, result: ProcessingResult) -> None:
        try:
            if result.success:
                self.job_store.complete_job(job.id, result.result_refs, result.status_message)
                self.stats['jobs_completed'] += 1
                logger.info(f"Job {job.id}: completed: {result.status_message}")
            else:
                self.job_store.fail_job(job.id, result.error or "Unknown error", result.result_refs or None)
                self.stats['jobs_failed'] += 1
                logger.error(f"Job {job.id}: failed: {result.error}")
        except Exception as e:
            # Job stays in processing and the source will redeliver it
            log_exception(logger, f"Job {job.id}: could not record outcome: {e}")
            raise

    def _acknowledge(self, job: VideoJob) -> None:
        try:
            self.job_source.acknowledge(job)
        except Exception as e:
            log_exception(logger, f"Job {job.id}: error acknowledging delivery: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics"""
        uptime = (datetime.now() - self.stats['start_time']).total_seconds()
        finished = self.stats['jobs_completed'] + self.stats['jobs_failed']
        avg_processing_time = self.stats['total_processing_time'] / finished if finished > 0 else 0

        return {
            'jobs_processed': finished,
            'jobs_completed': self.stats['jobs_completed'],
            'jobs_failed': self.stats['jobs_failed'],
            'jobs_skipped': self.stats['jobs_skipped'],
            'total_processing_time': self.stats['total_processing_time'],
            'average_processing_time': avg_processing_time,
            'uptime_seconds': uptime,
            'success_rate': self.stats['jobs_completed'] / finished if finished > 0 else 0
        }

    def reset_stats(self) -> None:
        """Reset orchestrator statistics"""
        self.stats = self._empty_stats()
        logger.info("Orchestrator statistics reset")
