"""
Main worker service.

Wires adapters, clients and the orchestrator from configuration and
runs the polling loop that processes one job at a time.
"""

import time
import signal
import sys
import logging
from typing import Optional, Dict, Any

from .config import WorkerConfig
from .clients import ServiceClients, build_clients
from .adapters.base import JobSourceAdapter
from .adapters.postgres_adapter import PostgresJobStore, PostgresJobSourceAdapter, PostgresAssetCache
from .adapters.sqs_adapter import SQSJobSourceAdapter
from .adapters.s3_adapter import S3ObjectStorage
from .processor import CommentaryProcessor
from .orchestrator import JobOrchestrator
from .logging_setup import setup_logging, log_exception

logger = logging.getLogger("commentary_worker")


class WorkerService:
    """Main worker service with adapter-based architecture"""

    def __init__(self, config: Optional[WorkerConfig] = None):
        self.config = config or WorkerConfig.from_env()
        self.clients: Optional[ServiceClients] = None
        self.job_store: Optional[PostgresJobStore] = None
        self.job_source: Optional[JobSourceAdapter] = None
        self.cache_store: Optional[PostgresAssetCache] = None
        self.storage: Optional[S3ObjectStorage] = None
        self.orchestrator: Optional[JobOrchestrator] = None
        self.running = False
        self.backoff_interval = self.config.POLL_INTERVAL_MS
        self.max_backoff = self.config.MAX_BACKOFF_MS

    def initialize(self):
        """Initialize worker with adapters based on configuration"""
        try:
            # Setup logging
            setup_logging(self.config.LOG_LEVEL, self.config.DATA_DIR)

            # Validate configuration
            self.config.validate()

            self.clients = build_clients(self.config)

            # Initialize adapters
            self._initialize_adapters()

            processor = CommentaryProcessor(self.config, self.clients, self.cache_store, self.storage)
            self.orchestrator = JobOrchestrator(self.config, self.job_source, self.job_store, processor)

            logger.info("Worker service initialized successfully")

        except Exception as e:
            log_exception(logger, f"Failed to initialize worker service: {e}")
            raise

    def _initialize_adapters(self):
        """Initialize stores, job source and object storage based on configuration"""
        self.job_store = PostgresJobStore(
            database_url=self.config.DATABASE_URL,
            pool_size=self.config.POSTGRES_POOL_SIZE,
            timeout=self.config.POSTGRES_TIMEOUT
        )
        self.job_store.connect()

        self.cache_store = PostgresAssetCache(
            database_url=self.config.DATABASE_URL,
            pool_size=self.config.POSTGRES_POOL_SIZE,
            timeout=self.config.POSTGRES_TIMEOUT
        )
        self.cache_store.connect()

        self.job_source = self._create_job_source_adapter()
        self.job_source.connect()

        self.storage = S3ObjectStorage(
            bucket=self.config.STORAGE_BUCKET,
            region=self.config.STORAGE_REGION,
            endpoint_url=self.config.STORAGE_ENDPOINT_URL,
            public_url_base=self.config.STORAGE_PUBLIC_URL_BASE
        )
        self.storage.connect()

        logger.info(f"Initialized adapters: {self.config.JOB_SOURCE_TYPE} job source, postgres stores, s3 storage")

    def _create_job_source_adapter(self) -> JobSourceAdapter:
        """Create job source adapter based on configuration"""

        if self.config.JOB_SOURCE_TYPE == "postgres":
            return PostgresJobSourceAdapter(self.job_store)

        elif self.config.JOB_SOURCE_TYPE == "sqs":
            return SQSJobSourceAdapter(
                queue_url=self.config.SQS_QUEUE_URL,
                job_store=self.job_store,
                region=self.config.AWS_REGION,
                wait_time=self.config.SQS_WAIT_TIME,
                visibility_timeout=self.config.SQS_VISIBILITY_TIMEOUT
            )

        else:
            raise ValueError(f"Unsupported job source type: {self.config.JOB_SOURCE_TYPE}")

    def start(self):
        """Start the worker service"""
        if self.running:
            logger.warning("Worker service is already running")
            return

        self.running = True
        logger.info("Worker started, polling for jobs...")

        while self.running:
            try:
                processed = self.run_once()

                if not processed:
                    # No job available, use exponential backoff
                    self._sleep_with_backoff()
                else:
                    # Reset backoff on successful processing
                    self.backoff_interval = self.config.POLL_INTERVAL_MS

            except KeyboardInterrupt:
                logger.info("Received interrupt signal, shutting down...")
                break
            except Exception as e:
                log_exception(logger, f"Unexpected error in worker loop: {str(e)}")
                # Use backoff for errors too
                self._sleep_with_backoff()

        logger.info("Worker polling loop stopped")

    def _sleep_with_backoff(self):
        time.sleep(self.backoff_interval / 1000.0)
        self.backoff_interval = min(
            self.backoff_interval * self.config.BACKOFF_MULTIPLIER,
            self.max_backoff
        )

    def run_once(self) -> bool:
        """
        Run one iteration of the worker loop.

        Returns:
            True if a job was claimed and handled, False if no job available
        """
        try:
            job = self.job_source.claim_job()
            if not job:
                return False

            # Reset backoff on successful job claim
            self.backoff_interval = self.config.POLL_INTERVAL_MS

            self.orchestrator.execute_job(job)
            return True

        except Exception as e:
            log_exception(logger, f"Error in worker loop: {str(e)}")
            return False

    def stop(self):
        """Stop the worker service and close adapters"""
        self.running = False

        for adapter in (self.job_source, self.cache_store, self.job_store, self.storage):
            if adapter:
                try:
                    adapter.close()
                except Exception as e:
                    logger.warning(f"Error closing {type(adapter).__name__}: {e}")

        logger.info("Worker service stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics"""
        stats = {
            'running': self.running,
            'config': {
                'job_source_type': self.config.JOB_SOURCE_TYPE,
                'poll_interval_ms': self.config.POLL_INTERVAL_MS,
                'tts_max_concurrent': self.config.TTS_MAX_CONCURRENT,
                'cache_enabled': self.config.ENABLE_CACHE
            }
        }

        if self.orchestrator:
            stats['orchestrator'] = self.orchestrator.get_stats()

        return stats


def main():
    """Main entry point"""
    worker = WorkerService()

    def signal_handler(signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        worker.running = False

    # Setup signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        worker.initialize()
        worker.start()
    except Exception as e:
        log_exception(logger, f"Worker failed to start: {str(e)}")
        sys.exit(1)
    finally:
        worker.stop()


if __name__ == "__main__":
    main()
