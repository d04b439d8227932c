"""
Abstract base classes for job sources, job/cache stores and object storage.

Defines the interface that all adapters must implement, enabling
easy swapping between different job sources (Postgres, SQS) and
storage backends.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from ..models import VideoJob, CachedVideoAsset, JobPayload


class JobSourceAdapter(ABC):
    """Abstract base class for job source adapters"""

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def claim_job(self) -> Optional[VideoJob]:
        """
        Claim the next deliverable job.

        Returns:
            VideoJob if available, None if no jobs pending
        """
        pass

    @abstractmethod
    def acknowledge(self, job: VideoJob) -> None:
        """
        Tell the source a job reached a terminal state and must not be redelivered.

        Args:
            job: Job previously returned by claim_job
        """
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class JobStore(ABC):
    """Persistent job records; the only writer after submission is the orchestrator"""

    @abstractmethod
    def create_job(self, payload: JobPayload) -> VideoJob:
        """
        Record a submitted job as queued.

        Returns:
            Stored job; an existing record with the same id is returned unchanged
        """
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[VideoJob]:
        pass

    @abstractmethod
    def mark_processing(self, job_id: str) -> bool:
        """
        Move a non-terminal job to processing.

        Returns:
            False if the job is missing or already terminal
        """
        pass

    @abstractmethod
    def complete_job(self, job_id: str, result_refs: Dict[str, Any], status_message: Optional[str]) -> bool:
        """
        Mark a job completed with its result references.

        Returns:
            False if the job was already terminal and was left untouched
        """
        pass

    @abstractmethod
    def fail_job(self, job_id: str, error: str, result_refs: Optional[Dict[str, Any]] = None) -> bool:
        """
        Mark a job failed, keeping whatever partial results exist.

        Returns:
            False if the job was already terminal and was left untouched
        """
        pass

    def get_stats(self) -> Dict[str, Any]:
        """Job counts by status, for monitoring"""
        return {}


class AssetCacheStore(ABC):
    """Cross-job cache of analysed source videos, keyed by canonical identifier"""

    @abstractmethod
    def get(self, identifier: str) -> Optional[CachedVideoAsset]:
        pass

    @abstractmethod
    def put_if_absent(self, asset: CachedVideoAsset) -> bool:
        """
        Atomically insert the asset unless a row for its identifier exists.

        Returns:
            True if this call inserted the row
        """
        pass

    @abstractmethod
    def touch(self, identifier: str) -> None:
        """Bump last_accessed_at for a cache hit"""
        pass


class ObjectStorage(ABC):
    """Blob storage for cached clips/frames and published outputs"""

    @abstractmethod
    def put_bytes(self, key: str, data: bytes, content_type: str, public: bool = False) -> str:
        """
        Store bytes under key.

        Returns:
            The key written
        """
        pass

    @abstractmethod
    def upload_file(self, key: str, local_path: str, content_type: str, public: bool = False) -> str:
        pass

    @abstractmethod
    def get_bytes(self, key: str) -> bytes:
        pass

    @abstractmethod
    def download_file(self, key: str, local_path: str) -> str:
        pass

    @abstractmethod
    def signed_url(self, key: str, ttl_sec: int) -> str:
        """Time-limited GET URL for a private object"""
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        pass
