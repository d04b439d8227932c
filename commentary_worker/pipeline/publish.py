import os
import uuid
import logging
from typing import List, Optional, Sequence, Tuple

from ..config import WorkerConfig
from ..errors import PublicationError, StorageError

logger = logging.getLogger("commentary_worker")


class AssetPublisher:
    """Uploads job outputs and cache artifacts to object storage"""

    def __init__(self, storage, config: WorkerConfig):
        self.storage = storage
        self.config = config

    def output_key(self, job_id: str, filename: str) -> str:
        return f"{self.config.OUTPUT_PREFIX}{job_id}/{filename}"

    def cache_key(self, identifier: str, *parts: str) -> str:
        return "/".join([f"{self.config.CACHE_PREFIX}{identifier}", *parts])

    def _publish_signed(self, key: str, local_path: str, content_type: str, job_id: str) -> Tuple[str, str]:
        try:
            self.storage.upload_file(key, local_path, content_type=content_type)
            url = self.storage.signed_url(key, self.config.SIGNED_URL_TTL_SEC)
        except StorageError as e:
            raise PublicationError(f"Upload of {key} failed: {e}") from e

        logger.info(f"Job {job_id}: published {key}")
        return key, url

    def publish_video(self, job_id: str, video_path: str) -> Tuple[str, str]:
        """
        Upload the composed video.

        Returns:
            (object key, signed URL)

        Raises:
            PublicationError
        """
        return self._publish_signed(self.output_key(job_id, "final_video.mp4"), video_path, "video/mp4", job_id)

    def publish_audio(self, job_id: str, audio_path: str) -> Tuple[str, str]:
        """Upload the merged narration; same contract as publish_video"""
        return self._publish_signed(self.output_key(job_id, "voiceover.wav"), audio_path, "audio/wav", job_id)

    def publish_thumbnail(self, job_id: str, frame_path: Optional[str]) -> Optional[str]:
        """Upload the thumbnail to a public location; failures only log"""
        if not frame_path or not os.path.exists(frame_path):
            logger.warning(f"Job {job_id}: no frame available for thumbnail")
            return None

        key = f"{self.config.THUMBNAIL_PREFIX}thumbnail_{uuid.uuid4()}.jpg"
        try:
            self.storage.upload_file(key, frame_path, content_type="image/jpeg", public=True)
            url = self.storage.public_url(key)
        except StorageError as e:
            logger.warning(f"Job {job_id}: thumbnail upload failed: {e}")
            return None

        logger.info(f"Job {job_id}: thumbnail published at {url}")
        return url

    def upload_cache_assets(
        self,
        identifier: str,
        clip_path: Optional[str],
        frame_paths: Sequence[str],
        job_id: str
    ) -> Tuple[Optional[str], List[str]]:
        """
        Store the clip and sampled frames under the identifier's cache prefix.

        Returns:
            (clip key or None, keys of the frames that uploaded)
        """
        clip_ref = None
        if clip_path:
            key = self.cache_key(identifier, "source_clip.mp4")
            try:
                self.storage.upload_file(key, clip_path, content_type="video/mp4")
                clip_ref = key
            except StorageError as e:
                logger.warning(f"Job {job_id}: CACHE clip upload failed: {e}")

        frame_refs = []
        for frame_path in frame_paths:
            key = self.cache_key(identifier, "frames", os.path.basename(frame_path))
            try:
                self.storage.upload_file(key, frame_path, content_type="image/jpeg")
                frame_refs.append(key)
            except StorageError as e:
                logger.warning(f"Job {job_id}: CACHE frame upload failed for {key}: {e}")

        logger.info(f"Job {job_id}: CACHE uploaded clip={clip_ref is not None}, {len(frame_refs)} frames")
        return clip_ref, frame_refs
