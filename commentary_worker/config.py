"""
Configuration management for the commentary worker.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class WorkerConfig:
    """Configuration for the commentary worker"""

    # Job source settings
    JOB_SOURCE_TYPE: str = "postgres"  # postgres, sqs
    SQS_QUEUE_URL: str = ""
    AWS_REGION: str = "us-east-1"
    SQS_WAIT_TIME: int = 20
    SQS_VISIBILITY_TIMEOUT: int = 900

    # Metadata store (jobs + asset cache)
    DATABASE_URL: str = ""
    POSTGRES_POOL_SIZE: int = 5
    POSTGRES_TIMEOUT: int = 10

    # Object storage (S3 or any S3-compatible endpoint such as R2)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = "auto"
    STORAGE_ENDPOINT_URL: str = ""
    STORAGE_PUBLIC_URL_BASE: str = ""
    SIGNED_URL_TTL_SEC: int = 24 * 60 * 60
    OUTPUT_PREFIX: str = "outputs/"
    THUMBNAIL_PREFIX: str = "thumbnails/"
    CACHE_PREFIX: str = "video_cache/"

    # External services
    OPENAI_API_KEY: str = ""
    DIALOGUE_MODEL: str = "gpt-4o"
    VISION_MODEL: str = "gpt-4o"
    TTS_MODEL: str = "tts-1-hd"
    TRANSCRIPTION_MODEL: str = "whisper-1"

    # Stage tuning
    MAX_CLIP_SEC: int = 60
    CLIP_START_SEC: int = 0
    FRAME_INTERVAL_SEC: int = 5
    MAX_VISION_FRAMES: int = 2
    MAX_TRANSCRIPT_CHARS: int = 5000
    MAX_TRANSCRIPTION_BYTES: int = 25 * 1024 * 1024
    DIALOGUE_MAX_TOKENS: int = 280
    DIALOGUE_TEMPERATURE: float = 0.7
    VISION_MAX_TOKENS: int = 150
    TTS_MAX_CONCURRENT: int = 4

    # Pipeline toggles
    ENABLE_TRANSCRIPTION: bool = True
    ENABLE_VISION_ANALYSIS: bool = True
    ENABLE_CACHE: bool = True
    ENABLE_THUMBNAILS: bool = True

    # Worker loop
    POLL_INTERVAL_MS: int = 1500
    BACKOFF_MULTIPLIER: float = 1.5
    MAX_BACKOFF_MS: int = 12000

    # Logging
    LOG_LEVEL: str = "INFO"

    # Data directories
    DATA_DIR: str = "/app/data"
    TEMP_DIR: str = ""

    @classmethod
    def from_env(cls) -> 'WorkerConfig':
        """Load configuration from environment variables"""
        config = cls()

        # Job source configuration
        config.JOB_SOURCE_TYPE = os.getenv("JOB_SOURCE_TYPE", "postgres")
        config.SQS_QUEUE_URL = os.getenv("AWS_SQS_QUEUE_URL", "")
        config.AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
        config.SQS_WAIT_TIME = int(os.getenv("SQS_WAIT_TIME", "20"))
        config.SQS_VISIBILITY_TIMEOUT = int(os.getenv("SQS_VISIBILITY_TIMEOUT", "900"))

        # Metadata store
        config.DATABASE_URL = os.getenv("DATABASE_URL", "")
        config.POSTGRES_POOL_SIZE = int(os.getenv("POSTGRES_POOL_SIZE", "5"))
        config.POSTGRES_TIMEOUT = int(os.getenv("POSTGRES_TIMEOUT", "10"))

        # Object storage
        config.STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "")
        config.STORAGE_REGION = os.getenv("STORAGE_REGION", "auto")
        config.STORAGE_ENDPOINT_URL = os.getenv("STORAGE_ENDPOINT_URL", "")
        config.STORAGE_PUBLIC_URL_BASE = os.getenv("STORAGE_PUBLIC_URL_BASE", "")
        config.SIGNED_URL_TTL_SEC = int(os.getenv("SIGNED_URL_TTL_SEC", str(24 * 60 * 60)))
        config.OUTPUT_PREFIX = os.getenv("OUTPUT_PREFIX", "outputs/")
        config.THUMBNAIL_PREFIX = os.getenv("THUMBNAIL_PREFIX", "thumbnails/")
        config.CACHE_PREFIX = os.getenv("CACHE_PREFIX", "video_cache/")

        # External services
        config.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        config.DIALOGUE_MODEL = os.getenv("DIALOGUE_MODEL", "gpt-4o")
        config.VISION_MODEL = os.getenv("VISION_MODEL", "gpt-4o")
        config.TTS_MODEL = os.getenv("TTS_MODEL", "tts-1-hd")
        config.TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")

        # Stage tuning
        config.MAX_CLIP_SEC = int(os.getenv("MAX_CLIP_SEC", "60"))
        config.CLIP_START_SEC = int(os.getenv("CLIP_START_SEC", "0"))
        config.FRAME_INTERVAL_SEC = int(os.getenv("FRAME_INTERVAL_SEC", "5"))
        config.MAX_VISION_FRAMES = int(os.getenv("MAX_VISION_FRAMES", "2"))
        config.MAX_TRANSCRIPT_CHARS = int(os.getenv("MAX_TRANSCRIPT_CHARS", "5000"))
        config.MAX_TRANSCRIPTION_BYTES = int(os.getenv("MAX_TRANSCRIPTION_BYTES", str(25 * 1024 * 1024)))
        config.DIALOGUE_MAX_TOKENS = int(os.getenv("DIALOGUE_MAX_TOKENS", "280"))
        config.DIALOGUE_TEMPERATURE = float(os.getenv("DIALOGUE_TEMPERATURE", "0.7"))
        config.VISION_MAX_TOKENS = int(os.getenv("VISION_MAX_TOKENS", "150"))
        config.TTS_MAX_CONCURRENT = int(os.getenv("TTS_MAX_CONCURRENT", "4"))

        # Pipeline toggles
        config.ENABLE_TRANSCRIPTION = _env_bool("ENABLE_TRANSCRIPTION")
        config.ENABLE_VISION_ANALYSIS = _env_bool("ENABLE_VISION_ANALYSIS")
        config.ENABLE_CACHE = _env_bool("ENABLE_CACHE")
        config.ENABLE_THUMBNAILS = _env_bool("ENABLE_THUMBNAILS")

        # Worker loop
        config.POLL_INTERVAL_MS = int(os.getenv("WORKER_POLL_MS", "1500"))
        config.BACKOFF_MULTIPLIER = float(os.getenv("WORKER_BACKOFF_MULTIPLIER", "1.5"))
        config.MAX_BACKOFF_MS = int(os.getenv("WORKER_MAX_BACKOFF_MS", "12000"))

        # Logging
        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Data directories
        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")
        config.TEMP_DIR = os.getenv("TEMP_DIR", "")

        return config

    @property
    def temp_dir(self) -> str:
        """Directory holding per-job workspaces"""
        return self.TEMP_DIR or os.path.join(self.DATA_DIR, "tmp")

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values"""
        required_vars = []

        if not self.DATABASE_URL:
            required_vars.append("DATABASE_URL")

        if not self.STORAGE_BUCKET:
            required_vars.append("STORAGE_BUCKET")

        if not self.OPENAI_API_KEY:
            required_vars.append("OPENAI_API_KEY")

        if self.JOB_SOURCE_TYPE == "sqs" and not self.SQS_QUEUE_URL:
            required_vars.append("AWS_SQS_QUEUE_URL")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        if self.JOB_SOURCE_TYPE not in ("postgres", "sqs"):
            raise ValueError(f"Unsupported job source type: {self.JOB_SOURCE_TYPE}")

        if self.TTS_MAX_CONCURRENT < 1:
            raise ValueError("TTS_MAX_CONCURRENT must be at least 1")
