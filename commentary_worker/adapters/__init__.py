"""
Adapter pattern implementations for job sources and storage backends.

This module provides abstract base classes and concrete implementations
for job sources (Postgres, SQS), the job and asset-cache stores (Postgres)
and object storage (S3 or S3-compatible).
"""

from .base import JobSourceAdapter, JobStore, AssetCacheStore, ObjectStorage
from .postgres_adapter import PostgresJobStore, PostgresJobSourceAdapter, PostgresAssetCache
from .sqs_adapter import SQSJobSourceAdapter
from .s3_adapter import S3ObjectStorage

__all__ = [
    'JobSourceAdapter',
    'JobStore',
    'AssetCacheStore',
    'ObjectStorage',
    'PostgresJobStore',
    'PostgresJobSourceAdapter',
    'PostgresAssetCache',
    'SQSJobSourceAdapter',
    'S3ObjectStorage'
]
