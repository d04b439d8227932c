"""
AWS SQS adapter for job source.

Provides pull-based job polling from SQS queues. Delivery is
at-least-once: a message is deleted only after its job reaches a
terminal state, so a crashed worker's job is redelivered.
"""

import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from .base import JobSourceAdapter, JobStore
from ..models import VideoJob, JobPayload

logger = logging.getLogger("commentary_worker")


class SQSJobSourceAdapter(JobSourceAdapter):
    """AWS SQS implementation of job source adapter"""

    def __init__(
        self,
        queue_url: str,
        job_store: JobStore,
        region: str = "us-east-1",
        wait_time: int = 20,
        visibility_timeout: int = 900
    ):
        self.queue_url = queue_url
        self.job_store = job_store
        self.region = region
        self.wait_time = wait_time
        self.visibility_timeout = visibility_timeout
        self.sqs = None

    def connect(self):
        """Initialize SQS client"""
        try:
            self.sqs = boto3.client('sqs', region_name=self.region)
            logger.info(f"SQS job source connected to queue: {self.queue_url}")
        except Exception as e:
            logger.error(f"Failed to connect to SQS: {e}")
            raise

    def _delete_message(self, receipt_handle: str) -> None:
        try:
            self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
        except ClientError as e:
            logger.error(f"Failed to delete SQS message: {e}")

    def claim_job(self) -> Optional[VideoJob]:
        """Long-poll one message and record its job in the job store"""
        if not self.sqs:
            raise RuntimeError("SQS client not initialized. Call connect() first.")

        try:
            response = self.sqs.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=self.wait_time,
                VisibilityTimeout=self.visibility_timeout
            )
        except ClientError as e:
            logger.error(f"SQS error claiming job: {e}")
            return None

        messages = response.get('Messages', [])
        if not messages:
            return None

        message = messages[0]
        receipt_handle = message['ReceiptHandle']

        try:
            body = json.loads(message['Body'])
            # Accept both a bare payload and one wrapped as {"job": {...}}
            if isinstance(body, dict) and isinstance(body.get('job'), dict):
                body = body['job']
            payload = JobPayload.model_validate(body)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Discarding malformed SQS message {message['MessageId']}: {e}")
            self._delete_message(receipt_handle)
            return None

        job = self.job_store.create_job(payload)
        job.delivery = {
            'receipt_handle': receipt_handle,
            'message_id': message['MessageId'],
        }

        logger.info(f"Claimed SQS job {job.id} (status {job.status})")
        return job

    def acknowledge(self, job: VideoJob) -> None:
        """Delete the job's message from the queue"""
        receipt_handle = job.delivery.get('receipt_handle')
        if not receipt_handle:
            logger.warning(f"Job {job.id}: no SQS receipt handle to acknowledge")
            return
        self._delete_message(receipt_handle)
        logger.info(f"Job {job.id}: SQS message deleted")

    def close(self):
        """Close SQS connection"""
        self.sqs = None
        logger.info("SQS job source connection closed")
