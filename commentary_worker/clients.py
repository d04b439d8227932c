"""
External service client handles.

Built once at process start and passed explicitly into the processor and
stage functions instead of being created at import time.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable

from openai import OpenAI, AsyncOpenAI

from .config import WorkerConfig

logger = logging.getLogger("commentary_worker")


@dataclass
class ServiceClients:
    """
    Completion, vision, speech-to-text and TTS all go through the OpenAI API.

    The async client is produced by a factory because its connection pool is
    bound to the event loop that creates it, and each fan-out runs its own loop.
    """
    openai: Any
    async_openai_factory: Callable[[], Any]


def build_clients(config: WorkerConfig) -> ServiceClients:
    """Create the OpenAI clients shared by every job on this worker"""
    clients = ServiceClients(
        openai=OpenAI(api_key=config.OPENAI_API_KEY),
        async_openai_factory=partial(AsyncOpenAI, api_key=config.OPENAI_API_KEY),
    )
    logger.info("OpenAI clients initialized")
    return clients
