"""
Per-job scratch directory.

Every local artifact of a job run (downloads, clip, frames, per-line audio,
merged audio, composed video) lives under one uniquely named directory that
is removed on every exit path.
"""

import logging
import os
import shutil
import uuid
from typing import Optional

from .util import clean_filename, ensure_dir

logger = logging.getLogger("commentary_worker")


class JobWorkspace:
    """Context manager owning the local files of one job run"""

    def __init__(self, base_dir: str, job_id: str):
        self.base_dir = base_dir
        self.job_id = job_id
        # Same job id may be delivered twice; the suffix keeps runs apart
        self.root = os.path.join(base_dir, f"{clean_filename(job_id)}-{uuid.uuid4().hex[:8]}")
        self._open = False

    def __enter__(self) -> 'JobWorkspace':
        ensure_dir(self.root)
        self._open = True
        logger.debug(f"Job {self.job_id}: workspace created at {self.root}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def path(self, *parts: str) -> str:
        """Absolute path of a file inside the workspace"""
        return os.path.join(self.root, *parts)

    def subdir(self, name: str) -> str:
        directory = self.path(name)
        ensure_dir(directory)
        return directory

    def cleanup(self) -> None:
        if not self._open and not os.path.exists(self.root):
            return
        try:
            shutil.rmtree(self.root)
            logger.info(f"Job {self.job_id}: cleaned up workspace {self.root}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Job {self.job_id}: failed to remove workspace {self.root}: {e}")
        finally:
            self._open = False

    @property
    def exists(self) -> bool:
        return os.path.isdir(self.root)


def remove_file(path: Optional[str]) -> None:
    """Delete a single intermediate file, ignoring files already gone"""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
