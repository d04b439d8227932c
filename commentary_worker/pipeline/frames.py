import os
import logging
from typing import List

import ffmpeg
from PIL import Image

from ..errors import FrameSamplingError
from .util import ffmpeg_error_detail
from .workspace import JobWorkspace

logger = logging.getLogger("commentary_worker")


def sample_frames(video_path: str, workspace: JobWorkspace, job_id: str, interval_sec: int = 5) -> List[str]:
    """
    Sample one JPEG frame every interval_sec seconds.

    Returns:
        Frame paths in chronological order
    """
    frames_dir = workspace.subdir("frames")
    output_pattern = os.path.join(frames_dir, "frame_%04d.jpg")

    logger.info(f"Job {job_id}: sampling frames every {interval_sec}s")

    try:
        (
            ffmpeg
            .input(video_path)
            .filter('fps', fps=f"1/{interval_sec}")
            .output(output_pattern, **{'qscale:v': 2})
            .overwrite_output()
            .run(quiet=True)
        )
    except ffmpeg.Error as e:
        raise FrameSamplingError(f"FFmpeg error sampling frames: {ffmpeg_error_detail(e)}") from e

    frame_paths = sorted(
        os.path.join(frames_dir, name)
        for name in os.listdir(frames_dir)
        if name.startswith("frame_") and name.endswith(".jpg")
    )

    if not frame_paths:
        logger.warning(f"Job {job_id}: no frames were sampled")
    else:
        logger.info(f"Job {job_id}: sampled {len(frame_paths)} frames to {frames_dir}")

    return frame_paths


def validate_frame_file(frame_path: str) -> bool:
    """Validate that frame file exists and is readable"""
    if not os.path.exists(frame_path):
        return False

    try:
        with Image.open(frame_path) as img:
            img.verify()
        return True
    except Exception:
        return False


def select_frames(frame_paths: List[str], max_frames: int) -> List[str]:
    """First max_frames readable frames, in order"""
    selected = []
    for frame_path in frame_paths:
        if len(selected) >= max_frames:
            break
        if validate_frame_file(frame_path):
            selected.append(frame_path)
        else:
            logger.warning(f"Skipping unreadable frame: {frame_path}")
    return selected
