import os
import logging
from typing import Optional

import ffmpeg
import yt_dlp

from ..errors import AcquisitionError, StorageError
from .util import ffmpeg_error_detail, get_file_size_mb, probe_duration
from .workspace import JobWorkspace, remove_file

logger = logging.getLogger("commentary_worker")

# Best MP4 video with M4A audio, then best MP4, then best overall
DOWNLOAD_FORMAT = "bv*[ext=mp4]+ba[ext=m4a]/b[ext=mp4]/bv*+ba/b"


def download_source_video(video_url: str, workspace: JobWorkspace, job_id: str) -> str:
    """
    Download the source video into the job workspace with yt-dlp.

    Returns:
        Path of the downloaded mp4 file
    """
    download_dir = workspace.subdir("download")
    ydl_opts = {
        "outtmpl": os.path.join(download_dir, "source.%(ext)s"),
        "format": DOWNLOAD_FORMAT,
        "merge_output_format": "mp4",
        "noplaylist": True,
        "nopart": True,
        "quiet": True,
        "no_warnings": True,
        "socket_timeout": 30,
        "retries": 3,
    }

    logger.info(f"Job {job_id}: downloading source video {video_url}")

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(video_url, download=True)
            filename = ydl.prepare_filename(info)
            for entry in info.get("requested_downloads") or []:
                if entry.get("filepath"):
                    filename = entry["filepath"]
                    break
    except yt_dlp.utils.DownloadError as e:
        raise AcquisitionError(f"Download failed for {video_url}: {e}") from e
    except Exception as e:
        raise AcquisitionError(f"Unexpected error downloading {video_url}: {e}") from e

    if not filename or not os.path.exists(filename):
        raise AcquisitionError(f"Downloaded video file not found for {video_url}")

    logger.info(f"Job {job_id}: downloaded {get_file_size_mb(filename):.1f} MB to {filename}")
    return filename


def clip_video(input_path: str, output_path: str, max_duration_sec: int, start_sec: int = 0) -> str:
    """
    Cut [start, start + max_duration] and re-encode to H.264/AAC so later
    muxing does not depend on the source codecs.
    """
    try:
        (
            ffmpeg
            .input(input_path, ss=start_sec)
            .output(
                output_path,
                t=max_duration_sec,
                vcodec='libx264',
                preset='ultrafast',
                acodec='aac',
                audio_bitrate='192k',
                movflags='+faststart'
            )
            .overwrite_output()
            .run(quiet=True)
        )
    except ffmpeg.Error as e:
        raise AcquisitionError(f"FFmpeg error clipping video: {ffmpeg_error_detail(e)}") from e

    if not os.path.exists(output_path):
        raise AcquisitionError("Clipping failed - output file not created")

    return output_path


def download_and_clip_video(
    video_url: str,
    workspace: JobWorkspace,
    job_id: str,
    max_duration_sec: int = 60,
    start_sec: int = 0
) -> str:
    """
    Retrieve the source video and produce a bounded-duration clip.

    Raises:
        AcquisitionError on any retrieval or tool failure
    """
    downloaded_path = download_source_video(video_url, workspace, job_id)
    clip_path = workspace.path("source_clip.mp4")

    logger.info(f"Job {job_id}: clipping {max_duration_sec}s from {start_sec}s")

    try:
        clip_video(downloaded_path, clip_path, max_duration_sec, start_sec)
    finally:
        # The full download can be large; only the clip is needed from here on
        remove_file(downloaded_path)

    try:
        duration = probe_duration(clip_path)
        logger.info(f"Job {job_id}: clip ready at {clip_path} ({duration:.2f}s)")
    except (ffmpeg.Error, ValueError) as e:
        raise AcquisitionError(f"Clipped video is not readable: {ffmpeg_error_detail(e)}") from e

    return clip_path


def fetch_cached_clip(storage, clip_ref: str, workspace: JobWorkspace, job_id: str) -> Optional[str]:
    """
    Download a previously cached clip from object storage into the workspace.

    Returns:
        Local path, or None when the cached clip could not be fetched
    """
    local_path = workspace.path("cached_clip.mp4")
    try:
        storage.download_file(clip_ref, local_path)
    except StorageError as e:
        logger.warning(f"Job {job_id}: cached clip {clip_ref} unavailable, will re-acquire: {e}")
        remove_file(local_path)
        return None

    if not os.path.exists(local_path) or os.path.getsize(local_path) == 0:
        logger.warning(f"Job {job_id}: cached clip {clip_ref} downloaded empty, will re-acquire")
        remove_file(local_path)
        return None

    logger.info(f"Job {job_id}: using cached clip {clip_ref}")
    return local_path
