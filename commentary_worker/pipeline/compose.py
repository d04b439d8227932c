import os
import logging

import ffmpeg

from ..errors import CompositionError
from .util import ffmpeg_error_detail, probe_duration
from .workspace import JobWorkspace

logger = logging.getLogger("commentary_worker")


def build_compose_command(video_path: str, audio_path: str, output_path: str, duration_sec: float):
    """
    Mux the clip's video track with the narration.

    The video input loops so a narration longer than the clip is still
    covered; -t cuts the output to the narration length. The clip's own
    audio is never mapped.
    """
    video = ffmpeg.input(video_path, stream_loop=-1)
    audio = ffmpeg.input(audio_path)
    return (
        ffmpeg
        .output(
            video['v:0'],
            audio['a:0'],
            output_path,
            vcodec='libx264',
            preset='veryfast',
            acodec='aac',
            audio_bitrate='192k',
            t=f"{duration_sec:.3f}",
            movflags='+faststart'
        )
        .overwrite_output()
    )


def compose_video_with_audio(
    video_path: str,
    audio_path: str,
    workspace: JobWorkspace,
    job_id: str
) -> str:
    """
    Produce final_video.mp4 whose duration equals the merged audio duration.

    Raises:
        CompositionError on probe or encode failure
    """
    output_path = workspace.path("final_video.mp4")

    try:
        duration = probe_duration(audio_path)
    except (ffmpeg.Error, ValueError) as e:
        raise CompositionError(f"Could not read narration duration: {ffmpeg_error_detail(e)}") from e

    if duration <= 0:
        raise CompositionError(f"Narration has non-positive duration {duration}")

    logger.info(f"Job {job_id}: composing video to narration length {duration:.2f}s")

    try:
        build_compose_command(video_path, audio_path, output_path, duration).run(quiet=True)
    except ffmpeg.Error as e:
        raise CompositionError(f"FFmpeg error composing video: {ffmpeg_error_detail(e)}") from e

    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise CompositionError("Composition failed - output file not created")

    logger.info(f"Job {job_id}: final video written to {output_path}")
    return output_path
