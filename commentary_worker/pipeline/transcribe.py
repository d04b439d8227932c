import os
import logging
from typing import Any

import ffmpeg

from ..errors import TranscriptionError
from .util import ffmpeg_error_detail, truncate_text
from .workspace import JobWorkspace, remove_file

logger = logging.getLogger("commentary_worker")


def extract_compressed_audio(video_path: str, output_path: str) -> str:
    """
    Extract mono 24kHz MP3 at 64kbps; about 0.5 MB per minute keeps the
    upload well under the speech-to-text size ceiling.
    """
    try:
        (
            ffmpeg
            .input(video_path)
            .output(
                output_path,
                vn=None,
                acodec='libmp3lame',
                audio_bitrate='64k',
                ar=24000,
                ac=1
            )
            .overwrite_output()
            .run(quiet=True)
        )
    except ffmpeg.Error as e:
        raise TranscriptionError(f"FFmpeg error extracting audio: {ffmpeg_error_detail(e)}") from e

    if not os.path.exists(output_path):
        raise TranscriptionError("Audio extraction failed - output file not created")

    return output_path


def transcribe_clip(
    client: Any,
    video_path: str,
    workspace: JobWorkspace,
    job_id: str,
    model: str = "whisper-1",
    max_bytes: int = 25 * 1024 * 1024,
    max_chars: int = 5000
) -> str:
    """
    Transcribe the clip's audio track.

    Returns:
        Transcript text, truncated to max_chars

    Raises:
        TranscriptionError on extraction, size or service failure
    """
    audio_path = workspace.path("transcribe_audio.mp3")

    try:
        extract_compressed_audio(video_path, audio_path)

        size_bytes = os.path.getsize(audio_path)
        logger.info(f"Job {job_id}: compressed audio for transcription is {size_bytes} bytes")
        if size_bytes > max_bytes:
            raise TranscriptionError(
                f"Compressed audio is {size_bytes} bytes, above the {max_bytes} byte limit"
            )

        try:
            with open(audio_path, 'rb') as audio_file:
                transcript = client.audio.transcriptions.create(
                    model=model,
                    file=audio_file
                )
        except Exception as e:
            raise TranscriptionError(f"Transcription service error: {e}") from e

        text = (getattr(transcript, 'text', None) or "").strip()
        if not text:
            raise TranscriptionError("Transcription service returned no text")

        if len(text) > max_chars:
            logger.warning(f"Job {job_id}: transcript is {len(text)} chars, truncating to {max_chars}")
            text = truncate_text(text, max_chars)

        logger.info(f"Job {job_id}: transcription completed ({len(text)} chars)")
        return text

    finally:
        remove_file(audio_path)
