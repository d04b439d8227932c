import os
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import ffmpeg

from ..errors import AudioFormatMismatchError, AudioMergeError
from .util import ffmpeg_error_detail
from .workspace import JobWorkspace

logger = logging.getLogger("commentary_worker")

AudioFormat = Tuple[Optional[str], Optional[int], Optional[int]]


def write_line_buffers(buffers: Sequence[Optional[bytes]], workspace: JobWorkspace) -> List[str]:
    """
    Write per-line audio to tts/line_NNN.wav in line order.

    Lines without audio are skipped; the index in the file name stays the
    original line index.
    """
    tts_dir = workspace.subdir("tts")
    paths = []
    for i, buffer in enumerate(buffers):
        if not buffer:
            continue
        path = os.path.join(tts_dir, f"line_{i:03d}.wav")
        with open(path, 'wb') as f:
            f.write(buffer)
        paths.append(path)
    return paths


def probe_audio_format(audio_path: str) -> AudioFormat:
    """(codec, sample_rate, channels) of the first audio stream"""
    try:
        probe = ffmpeg.probe(audio_path)
    except ffmpeg.Error as e:
        raise AudioMergeError(f"Could not probe {os.path.basename(audio_path)}: {ffmpeg_error_detail(e)}") from e

    audio_stream = next((s for s in probe.get('streams', []) if s.get('codec_type') == 'audio'), None)
    if audio_stream is None:
        raise AudioMergeError(f"No audio stream in {os.path.basename(audio_path)}")

    sample_rate = audio_stream.get('sample_rate')
    channels = audio_stream.get('channels')
    return (
        audio_stream.get('codec_name'),
        int(sample_rate) if sample_rate is not None else None,
        int(channels) if channels is not None else None,
    )


def ensure_uniform_format(audio_paths: Sequence[str]) -> AudioFormat:
    """
    Stream copy concatenation needs every input in one format.

    Raises:
        AudioFormatMismatchError listing the formats found
    """
    formats: Dict[str, AudioFormat] = {path: probe_audio_format(path) for path in audio_paths}
    distinct = set(formats.values())
    if len(distinct) > 1:
        detail = ", ".join(
            f"{os.path.basename(path)}={codec}/{rate}Hz/{channels}ch"
            for path, (codec, rate, channels) in formats.items()
        )
        raise AudioFormatMismatchError(f"Per-line audio formats differ: {detail}")
    return distinct.pop()


def _quote_concat_path(path: str) -> str:
    return "'" + path.replace("'", "'\\''") + "'"


def write_concat_list(audio_paths: Sequence[str], list_path: str) -> str:
    with open(list_path, 'w', encoding='utf-8') as f:
        for path in audio_paths:
            f.write(f"file {_quote_concat_path(os.path.abspath(path))}\n")
    return list_path


def build_concat_command(list_path: str, output_path: str):
    """ffmpeg concat demuxer with stream copy, no re-encode"""
    return (
        ffmpeg
        .input(list_path, format='concat', safe=0)
        .output(output_path, c='copy')
        .overwrite_output()
    )


def merge_audio_buffers(
    buffers: Sequence[Optional[bytes]],
    workspace: JobWorkspace,
    job_id: str
) -> str:
    """
    Concatenate per-line audio into merged_voiceover.wav.

    Returns:
        Path of the merged audio file

    Raises:
        AudioFormatMismatchError when the inputs disagree on format
        AudioMergeError for any other merge failure
    """
    audio_paths = write_line_buffers(buffers, workspace)
    if not audio_paths:
        raise AudioMergeError("No audio buffers to merge")

    output_path = workspace.path("merged_voiceover.wav")

    codec, sample_rate, channels = ensure_uniform_format(audio_paths)
    logger.info(
        f"Job {job_id}: merging {len(audio_paths)} audio segments ({codec}, {sample_rate}Hz, {channels}ch)"
    )

    list_path = write_concat_list(audio_paths, workspace.path("tts", "concat_list.txt"))

    try:
        build_concat_command(list_path, output_path).run(quiet=True)
    except ffmpeg.Error as e:
        raise AudioMergeError(f"FFmpeg error merging audio: {ffmpeg_error_detail(e)}") from e

    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise AudioMergeError("Audio merge failed - output file not created")

    logger.info(f"Job {job_id}: merged audio written to {output_path}")
    return output_path
