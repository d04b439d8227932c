import os
import re
from typing import Optional

import ffmpeg


def ensure_dir(path: str):
    """Ensure directory exists"""
    os.makedirs(path, exist_ok=True)


def get_file_size_mb(file_path: str) -> float:
    """Get file size in MB"""
    try:
        size_bytes = os.path.getsize(file_path)
        return size_bytes / (1024 * 1024)
    except OSError:
        return 0.0


def clean_filename(filename: str) -> str:
    """Clean filename for safe filesystem usage"""
    # Remove or replace unsafe characters
    filename = re.sub(r'[<>:"/\\|?*\s]', '_', filename)
    # Remove multiple underscores
    filename = re.sub(r'_+', '_', filename)
    # Remove leading/trailing underscores and dots
    filename = filename.strip('_.')
    return filename or 'unnamed'


def truncate_text(text: Optional[str], max_chars: int) -> Optional[str]:
    """Cut text to at most max_chars characters"""
    if text is None or len(text) <= max_chars:
        return text
    return text[:max_chars]


def preview(text: Optional[str], length: int = 100) -> str:
    """Short single-line preview for log messages"""
    if not text:
        return "None"
    flat = " ".join(text.split())
    return flat if len(flat) <= length else f"{flat[:length]}..."


def ffmpeg_error_detail(error: Exception) -> str:
    """Decode ffmpeg stderr when available"""
    if isinstance(error, ffmpeg.Error) and error.stderr:
        stderr = error.stderr.decode(errors="replace") if isinstance(error.stderr, bytes) else str(error.stderr)
        # Last lines carry the actual failure; the head is build info
        return " | ".join(stderr.strip().splitlines()[-5:])
    return str(error)


def probe_duration(media_path: str) -> float:
    """Container duration in seconds via ffprobe"""
    probe = ffmpeg.probe(media_path)
    duration = probe.get('format', {}).get('duration')
    if duration is None:
        # Some containers only report per-stream durations
        durations = [float(s['duration']) for s in probe.get('streams', []) if s.get('duration')]
        if not durations:
            raise ValueError(f"ffprobe did not return a duration for {media_path}")
        return max(durations)
    return float(duration)
