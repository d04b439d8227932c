"""
Video identity resolution.

Normalizes the many URL shapes of one source video to a single cache key.
"""

import re
from typing import Optional
from urllib.parse import urlparse, parse_qs

YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
SHORT_LINK_HOSTS = {"youtu.be", "www.youtu.be"}

# YouTube ids are 11 characters; accept any url-safe token to stay lenient
_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _clean_id(candidate: Optional[str]) -> Optional[str]:
    if not candidate:
        return None
    candidate = candidate.strip()
    if not _VIDEO_ID_RE.match(candidate):
        return None
    return candidate


def _path_segment_after(path: str, prefix: str) -> Optional[str]:
    """Return the first path segment following prefix, e.g. /shorts/<id>/..."""
    remainder = path[len(prefix):]
    return remainder.split("/", 1)[0] if remainder else None


def get_video_identifier(video_url: Optional[str]) -> Optional[str]:
    """
    Resolve a source URL to a canonical identifier such as "youtube_<VIDEO_ID>".

    Watch-query, short-link, embed and shorts forms of the same video yield the
    same identifier. Unrecognized or malformed inputs yield None.
    """
    if not video_url or not isinstance(video_url, str):
        return None

    raw = video_url.strip()
    if "://" not in raw:
        raw = f"https://{raw}"

    try:
        parsed = urlparse(raw)
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https"):
        return None

    host = (parsed.hostname or "").lower()
    path = parsed.path or ""
    video_id = None

    if host in SHORT_LINK_HOSTS:
        video_id = _path_segment_after(path, "/")
    elif host in YOUTUBE_HOSTS:
        if path.rstrip("/") == "/watch":
            video_id = (parse_qs(parsed.query).get("v") or [None])[0]
        elif path.startswith("/embed/"):
            video_id = _path_segment_after(path, "/embed/")
        elif path.startswith("/shorts/"):
            video_id = _path_segment_after(path, "/shorts/")
        elif path.startswith("/live/"):
            video_id = _path_segment_after(path, "/live/")
        elif path.startswith("/v/"):
            video_id = _path_segment_after(path, "/v/")

    video_id = _clean_id(video_id)
    if not video_id:
        return None
    return f"youtube_{video_id}"
