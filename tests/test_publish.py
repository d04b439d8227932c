import pytest

from commentary_worker.errors import PublicationError
from commentary_worker.pipeline.acquire import fetch_cached_clip
from commentary_worker.pipeline.publish import AssetPublisher
from commentary_worker.pipeline.workspace import JobWorkspace


@pytest.fixture
def publisher(storage, config):
    return AssetPublisher(storage, config)


@pytest.fixture
def media(tmp_path):
    video = tmp_path / "final_video.mp4"
    video.write_bytes(b"video")
    audio = tmp_path / "voiceover.wav"
    audio.write_bytes(b"audio")
    frame = tmp_path / "frame_0001.jpg"
    frame.write_bytes(b"jpg")
    return str(video), str(audio), str(frame)


def test_video_is_published_under_job_namespace_with_signed_url(publisher, storage, media):
    key, url = publisher.publish_video("job-9", media[0])

    assert key == "outputs/job-9/final_video.mp4"
    assert storage.objects[key] == b"video"
    assert url == "https://signed.example/outputs/job-9/final_video.mp4?expires=86400"


def test_audio_is_published_next_to_video(publisher, media):
    key, _ = publisher.publish_audio("job-9", media[1])

    assert key == "outputs/job-9/voiceover.wav"


def test_upload_failure_raises_publication_error(publisher, storage, media):
    storage.fail_prefixes.append("outputs/")

    with pytest.raises(PublicationError):
        publisher.publish_video("job-9", media[0])


def test_thumbnail_is_public(publisher, storage, media):
    url = publisher.publish_thumbnail("job-9", media[2])

    assert len(storage.public_keys) == 1
    key = storage.public_keys[0]
    assert key.startswith("thumbnails/thumbnail_") and key.endswith(".jpg")
    assert url == f"https://public.example/{key}"


def test_thumbnail_failure_returns_none(publisher, storage, media):
    storage.fail_prefixes.append("thumbnails/")

    assert publisher.publish_thumbnail("job-9", media[2]) is None
    assert publisher.publish_thumbnail("job-9", None) is None


def test_cache_assets_degrade_per_object(publisher, storage, media):
    storage.fail_prefixes.append("video_cache/youtube_x/source_clip.mp4")

    clip_ref, frame_refs = publisher.upload_cache_assets("youtube_x", media[0], [media[2]], "job-9")

    assert clip_ref is None
    assert frame_refs == ["video_cache/youtube_x/frames/frame_0001.jpg"]


def test_cached_clip_is_fetched_into_workspace(storage, tmp_path):
    storage.objects["video_cache/youtube_x/source_clip.mp4"] = b"clip"

    with JobWorkspace(str(tmp_path), "job-9") as workspace:
        path = fetch_cached_clip(storage, "video_cache/youtube_x/source_clip.mp4", workspace, "job-9")
        with open(path, "rb") as f:
            assert f.read() == b"clip"


def test_missing_cached_clip_returns_none(storage, tmp_path):
    with JobWorkspace(str(tmp_path), "job-9") as workspace:
        assert fetch_cached_clip(storage, "video_cache/gone/source_clip.mp4", workspace, "job-9") is None
