import os
import shutil

import ffmpeg
import pytest
from ffmpeg.nodes import OutputStream

from commentary_worker.errors import AudioFormatMismatchError, AudioMergeError, CompositionError
from commentary_worker.pipeline import compose as compose_module
from commentary_worker.pipeline import merge as merge_module
from commentary_worker.pipeline.acquire import clip_video
from commentary_worker.pipeline.compose import build_compose_command, compose_video_with_audio
from commentary_worker.pipeline.merge import (
    build_concat_command,
    ensure_uniform_format,
    merge_audio_buffers,
    write_concat_list,
    write_line_buffers,
)
from commentary_worker.pipeline.util import probe_duration
from commentary_worker.pipeline.workspace import JobWorkspace


def arg_after(args, flag):
    return args[args.index(flag) + 1]


def map_args(args):
    return [args[i + 1] for i, arg in enumerate(args) if arg == "-map"]


@pytest.fixture
def workspace(tmp_path):
    with JobWorkspace(str(tmp_path), "job-1") as ws:
        yield ws


def test_compose_maps_clip_video_and_narration_only():
    args = build_compose_command("clip.mp4", "voice.wav", "out.mp4", 12.5).compile()

    assert map_args(args) == ["0:v:0", "1:a:0"]
    assert arg_after(args, "-t") == "12.500"
    assert arg_after(args, "-stream_loop") == "-1"
    assert args.index("-stream_loop") < args.index("clip.mp4")
    assert arg_after(args, "-vcodec") == "libx264"
    assert "0:a" not in " ".join(map_args(args))


def test_compose_duration_follows_narration(workspace, monkeypatch):
    commands = []

    def fake_run(self, **kwargs):
        commands.append(self.compile())
        with open(workspace.path("final_video.mp4"), "wb") as f:
            f.write(b"video")

    monkeypatch.setattr(compose_module, "probe_duration", lambda path: 7.25)
    monkeypatch.setattr(OutputStream, "run", fake_run)

    output = compose_video_with_audio("clip.mp4", "voice.wav", workspace, "job-1")

    assert output == workspace.path("final_video.mp4")
    assert arg_after(commands[0], "-t") == "7.250"


def test_compose_fails_when_narration_unreadable(workspace, monkeypatch):
    def broken_probe(path):
        raise ValueError("no duration")

    monkeypatch.setattr(compose_module, "probe_duration", broken_probe)

    with pytest.raises(CompositionError):
        compose_video_with_audio("clip.mp4", "voice.wav", workspace, "job-1")


def test_concat_uses_stream_copy():
    args = build_concat_command("list.txt", "merged.wav").compile()

    assert arg_after(args, "-f") == "concat"
    assert arg_after(args, "-safe") == "0"
    assert arg_after(args, "-c") == "copy"
    assert arg_after(args, "-i") == "list.txt"


def test_line_buffers_keep_original_indices(workspace):
    paths = write_line_buffers([b"a", None, b"c"], workspace)

    assert [os.path.basename(p) for p in paths] == ["line_000.wav", "line_002.wav"]


def test_concat_list_quotes_paths(workspace):
    list_path = write_concat_list(["/tmp/it's.wav", "/tmp/b.wav"], workspace.path("list.txt"))

    with open(list_path) as f:
        assert f.read().splitlines() == ["file '/tmp/it'\\''s.wav'", "file '/tmp/b.wav'"]


def test_mismatched_formats_are_rejected(monkeypatch):
    formats = {
        "a.wav": {"streams": [{"codec_type": "audio", "codec_name": "pcm_s16le", "sample_rate": "24000", "channels": 1}]},
        "b.wav": {"streams": [{"codec_type": "audio", "codec_name": "pcm_s16le", "sample_rate": "44100", "channels": 2}]},
    }
    monkeypatch.setattr(merge_module.ffmpeg, "probe", lambda path: formats[path])

    with pytest.raises(AudioFormatMismatchError, match="24000Hz"):
        ensure_uniform_format(["a.wav", "b.wav"])


def test_uniform_formats_pass(monkeypatch):
    probe = {"streams": [{"codec_type": "audio", "codec_name": "pcm_s16le", "sample_rate": "24000", "channels": 1}]}
    monkeypatch.setattr(merge_module.ffmpeg, "probe", lambda path: probe)

    assert ensure_uniform_format(["a.wav", "b.wav"]) == ("pcm_s16le", 24000, 1)


def test_merge_without_audio_fails(workspace):
    with pytest.raises(AudioMergeError):
        merge_audio_buffers([None, None], workspace, "job-1")


def test_clip_command_bounds_duration(monkeypatch, tmp_path):
    commands = []

    def fake_run(self, **kwargs):
        commands.append(self.compile())
        (tmp_path / "clip.mp4").write_bytes(b"clip")

    monkeypatch.setattr(OutputStream, "run", fake_run)

    clip_video("source.mp4", str(tmp_path / "clip.mp4"), 60, start_sec=5)

    args = commands[0]
    assert arg_after(args, "-ss") == "5"
    assert arg_after(args, "-t") == "60"
    assert arg_after(args, "-preset") == "ultrafast"
    assert arg_after(args, "-b:a") == "192k"


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg not installed",
)


def render_test_clip(path, seconds):
    (
        ffmpeg
        .input(f"testsrc=duration={seconds}:size=160x120:rate=10", f="lavfi")
        .output(str(path), vcodec="libx264", pix_fmt="yuv420p")
        .overwrite_output()
        .run(quiet=True)
    )
    return str(path)


def render_tone(path, seconds):
    (
        ffmpeg
        .input(f"sine=frequency=440:duration={seconds}", f="lavfi")
        .output(str(path), acodec="pcm_s16le", ar=24000, ac=1)
        .overwrite_output()
        .run(quiet=True)
    )
    return str(path)


@requires_ffmpeg
@pytest.mark.parametrize("clip_sec, narration_sec", [(1, 3), (4, 1.5)])
def test_composed_video_lasts_as_long_as_narration(workspace, tmp_path, clip_sec, narration_sec):
    clip = render_test_clip(tmp_path / "clip.mp4", clip_sec)
    narration = render_tone(tmp_path / "narration.wav", narration_sec)

    output = compose_video_with_audio(clip, narration, workspace, "job-1")

    assert probe_duration(output) == pytest.approx(narration_sec, abs=0.25)
    streams = ffmpeg.probe(output)['streams']
    assert sorted(stream['codec_type'] for stream in streams) == ["audio", "video"]
