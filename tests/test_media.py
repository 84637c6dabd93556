"""
Unit tests for the FFmpeg wrappers.

Tests the filter path escaping, the upload allow-list, and the probe,
extraction and burn-in wrappers with FFmpeg mocked. A few probe tests run
against a real FFmpeg when it is installed.
"""

import shutil
from pathlib import Path
from unittest.mock import patch

import ffmpeg
import pytest

from app.media import (
    AudioExtractor,
    BurnInError,
    ExtractionError,
    MediaProbe,
    ProbeError,
    SubtitleBurner,
    UploadRejectedError,
    escape_filter_path,
    is_allowed_video,
    partial_path_for,
    subtitles_filter,
)

# Check if FFmpeg is available
FFMPEG_AVAILABLE = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None
skip_if_no_ffmpeg = pytest.mark.skipif(
    not FFMPEG_AVAILABLE,
    reason="FFmpeg not installed - skipping real media tests"
)


def ffmpeg_error(stderr: bytes) -> ffmpeg.Error:
    return ffmpeg.Error("ffmpeg", b"", stderr)


class TestEscapeFilterPath:
    """Tests for escaping paths embedded in the subtitles filter."""

    def test_plain_posix_path_unchanged(self):
        assert escape_filter_path("/srv/subtitles/abc.srt") == "/srv/subtitles/abc.srt"

    def test_windows_path(self):
        """Backslashes become slashes and the drive colon is escaped."""
        assert escape_filter_path("C:\\app\\subtitles\\abc.srt") == "C\\:/app/subtitles/abc.srt"

    def test_every_colon_escaped(self):
        assert escape_filter_path("/tmp/a:b:c.srt") == "/tmp/a\\:b\\:c.srt"

    def test_single_quote_closes_and_reopens_quoting(self):
        assert escape_filter_path("/tmp/it's.srt") == "/tmp/it'\\\\\\''s.srt"

    def test_accepts_path_objects(self):
        assert escape_filter_path(Path("/tmp/x.srt")) == "/tmp/x.srt"

    def test_filter_separators_inside_quotes_untouched(self):
        """Commas, brackets and semicolons are protected by the quotes."""
        assert escape_filter_path("/tmp/a,b[1];c.srt") == "/tmp/a,b[1];c.srt"

    def test_subtitles_filter_expression(self):
        assert subtitles_filter("C:\\subs\\a.srt") == "subtitles=filename='C\\:/subs/a.srt'"


class TestUploadPolicy:
    """Tests for the MIME-or-extension allow-list."""

    def test_matching_mime_and_extension(self):
        assert is_allowed_video("clip.mp4", "video/mp4")

    def test_extension_alone_is_enough(self):
        assert is_allowed_video("clip.MOV", "application/octet-stream")

    def test_mime_alone_is_enough(self):
        assert is_allowed_video("clip.bin", "video/x-matroska")

    def test_mime_with_parameters(self):
        assert is_allowed_video("clip", "video/webm; codecs=vp9")

    def test_neither_matches(self):
        assert not is_allowed_video("notes.txt", "text/plain")

    def test_missing_metadata(self):
        assert not is_allowed_video(None, None)

    def test_rejection_carries_status(self):
        error = UploadRejectedError("too big", 413)
        assert error.status_code == 413
        assert str(error) == "too big"


class TestMediaProbe:
    """Tests for MediaProbe with ffprobe mocked."""

    def test_probe_missing_file(self, tmp_path):
        with pytest.raises(ProbeError, match="not found"):
            MediaProbe().probe_sync(tmp_path / "missing.mp4")

    def test_probe_reports_audio(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00" * 16)
        metadata = {
            "streams": [{"codec_type": "video"}, {"codec_type": "audio"}],
            "format": {"duration": "4.0", "size": "16", "format_name": "mov,mp4,m4a,3gp,3g2,mj2"},
        }

        with patch("app.media.ffmpeg.probe", return_value=metadata) as mock_probe:
            info = MediaProbe().probe_sync(video)

        mock_probe.assert_called_once_with(str(video))
        assert info.has_audio is True
        assert info.duration == 4.0
        assert info.stream_count == 2

    def test_probe_failure_carries_stderr(self, tmp_path):
        video = tmp_path / "broken.mp4"
        video.write_bytes(b"not a video")

        with patch("app.media.ffmpeg.probe", side_effect=ffmpeg_error(b"Invalid data found")):
            with pytest.raises(ProbeError, match="Invalid data found"):
                MediaProbe().probe_sync(video)

    @pytest.mark.asyncio
    async def test_async_probe(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00")
        metadata = {"streams": [{"codec_type": "video"}], "format": {}}

        with patch("app.media.ffmpeg.probe", return_value=metadata):
            info = await MediaProbe().probe(video)

        assert info.has_audio is False


class TestAudioExtractor:
    """Tests for AudioExtractor with ffmpeg mocked."""

    def test_extract_success(self, tmp_path):
        video = tmp_path / "clip.mp4"
        audio = tmp_path / "job.mp3"
        captured = {}

        def fake_run(stream, **kwargs):
            captured["args"] = ffmpeg.get_args(stream)
            captured["kwargs"] = kwargs
            audio.write_bytes(b"ID3" + b"\x00" * 10)

        with patch("app.media.ffmpeg.run", side_effect=fake_run):
            result = AudioExtractor().extract_sync(video, audio)

        assert result == audio
        args = captured["args"]
        assert args[args.index("-i") + 1] == str(video)
        assert args[args.index("-acodec") + 1] == "libmp3lame"
        assert "-vn" in args
        assert args[-1] == str(audio)
        assert captured["kwargs"]["overwrite_output"] is True

    def test_extract_failure_removes_partial_file(self, tmp_path):
        video = tmp_path / "clip.mp4"
        audio = tmp_path / "job.mp3"

        def fake_run(stream, **kwargs):
            audio.write_bytes(b"partial")
            raise ffmpeg_error(b"Output file #0 does not contain any stream")

        with patch("app.media.ffmpeg.run", side_effect=fake_run):
            with pytest.raises(ExtractionError, match="does not contain any stream"):
                AudioExtractor().extract_sync(video, audio)

        assert not audio.exists()

    def test_extract_empty_output_is_failure(self, tmp_path):
        video = tmp_path / "clip.mp4"
        audio = tmp_path / "job.mp3"

        with patch("app.media.ffmpeg.run", side_effect=lambda stream, **kw: audio.write_bytes(b"")):
            with pytest.raises(ExtractionError, match="empty or missing"):
                AudioExtractor().extract_sync(video, audio)

        assert not audio.exists()

    @pytest.mark.asyncio
    async def test_async_extract(self, tmp_path):
        audio = tmp_path / "job.mp3"

        with patch("app.media.ffmpeg.run", side_effect=lambda stream, **kw: audio.write_bytes(b"x")):
            result = await AudioExtractor().extract(tmp_path / "clip.mp4", audio)

        assert result == audio


class TestSubtitleBurner:
    """Tests for SubtitleBurner with ffmpeg mocked."""

    def test_partial_path_is_hidden_beside_output(self, tmp_path):
        output = tmp_path / "abc_subtitled.mp4"

        assert partial_path_for(output) == tmp_path / ".abc_subtitled.partial.mp4"

    def test_burn_builds_escaped_filter(self, tmp_path):
        video = tmp_path / "clip.mp4"
        subtitles = Path("C:\\work\\job.srt")
        output = tmp_path / "clip_subtitled.mp4"
        captured = {}

        def fake_run(stream, **kwargs):
            captured["args"] = ffmpeg.get_args(stream)
            partial_path_for(output).write_bytes(b"\x00" * 32)

        with patch("app.media.ffmpeg.run", side_effect=fake_run):
            SubtitleBurner().burn_sync(video, subtitles, output)

        args = captured["args"]
        assert args[args.index("-vf") + 1] == "subtitles=filename='C\\:/work/job.srt'"
        assert args[args.index("-vcodec") + 1] == "libx264"
        assert args[args.index("-acodec") + 1] == "aac"

    def test_output_appears_only_after_render_completes(self, tmp_path):
        """FFmpeg never writes to the served name; the result is renamed onto it."""
        output = tmp_path / "clip_subtitled.mp4"
        partial = partial_path_for(output)
        seen = {}

        def fake_run(stream, **kwargs):
            seen["args"] = ffmpeg.get_args(stream)
            partial.write_bytes(b"rendered")
            seen["output_during_render"] = output.exists()

        with patch("app.media.ffmpeg.run", side_effect=fake_run):
            result = SubtitleBurner().burn_sync(tmp_path / "clip.mp4", tmp_path / "job.srt", output)

        assert str(output) not in seen["args"]
        assert seen["args"][-1] == str(partial)
        assert seen["output_during_render"] is False
        assert result == output
        assert output.read_bytes() == b"rendered"
        assert not partial.exists()

    def test_burn_removes_stale_output_first(self, tmp_path):
        output = tmp_path / "clip_subtitled.mp4"
        output.write_bytes(b"stale")
        partial_path_for(output).write_bytes(b"leftover")
        seen = {}

        def fake_run(stream, **kwargs):
            seen["output_existed"] = output.exists()
            seen["partial_existed"] = partial_path_for(output).exists()
            partial_path_for(output).write_bytes(b"fresh")

        with patch("app.media.ffmpeg.run", side_effect=fake_run):
            SubtitleBurner().burn_sync(tmp_path / "clip.mp4", tmp_path / "job.srt", output)

        assert seen == {"output_existed": False, "partial_existed": False}
        assert output.read_bytes() == b"fresh"

    def test_unremovable_stale_output_is_burn_error(self, tmp_path):
        output = tmp_path / "clip_subtitled.mp4"
        output.mkdir()
        (output / "keep").write_bytes(b"x")

        with patch("app.media.ffmpeg.run") as mock_run:
            with pytest.raises(BurnInError, match="Could not remove stale output"):
                SubtitleBurner().burn_sync(tmp_path / "clip.mp4", tmp_path / "job.srt", output)

        mock_run.assert_not_called()

    def test_burn_failure_removes_partial_output(self, tmp_path):
        output = tmp_path / "clip_subtitled.mp4"

        def fake_run(stream, **kwargs):
            partial_path_for(output).write_bytes(b"half")
            raise ffmpeg_error(b"Unable to parse option value")

        with patch("app.media.ffmpeg.run", side_effect=fake_run):
            with pytest.raises(BurnInError, match="Unable to parse option value"):
                SubtitleBurner().burn_sync(tmp_path / "clip.mp4", tmp_path / "job.srt", output)

        assert not output.exists()
        assert not partial_path_for(output).exists()

    def test_empty_render_is_failure(self, tmp_path):
        output = tmp_path / "clip_subtitled.mp4"

        with patch("app.media.ffmpeg.run", side_effect=lambda stream, **kw: partial_path_for(output).write_bytes(b"")):
            with pytest.raises(BurnInError, match="empty or missing"):
                SubtitleBurner().burn_sync(tmp_path / "clip.mp4", tmp_path / "job.srt", output)

        assert not output.exists()
        assert not partial_path_for(output).exists()

    @pytest.mark.asyncio
    async def test_async_burn(self, tmp_path):
        output = tmp_path / "out.mp4"

        with patch("app.media.ffmpeg.run", side_effect=lambda stream, **kw: partial_path_for(output).write_bytes(b"x")):
            result = await SubtitleBurner().burn(tmp_path / "in.mp4", tmp_path / "s.srt", output)

        assert result == output
        assert output.read_bytes() == b"x"


@skip_if_no_ffmpeg
class TestMediaProbeWithFFmpeg:
    """Probe tests against generated media files."""

    def make_video(self, path: Path, with_audio: bool) -> Path:
        video = ffmpeg.input("testsrc=duration=1:size=64x64:rate=10", f="lavfi")
        if with_audio:
            audio = ffmpeg.input("sine=frequency=440:duration=1", f="lavfi")
            stream = ffmpeg.output(video, audio, str(path), vcodec="mpeg4", acodec="aac")
        else:
            stream = ffmpeg.output(video, str(path), vcodec="mpeg4")
        ffmpeg.run(stream, overwrite_output=True, quiet=True)
        return path

    def test_probe_video_with_audio(self, tmp_path):
        path = self.make_video(tmp_path / "with_audio.mp4", with_audio=True)

        info = MediaProbe().probe_sync(path)

        assert info.has_audio is True
        assert info.stream_count == 2
        assert info.duration is not None

    def test_probe_video_without_audio(self, tmp_path):
        path = self.make_video(tmp_path / "silent.mp4", with_audio=False)

        info = MediaProbe().probe_sync(path)

        assert info.has_audio is False
        assert info.stream_count == 1

    def test_probe_rejects_non_media(self, tmp_path):
        path = tmp_path / "notes.mp4"
        path.write_text("definitely not a video")

        with pytest.raises(ProbeError):
            MediaProbe().probe_sync(path)
