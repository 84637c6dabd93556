"""
FFmpeg wrappers for the Subtitle Burner API.

This module contains the three transcoder capabilities the pipeline needs:
probing an upload's stream composition, extracting its audio track, and
rendering a subtitle document into its video track. It also holds the upload
allow-list used at the transport boundary.

FFmpeg itself runs out of process; the blocking ``ffmpeg-python`` calls are
dispatched with ``asyncio.to_thread`` so the event loop keeps serving other
requests while a transcode runs.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Union

import ffmpeg

from app.models import MediaInfo


ALLOWED_VIDEO_EXTENSIONS = frozenset({
    ".mp4", ".avi", ".mov", ".mkv", ".wmv", ".webm", ".m4v", ".3gp", ".flv",
})

ALLOWED_VIDEO_MIME_TYPES = frozenset({
    "video/mp4",
    "video/x-msvideo",
    "video/quicktime",
    "video/x-matroska",
    "video/x-ms-wmv",
    "video/webm",
    "video/x-m4v",
    "video/3gpp",
    "video/x-flv",
})

# Hidden (dot-prefixed) and never served by the streamer
PARTIAL_SUFFIX = ".partial"

SUPPORTED_FORMATS_MESSAGE = (
    "Only video files are allowed! Supported: MP4, AVI, MOV, MKV, WMV, WebM"
)


class ProbeError(Exception):
    """Exception raised when a file cannot be parsed as media."""
    pass


class ExtractionError(Exception):
    """Exception raised when audio extraction fails."""
    pass


class BurnInError(Exception):
    """Exception raised when rendering subtitles into a video fails."""
    pass


class UploadRejectedError(Exception):
    """
    Exception raised when an upload fails the type or size policy.

    Attributes:
        status_code: HTTP status the transport should answer with
    """

    def __init__(self, message: str, status_code: int = 415):
        super().__init__(message)
        self.status_code = status_code


def is_allowed_video(filename: Optional[str], content_type: Optional[str]) -> bool:
    """
    Check an upload against the video allow-list.

    The upload passes when EITHER its declared MIME type OR its file
    extension is on the list.
    """
    extension = Path(filename or "").suffix.lower()
    mime_type = (content_type or "").split(";")[0].strip().lower()
    return mime_type in ALLOWED_VIDEO_MIME_TYPES or extension in ALLOWED_VIDEO_EXTENSIONS


def escape_filter_path(path: Union[str, Path]) -> str:
    """
    Escape a file path for use inside a single-quoted filter argument.

    FFmpeg parses ``-vf`` values twice: once as a filtergraph, where single
    quotes protect everything up to the next quote, and once as the filter's
    option list, where ``:`` separates options and ``\\`` escapes. The
    returned text is meant to be wrapped in single quotes, e.g.
    ``subtitles=filename='<escaped>'``.

    - ``\\`` becomes ``/`` (FFmpeg accepts forward slashes on every platform)
    - ``:`` becomes ``\\:`` so a drive letter is not read as an option separator
    - ``'`` closes the quote, emits an escaped quote for both parsing levels,
      and reopens the quote
    """
    text = str(path).replace("\\", "/")
    text = text.replace(":", "\\:")
    return text.replace("'", "'\\\\\\''")


def subtitles_filter(subtitle_path: Union[str, Path]) -> str:
    """Build the ``subtitles`` video filter expression for a subtitle file."""
    return f"subtitles=filename='{escape_filter_path(subtitle_path)}'"


def partial_path_for(output_path: Union[str, Path]) -> Path:
    """``edited/abc_subtitled.mp4`` renders into ``edited/.abc_subtitled.partial.mp4``."""
    output_path = Path(output_path)
    return output_path.with_name(f".{output_path.stem}{PARTIAL_SUFFIX}{output_path.suffix}")


def _stderr_text(error: ffmpeg.Error) -> str:
    if error.stderr:
        return error.stderr.decode(errors="replace").strip()
    return str(error)


def _remove_partial(path: Path, logger: logging.Logger) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove partial output {path}: {e}")


class MediaProbe:
    """Reports the stream composition of a local media file."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def probe_sync(self, file_path: Union[str, Path]) -> MediaInfo:
        """
        Probe a media file.

        Args:
            file_path: Path to the media file

        Returns:
            MediaInfo describing the file's streams

        Raises:
            ProbeError: If the file is missing or cannot be parsed as media
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ProbeError(f"Media file not found: {file_path}")

        try:
            metadata = ffmpeg.probe(str(file_path))
        except ffmpeg.Error as e:
            message = _stderr_text(e)
            self.logger.error(f"FFprobe failed for {file_path}: {message}")
            raise ProbeError(message) from e

        info = MediaInfo.from_probe(metadata)
        self.logger.info(f"Probed {file_path}: {info!r}")
        return info

    async def probe(self, file_path: Union[str, Path]) -> MediaInfo:
        return await asyncio.to_thread(self.probe_sync, file_path)


class AudioExtractor:
    """Produces a standalone MP3 file from a video's audio track."""

    AUDIO_CODEC = "libmp3lame"

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def extract_sync(
        self,
        video_path: Union[str, Path],
        audio_path: Union[str, Path]
    ) -> Path:
        """
        Extract the audio track of a video.

        The call returns only after FFmpeg exits cleanly. On failure any
        partially written destination is removed.

        Args:
            video_path: Source video
            audio_path: Destination audio file

        Returns:
            Path to the extracted audio

        Raises:
            ExtractionError: If FFmpeg fails or produces no output
        """
        video_path = Path(video_path)
        audio_path = Path(audio_path)

        stream = ffmpeg.input(str(video_path))
        stream = ffmpeg.output(stream, str(audio_path), acodec=self.AUDIO_CODEC, vn=None)

        self.logger.info(f"Extracting audio: {video_path} -> {audio_path}")

        try:
            ffmpeg.run(stream, overwrite_output=True, capture_stdout=True, capture_stderr=True)
        except ffmpeg.Error as e:
            message = _stderr_text(e)
            self.logger.error(f"Audio extraction failed: {message}")
            _remove_partial(audio_path, self.logger)
            raise ExtractionError(message) from e

        if not audio_path.exists() or audio_path.stat().st_size == 0:
            _remove_partial(audio_path, self.logger)
            raise ExtractionError("Audio extraction produced an empty or missing file")

        self.logger.info(f"Audio extracted successfully: {audio_path}")
        return audio_path

    async def extract(
        self,
        video_path: Union[str, Path],
        audio_path: Union[str, Path]
    ) -> Path:
        return await asyncio.to_thread(self.extract_sync, video_path, audio_path)


class SubtitleBurner:
    """Renders a subtitle document into the video track of a source video."""

    VIDEO_CODEC = "libx264"
    AUDIO_CODEC = "aac"

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def burn_sync(
        self,
        video_path: Union[str, Path],
        subtitle_path: Union[str, Path],
        output_path: Union[str, Path]
    ) -> Path:
        """
        Write a copy of ``video_path`` with subtitles burned into the picture.

        FFmpeg renders into a hidden partial file beside ``output_path``; the
        partial file is renamed onto ``output_path`` only after a clean exit,
        so a served name never refers to a half-written video. A stale file at
        ``output_path`` is removed first and the partial file is removed if
        rendering fails.

        Raises:
            BurnInError: If FFmpeg fails, produces no output, or the output
                location cannot be prepared or published
        """
        video_path = Path(video_path)
        output_path = Path(output_path)
        partial_path = partial_path_for(output_path)

        try:
            output_path.unlink(missing_ok=True)
            partial_path.unlink(missing_ok=True)
        except OSError as e:
            raise BurnInError(f"Could not remove stale output: {e}") from e

        stream = ffmpeg.input(str(video_path))
        stream = ffmpeg.output(
            stream,
            str(partial_path),
            vf=subtitles_filter(subtitle_path),
            vcodec=self.VIDEO_CODEC,
            acodec=self.AUDIO_CODEC,
        )

        self.logger.info(f"Burning subtitles: {video_path} + {subtitle_path} -> {output_path}")

        try:
            ffmpeg.run(stream, overwrite_output=True, capture_stdout=True, capture_stderr=True)
        except ffmpeg.Error as e:
            message = _stderr_text(e)
            self.logger.error(f"Subtitle burn-in failed: {message}")
            _remove_partial(partial_path, self.logger)
            raise BurnInError(message) from e

        if not partial_path.exists() or partial_path.stat().st_size == 0:
            _remove_partial(partial_path, self.logger)
            raise BurnInError("Subtitle burn-in produced an empty or missing file")

        try:
            os.replace(partial_path, output_path)
        except OSError as e:
            _remove_partial(partial_path, self.logger)
            raise BurnInError(f"Could not publish rendered video: {e}") from e

        self.logger.info(f"Video processing completed: {output_path}")
        return output_path

    async def burn(
        self,
        video_path: Union[str, Path],
        subtitle_path: Union[str, Path],
        output_path: Union[str, Path]
    ) -> Path:
        return await asyncio.to_thread(self.burn_sync, video_path, subtitle_path, output_path)
