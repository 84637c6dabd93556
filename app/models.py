"""
Data models for the Subtitle Burner API.

This module defines the core data structures used throughout the application:
the per-upload job with its derived artifact paths, the stream report produced
by the media probe, and the status values reported by the transcription service.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4


OUTPUT_SUFFIX = "_subtitled"
OUTPUT_EXTENSION = ".mp4"


class JobState(Enum):
    """
    Enumeration of pipeline job states.

    Attributes:
        VALIDATING: The upload is being probed
        EXTRACTING_AUDIO: The audio track is being extracted
        TRANSCRIBING: The audio is with the transcription service
        BURNING_SUBTITLES: The subtitles are being rendered into the video
        DONE: The output file is ready
        FAILED: A step failed and the job was cleaned up
    """
    VALIDATING = "validating"
    EXTRACTING_AUDIO = "extracting_audio"
    TRANSCRIBING = "transcribing"
    BURNING_SUBTITLES = "burning_subtitles"
    DONE = "done"
    FAILED = "failed"


class TranscriptStatus(str, Enum):
    """Transcript states reported by the transcription service."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TranscriptStatus.COMPLETED, TranscriptStatus.ERROR)


def output_name_for(source_path: Union[str, Path]) -> str:
    """
    Derive the finished artifact name from an uploaded file's stored name.

    ``uploads/3f2a.mov`` becomes ``3f2a_subtitled.mp4``.
    """
    return f"{Path(source_path).stem}{OUTPUT_SUFFIX}{OUTPUT_EXTENSION}"


class Job:
    """
    Represents one pipeline execution for one uploaded video.

    The job id is generated before any artifact path is computed, and the
    audio and subtitle paths are namespaced by it so concurrent jobs never
    share a file. The output path is namespaced by the upload's stored name
    instead, because that is the name clients later use to fetch the result.

    Attributes:
        job_id: Unique identifier for the job
        source_path: Path to the uploaded video (owned by the job)
        original_name: Client supplied filename, used for response metadata only
        audio_path: Extracted audio location
        subtitle_path: Downloaded subtitle document location
        output_name: File name of the finished artifact
        output_path: Location of the finished artifact
        state: Current JobState
        error_code: Failure code when the job failed
        error_message: Failure description when the job failed
        created_at: Timestamp when the job was created
        completed_at: Timestamp when the job reached DONE or FAILED
    """

    def __init__(
        self,
        source_path: Union[str, Path],
        original_name: str,
        work_dir: Union[str, Path],
        output_dir: Union[str, Path],
        job_id: Optional[str] = None,
    ):
        self.job_id = job_id or str(uuid4())
        self.source_path = Path(source_path)
        self.original_name = original_name

        work_dir = Path(work_dir)
        self.audio_path = work_dir / f"{self.job_id}.mp3"
        self.subtitle_path = work_dir / f"{self.job_id}.srt"

        self.output_name = output_name_for(self.source_path)
        self.output_path = Path(output_dir) / self.output_name

        self.state = JobState.VALIDATING
        self.error_code: Optional[str] = None
        self.error_message: Optional[str] = None
        self.created_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None
        self.cleaned_up = False

    @property
    def temporary_paths(self) -> tuple:
        """Inputs and intermediates the job must remove on every exit path."""
        return (self.source_path, self.audio_path, self.subtitle_path)

    def advance(self, state: JobState) -> None:
        self.state = state
        if state in (JobState.DONE, JobState.FAILED):
            self.completed_at = datetime.now(timezone.utc)

    def fail(self, error_code: str, error_message: str) -> None:
        self.error_code = error_code
        self.error_message = error_message
        self.advance(JobState.FAILED)

    def to_dict(self) -> dict:
        """
        Convert the Job instance to a dictionary representation.

        Returns:
            Dictionary containing all job attributes with serializable values
        """
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "source_path": str(self.source_path),
            "original_name": self.original_name,
            "audio_path": str(self.audio_path),
            "subtitle_path": str(self.subtitle_path),
            "output_name": self.output_name,
            "output_path": str(self.output_path),
            "error_code": self.error_code,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"Job(job_id={self.job_id!r}, state={self.state.value!r}, "
            f"source_path={str(self.source_path)!r})"
        )


class MediaInfo:
    """
    Stream composition of a media file as reported by the probe.

    Attributes:
        has_audio: Whether any audio stream is present
        duration: Duration in seconds, when the container reports one
        size: File size in bytes, when the container reports one
        container_format: Container format name (e.g. "mov,mp4,m4a,3gp,3g2,mj2")
        stream_count: Number of streams in the container
    """

    def __init__(
        self,
        has_audio: bool,
        duration: Optional[float] = None,
        size: Optional[int] = None,
        container_format: Optional[str] = None,
        stream_count: int = 0,
    ):
        self.has_audio = has_audio
        self.duration = duration
        self.size = size
        self.container_format = container_format
        self.stream_count = stream_count

    @classmethod
    def from_probe(cls, metadata: dict) -> "MediaInfo":
        """Build a MediaInfo from ffprobe's JSON output."""
        streams = metadata.get("streams") or []
        fmt = metadata.get("format") or {}
        return cls(
            has_audio=any(s.get("codec_type") == "audio" for s in streams),
            duration=_to_number(fmt.get("duration"), float),
            size=_to_number(fmt.get("size"), int),
            container_format=fmt.get("format_name"),
            stream_count=len(streams),
        )

    def to_dict(self) -> dict:
        return {
            "hasAudio": self.has_audio,
            "duration": self.duration,
            "size": self.size,
            "format": self.container_format,
            "streams": self.stream_count,
        }

    def __repr__(self) -> str:
        return (
            f"MediaInfo(has_audio={self.has_audio!r}, duration={self.duration!r}, "
            f"format={self.container_format!r}, streams={self.stream_count!r})"
        )


def _to_number(value, kind):
    # ffprobe reports numbers as strings, and "N/A" for unknown values
    if value is None:
        return None
    try:
        return kind(value)
    except (TypeError, ValueError):
        return None
