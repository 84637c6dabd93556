"""
Job pipeline for the Subtitle Burner API.

This module provides the JobPipeline class which turns one uploaded video
into one subtitled video:

1. Probe the upload and require an audio track
2. Extract the audio track
3. Transcribe the audio and download SRT subtitles
4. Save the subtitles next to the audio
5. Burn the subtitles into the video

Each step starts only after the previous one succeeded. Whatever happens,
the upload, the extracted audio and the subtitle file are removed before
``run`` returns; on failure a partial output is removed too. Every failure
leaves ``run`` as a single PipelineError.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from app.logging_config import get_logger, log_step, log_with_context
from app.media import (
    AudioExtractor,
    BurnInError,
    ExtractionError,
    MediaProbe,
    ProbeError,
    SubtitleBurner,
    partial_path_for,
)
from app.models import Job, JobState
from app.transcription_client import TranscriptionClient, TranscriptionError


NO_AUDIO_MESSAGE = (
    "Video file does not contain an audio track. "
    "Please upload a video with audio for subtitle generation."
)


class PipelineErrorCode(str, Enum):
    """Failure categories surfaced to API clients."""
    INVALID_VIDEO = "INVALID_VIDEO"
    NO_AUDIO_TRACK = "NO_AUDIO_TRACK"
    AUDIO_EXTRACTION_FAILED = "AUDIO_EXTRACTION_FAILED"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    RENDER_FAILED = "RENDER_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PipelineError(Exception):
    """
    Exception raised when a pipeline step fails.

    Attributes:
        code: PipelineErrorCode of the failed step
        details: Human readable description of the proximate cause
        job_id: Identifier of the failed job, when one was created
    """

    def __init__(self, code: PipelineErrorCode, details: str, job_id: Optional[str] = None):
        super().__init__(details)
        self.code = code
        self.details = details
        self.job_id = job_id

    def __repr__(self) -> str:
        return f"PipelineError(code={self.code.value!r}, details={self.details!r})"


class PipelineResult:
    """Describes a finished job and where its output can be fetched."""

    def __init__(self, job_id: str, original_name: str, output_name: str, output_path: Path):
        self.job_id = job_id
        self.original_name = original_name
        self.output_name = output_name
        self.output_path = output_path

    @property
    def download_url(self) -> str:
        return f"/download/{self.output_name}"

    @property
    def video_url(self) -> str:
        return f"/video/{self.output_name}"


class JobPipeline:
    """
    Orchestrates probe, extraction, transcription and burn-in for one upload.

    The pipeline holds no per-job state; every call to ``run`` builds its own
    Job whose artifact paths are unique, so concurrent runs do not interfere.

    Attributes:
        work_dir: Directory for per-job audio and subtitle files
        output_dir: Directory receiving finished videos
        probe: MediaProbe instance
        extractor: AudioExtractor instance
        transcriber: TranscriptionClient instance
        burner: SubtitleBurner instance
    """

    def __init__(
        self,
        transcriber: TranscriptionClient,
        work_dir: Union[str, Path],
        output_dir: Union[str, Path],
        probe: Optional[MediaProbe] = None,
        extractor: Optional[AudioExtractor] = None,
        burner: Optional[SubtitleBurner] = None,
    ):
        self.transcriber = transcriber
        self.work_dir = Path(work_dir)
        self.output_dir = Path(output_dir)
        self.probe = probe or MediaProbe()
        self.extractor = extractor or AudioExtractor()
        self.burner = burner or SubtitleBurner()
        self.logger = get_logger(__name__)

    def create_job(self, source_path: Union[str, Path], original_name: str) -> Job:
        return Job(
            source_path=source_path,
            original_name=original_name,
            work_dir=self.work_dir,
            output_dir=self.output_dir,
        )

    async def run(self, source_path: Union[str, Path], original_name: str) -> PipelineResult:
        """
        Process one uploaded video.

        Args:
            source_path: Location of the stored upload; the pipeline deletes it
            original_name: Client supplied filename

        Returns:
            PipelineResult naming the finished output

        Raises:
            PipelineError: If any step fails
        """
        job = self.create_job(source_path, original_name)
        log_with_context(
            self.logger,
            "info",
            f"Processing: {original_name}",
            job_id=job.job_id,
            file_path=str(job.source_path),
            output_name=job.output_name
        )

        try:
            await self._validate(job)
            await self._extract_audio(job)
            subtitles = await self._transcribe(job)
            await self._save_subtitles(job, subtitles)
            await self._burn_subtitles(job)
            job.advance(JobState.DONE)
        except PipelineError as e:
            job.fail(e.code.value, e.details)
            log_with_context(
                self.logger,
                "error",
                "Processing error",
                job_id=job.job_id,
                step=e.code.value,
                details=e.details
            )
            raise
        except Exception as e:
            job.fail(PipelineErrorCode.INTERNAL_ERROR.value, str(e))
            log_with_context(
                self.logger,
                "error",
                "Unexpected processing error",
                job_id=job.job_id,
                error=e
            )
            raise PipelineError(PipelineErrorCode.INTERNAL_ERROR, str(e), job.job_id) from e
        finally:
            self._cleanup(job, remove_output=job.state is not JobState.DONE)

        log_with_context(
            self.logger,
            "info",
            f"Complete! Video ready: {job.output_name}",
            job_id=job.job_id,
            file_path=str(job.output_path)
        )
        return PipelineResult(
            job_id=job.job_id,
            original_name=job.original_name,
            output_name=job.output_name,
            output_path=job.output_path,
        )

    async def _validate(self, job: Job) -> None:
        job.advance(JobState.VALIDATING)

        with log_step(self.logger, "Analyzing video file", job_id=job.job_id, step=job.state.value):
            try:
                info = await self.probe.probe(job.source_path)
            except ProbeError as e:
                raise PipelineError(
                    PipelineErrorCode.INVALID_VIDEO, f"Invalid video file: {e}", job.job_id
                ) from e

        log_with_context(self.logger, "info", "Video info", job_id=job.job_id, video_info=info.to_dict())

        if not info.has_audio:
            raise PipelineError(PipelineErrorCode.NO_AUDIO_TRACK, NO_AUDIO_MESSAGE, job.job_id)

    async def _extract_audio(self, job: Job) -> None:
        job.advance(JobState.EXTRACTING_AUDIO)

        with log_step(self.logger, "Extracting audio from video", job_id=job.job_id, step=job.state.value):
            try:
                await self.extractor.extract(job.source_path, job.audio_path)
            except ExtractionError as e:
                raise PipelineError(
                    PipelineErrorCode.AUDIO_EXTRACTION_FAILED, f"Audio extraction failed: {e}", job.job_id
                ) from e

    async def _transcribe(self, job: Job) -> str:
        job.advance(JobState.TRANSCRIBING)

        with log_step(self.logger, "Transcribing audio", job_id=job.job_id, step=job.state.value):
            try:
                audio_data = await asyncio.to_thread(job.audio_path.read_bytes)
                return await self.transcriber.transcribe(audio_data)
            except TranscriptionError as e:
                raise PipelineError(PipelineErrorCode.TRANSCRIPTION_FAILED, str(e), job.job_id) from e
            except OSError as e:
                raise PipelineError(
                    PipelineErrorCode.TRANSCRIPTION_FAILED, f"Could not read extracted audio: {e}", job.job_id
                ) from e

    async def _save_subtitles(self, job: Job, subtitles: str) -> None:
        try:
            await asyncio.to_thread(job.subtitle_path.write_text, subtitles, encoding="utf-8")
        except OSError as e:
            raise PipelineError(
                PipelineErrorCode.TRANSCRIPTION_FAILED, f"Could not save subtitles: {e}", job.job_id
            ) from e

        log_with_context(self.logger, "info", "SRT file saved", job_id=job.job_id, file_path=str(job.subtitle_path))

    async def _burn_subtitles(self, job: Job) -> None:
        job.advance(JobState.BURNING_SUBTITLES)

        with log_step(self.logger, "Processing video with FFmpeg", job_id=job.job_id, step=job.state.value):
            try:
                await self.burner.burn(job.source_path, job.subtitle_path, job.output_path)
            except BurnInError as e:
                raise PipelineError(
                    PipelineErrorCode.RENDER_FAILED, f"Subtitle rendering failed: {e}", job.job_id
                ) from e

    def _cleanup(self, job: Job, remove_output: bool) -> None:
        """
        Remove the job's temporary files.

        Runs at most once per job. Missing files are ignored and deletion
        errors are logged without interrupting the remaining deletions.
        """
        if job.cleaned_up:
            return
        job.cleaned_up = True

        paths = list(job.temporary_paths)
        if remove_output:
            paths.extend((job.output_path, partial_path_for(job.output_path)))

        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log_with_context(
                    self.logger,
                    "warning",
                    "Cleanup error",
                    job_id=job.job_id,
                    file_path=str(path),
                    error=e
                )
