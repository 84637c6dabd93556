"""
AssemblyAI client for the Subtitle Burner API.

This module provides the TranscriptionClient class which uploads extracted
audio to the transcription service, requests a transcript, polls its status
until it settles, and downloads the finished transcript as SRT subtitles.

The service offers no push notification in this setup, so completion is
detected by polling at a fixed interval up to a fixed number of attempts.
With the defaults (5 seconds, 60 attempts) a job gives up after about five
minutes.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Union

import httpx

from app.logging_config import get_logger, log_with_context
from app.models import TranscriptStatus


DEFAULT_BASE_URL = "https://api.assemblyai.com/v2"
POLL_INTERVAL_SECONDS = 5.0
MAX_POLL_ATTEMPTS = 60


class TranscriptionError(Exception):
    """Base class for every transcription failure."""
    pass


class UploadError(TranscriptionError):
    """Exception raised when the audio upload fails."""
    pass


class SubmitError(TranscriptionError):
    """Exception raised when the transcript request is rejected or fails."""
    pass


class StatusCheckError(TranscriptionError):
    """Exception raised when a status check cannot be completed."""
    pass


class TranscriptionServiceError(TranscriptionError):
    """Exception raised when the service reports the transcript as failed."""
    pass


class TranscriptionTimeoutError(TranscriptionError):
    """Exception raised when the transcript never settles within the poll budget."""
    pass


class SubtitleFetchError(TranscriptionError):
    """Exception raised when the finished subtitles cannot be downloaded."""
    pass


def _describe(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return f"HTTP {response.status_code}: {response.text}"
    return str(error) or type(error).__name__


class TranscriptionClient:
    """
    Client for the AssemblyAI transcription API.

    Configuration (credential, base URL, polling bounds) is passed in at
    construction. An ``httpx.AsyncClient`` may be shared with the rest of the
    application; when none is given the client creates and owns one.

    Attributes:
        api_key: Credential sent in the ``authorization`` header
        base_url: API base URL
        poll_interval: Seconds to wait before each status check
        max_attempts: Number of status checks before giving up
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        timeout: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = get_logger(__name__)

    @property
    def _headers(self) -> dict:
        return {"authorization": self.api_key}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def upload(self, audio_data: bytes) -> str:
        """
        Upload raw audio bytes.

        Returns:
            The service URL of the uploaded audio

        Raises:
            UploadError: On network failure, error status or malformed reply
        """
        try:
            response = await self._client.post(
                self._url("/upload"),
                content=audio_data,
                headers={**self._headers, "content-type": "application/octet-stream"},
            )
            response.raise_for_status()
            upload_url = response.json()["upload_url"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise UploadError(f"Audio upload failed: {_describe(e)}") from e

        self.logger.info("Audio upload successful")
        return upload_url

    async def create_transcript(self, audio_url: str) -> str:
        """
        Request transcription of previously uploaded audio.

        Returns:
            The transcript id

        Raises:
            SubmitError: On network failure, error status or malformed reply
        """
        payload = {
            "audio_url": audio_url,
            "format_text": True,
            "punctuate": True,
            "speaker_labels": False,
            "language_detection": True,
        }
        try:
            response = await self._client.post(
                self._url("/transcript"),
                json=payload,
                headers=self._headers,
            )
            response.raise_for_status()
            transcript_id = response.json()["id"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise SubmitError(f"Transcription request failed: {_describe(e)}") from e

        log_with_context(
            self.logger,
            "info",
            "Transcription requested",
            transcript_id=transcript_id
        )
        return transcript_id

    async def submit(self, audio_data: bytes) -> str:
        """Upload audio and request its transcription; returns the transcript id."""
        audio_url = await self.upload(audio_data)
        return await self.create_transcript(audio_url)

    async def get_status(
        self,
        transcript_id: str
    ) -> Tuple[Union[TranscriptStatus, str], Optional[str]]:
        """
        Perform a single status check.

        Returns:
            ``(status, error_message)``. Unknown status strings are returned
            as-is so the poll loop keeps waiting on them.

        Raises:
            StatusCheckError: On network failure, error status or malformed reply
        """
        try:
            response = await self._client.get(
                self._url(f"/transcript/{transcript_id}"),
                headers=self._headers,
            )
            response.raise_for_status()
            data = response.json()
            raw_status = data["status"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise StatusCheckError(f"Transcript status check failed: {_describe(e)}") from e

        try:
            status = TranscriptStatus(raw_status)
        except ValueError:
            status = raw_status

        return status, data.get("error")

    async def get_subtitles(self, transcript_id: str, subtitle_format: str = "srt") -> str:
        """
        Download the finished transcript as a subtitle document.

        The text is returned verbatim.

        Raises:
            SubtitleFetchError: On network failure or error status
        """
        try:
            response = await self._client.get(
                self._url(f"/transcript/{transcript_id}/{subtitle_format}"),
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SubtitleFetchError(f"Subtitle download failed: {_describe(e)}") from e

        return response.text

    async def await_completion(self, transcript_id: str) -> str:
        """
        Poll a transcript until it settles and return its SRT subtitles.

        Each attempt waits ``poll_interval`` seconds and then performs one
        status check. The loop stops on ``completed`` (subtitles are then
        downloaded) or ``error``, and gives up after ``max_attempts`` checks.

        Raises:
            TranscriptionServiceError: If the service reports ``error``
            TranscriptionTimeoutError: If no terminal status is seen in time
            StatusCheckError: If a status check fails
            SubtitleFetchError: If the subtitle download fails
        """
        status: Union[TranscriptStatus, str] = TranscriptStatus.QUEUED
        error_message: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.poll_interval)
            status, error_message = await self.get_status(transcript_id)

            status_value = status.value if isinstance(status, TranscriptStatus) else status
            log_with_context(
                self.logger,
                "info",
                f"Status: {status_value} ({attempt}/{self.max_attempts})",
                transcript_id=transcript_id,
                attempt=attempt
            )

            if isinstance(status, TranscriptStatus) and status.is_terminal:
                break
        else:
            raise TranscriptionTimeoutError(
                f"Transcription timeout: transcript {transcript_id} did not finish "
                f"after {self.max_attempts} status checks"
            )

        if status is TranscriptStatus.ERROR:
            raise TranscriptionServiceError(
                f"Transcription failed: {error_message or 'service reported an error'}"
            )

        self.logger.info("Transcription completed")
        return await self.get_subtitles(transcript_id)

    async def transcribe(self, audio_data: bytes) -> str:
        """Submit audio and wait for its SRT subtitles."""
        transcript_id = await self.submit(audio_data)
        return await self.await_completion(transcript_id)
