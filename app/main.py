"""
FastAPI application for the Subtitle Burner API.

This module wires the HTTP routes to the job pipeline and the range streamer:

* ``POST /upload`` stores a video, runs the pipeline and returns the output's URLs
* ``GET /download/{filename}`` returns a finished video as an attachment
* ``GET /video/{filename}`` streams a finished video with byte-range support
* ``POST /test-video`` probes a video without processing it
* ``GET /health`` reports whether the storage directories exist

An upload request is answered only after its pipeline settles. If the client
disconnects earlier the pipeline still runs to completion on the server.
"""

import re
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Optional, Tuple
from uuid import uuid4

import httpx
from fastapi import FastAPI, File, Header, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response

from app.api_models import (
    ErrorResponse,
    FileInfo,
    HealthResponse,
    UploadResponse,
    VideoCheckResponse,
    VideoInfo,
)
from app.config import settings
from app.logging_config import get_logger, log_with_context, setup_logging
from app.media import (
    ALLOWED_VIDEO_EXTENSIONS,
    SUPPORTED_FORMATS_MESSAGE,
    MediaProbe,
    ProbeError,
    UploadRejectedError,
    is_allowed_video,
)
from app.models import OUTPUT_EXTENSION, OUTPUT_SUFFIX
from app.pipeline import JobPipeline, PipelineError
from app.streaming import ArtifactNotFoundError, RangeStreamer
from app.transcription_client import TranscriptionClient

# Configure structured logging
setup_logging(
    log_level=settings.log_level.value,
    log_file=settings.log_file,
    use_json=settings.log_json
)
logger = get_logger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1 MB

# Global service instances, created in the lifespan handler
http_client: Optional[httpx.AsyncClient] = None
job_pipeline: Optional[JobPipeline] = None

media_probe = MediaProbe()
range_streamer = RangeStreamer(
    settings.output_dir,
    chunk_size=settings.stream_chunk_size,
    media_type="video/mp4"
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manage application lifespan events.

    Creates the storage directories and the shared HTTP client on startup
    and closes the client on shutdown.
    """
    global http_client, job_pipeline

    logger.info("Subtitle Burner API starting up...")
    logger.info(settings.display())

    settings.ensure_directories()
    logger.info(f"Upload folder: {settings.upload_dir}")
    logger.info(f"Subtitle folder: {settings.subtitle_dir}")
    logger.info(f"Edited folder: {settings.output_dir}")

    if not settings.assemblyai_api_key:
        logger.warning("ASSEMBLYAI_API_KEY is not set; transcription requests will be rejected")

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    transcriber = TranscriptionClient(
        api_key=settings.assemblyai_api_key,
        base_url=settings.assemblyai_base_url,
        http_client=http_client,
        poll_interval=settings.poll_interval_seconds,
        max_attempts=settings.max_poll_attempts,
    )
    job_pipeline = JobPipeline(
        transcriber=transcriber,
        work_dir=settings.subtitle_dir,
        output_dir=settings.output_dir,
        probe=media_probe,
    )

    logger.info("Ready to accept video uploads")

    yield

    logger.info("Subtitle Burner API shutting down...")
    await http_client.aclose()
    http_client = None
    job_pipeline = None
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Subtitle Burner API",
    description="""
    Upload a video and get it back with subtitles burned into the picture.

    ## Workflow

    1. Upload a video to `POST /upload` (multipart field `video`)
    2. The server extracts the audio, transcribes it with AssemblyAI and
       renders the resulting SRT subtitles into the video with FFmpeg
    3. Download the result from `downloadUrl` or play it from `videoUrl`

    Processing is synchronous: the upload request returns once the
    subtitled video is ready (transcription alone may take up to 5 minutes).

    ## Supported Formats

    MP4, AVI, MOV, MKV, WMV, WebM, M4V, 3GP and FLV. The video must contain
    an audio track.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status code and processing time."""
    log_with_context(
        logger,
        "info",
        "Incoming request",
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else "unknown"
    )

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    log_with_context(
        logger,
        "info",
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2)
    )

    return response


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(
    status_code: int,
    error: str,
    details: Optional[str] = None,
    code: Optional[str] = None
) -> JSONResponse:
    """Build the structured error payload shared by every failing endpoint."""
    payload = ErrorResponse(error=error, code=code, details=details, timestamp=_timestamp())
    return JSONResponse(
        status_code=status_code,
        content=payload.model_dump(by_alias=True, exclude_none=True),
    )


def not_found_response(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with the structured error payload for invalid requests."""
    log_with_context(
        logger,
        "warning",
        "Validation error",
        path=request.url.path,
        method=request.method,
        errors=str(exc.errors())
    )
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request data", details=str(exc.errors()))


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Return 500 with the structured error payload for unexpected errors."""
    log_with_context(
        logger,
        "error",
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=exc
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", details=str(exc))


async def store_upload(upload: UploadFile) -> Tuple[Path, int]:
    """
    Validate an upload and write it to the upload directory.

    The stored name is a fresh UUID plus the original extension when that
    extension is a known video type, so two uploads never collide and a client
    filename cannot lengthen the stored path.

    Returns:
        The stored path and its size in bytes

    Raises:
        UploadRejectedError: If the file type is not allowed (415) or the file
            exceeds the size limit (413)
    """
    log_with_context(
        logger,
        "info",
        "Uploaded file info",
        original_name=upload.filename,
        content_type=upload.content_type,
        declared_size=upload.size
    )

    if not is_allowed_video(upload.filename, upload.content_type):
        logger.warning(f"Invalid file type: {upload.content_type} {Path(upload.filename or '').suffix}")
        raise UploadRejectedError(SUPPORTED_FORMATS_MESSAGE, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE)

    max_bytes = settings.get_max_file_size_bytes()
    too_large = UploadRejectedError(
        f"File size exceeds maximum limit of {settings.max_file_size_mb} MB",
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    )
    if upload.size is not None and upload.size > max_bytes:
        raise too_large

    suffix = Path(upload.filename or "").suffix.lower()
    if suffix not in ALLOWED_VIDEO_EXTENSIONS:
        suffix = ""
    destination = settings.upload_dir / f"{uuid4()}{suffix}"
    file_size = 0

    try:
        with open(destination, "wb") as f:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                file_size += len(chunk)
                if file_size > max_bytes:
                    raise too_large
                f.write(chunk)
    except BaseException:
        destination.unlink(missing_ok=True)
        raise

    return destination, file_size


def download_name_for(filename: str) -> str:
    """``abc_subtitled.mp4`` is offered to the browser as ``subtitled_abc.mp4``."""
    pattern = re.escape(OUTPUT_SUFFIX + OUTPUT_EXTENSION) + "$"
    return "subtitled_" + re.sub(pattern, OUTPUT_EXTENSION, filename)


@app.post(
    "/upload",
    response_model=UploadResponse,
    tags=["Processing"],
    summary="Upload a video and burn generated subtitles into it",
    responses={
        400: {"model": ErrorResponse, "description": "No video file uploaded"},
        413: {"model": ErrorResponse, "description": "File too large"},
        415: {"model": ErrorResponse, "description": "Not a supported video type"},
        500: {"model": ErrorResponse, "description": "Processing failed"},
        503: {"model": ErrorResponse, "description": "Service not available"},
    }
)
async def upload_video(
    video: Optional[UploadFile] = File(None, description="Video file to subtitle")
):
    """
    Upload a video, transcribe its audio and burn the subtitles into it.

    The upload is accepted when its MIME type OR its extension is a known
    video type. The request returns when the subtitled video is ready.

    Example (curl):
        ```bash
        curl -X POST http://localhost:5000/upload -F "video=@holiday.mp4"
        ```
    """
    if video is None or not video.filename:
        return error_response(status.HTTP_400_BAD_REQUEST, "No video file uploaded")

    if job_pipeline is None:
        logger.error("Job pipeline not available")
        return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Service not available")

    try:
        source_path, file_size = await store_upload(video)
    except UploadRejectedError as e:
        return error_response(e.status_code, "Upload rejected", details=str(e))

    log_with_context(
        logger,
        "info",
        f"Processing: {video.filename}",
        file_path=str(source_path),
        file_size=file_size
    )

    try:
        result = await job_pipeline.run(source_path, video.filename)
    except PipelineError as e:
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Video processing failed",
            details=e.details,
            code=e.code.value
        )

    return UploadResponse(
        message="Video processed successfully!",
        original_name=result.original_name,
        processed_file_name=result.output_name,
        download_url=result.download_url,
        video_url=result.video_url,
    )


@app.get(
    "/download/{filename}",
    tags=["Playback"],
    summary="Download a processed video",
    responses={404: {"description": "File not found"}}
)
async def download_video(filename: str) -> Response:
    """Return a finished video as an attachment named ``subtitled_<name>.mp4``."""
    try:
        path = range_streamer.resolve(filename)
    except ArtifactNotFoundError:
        return not_found_response("File not found")

    return FileResponse(
        path,
        media_type=range_streamer.media_type,
        filename=download_name_for(filename),
    )


@app.get(
    "/video/{filename}",
    tags=["Playback"],
    summary="Stream a processed video",
    responses={
        206: {"description": "Partial content for a byte-range request"},
        404: {"description": "Video not found"},
        416: {"description": "Range not satisfiable"},
    }
)
async def stream_video(
    filename: str,
    range_header: Optional[str] = Header(None, alias="Range")
) -> Response:
    """
    Stream a finished video for playback.

    Without a ``Range`` header the whole file is returned with status 200.
    With ``Range: bytes=<start>-<end>`` only that span is returned with
    status 206; ``<end>`` defaults to the last byte.

    Example (curl):
        ```bash
        curl -H "Range: bytes=0-99" http://localhost:5000/video/abc_subtitled.mp4
        ```
    """
    try:
        return range_streamer.stream(filename, range_header)
    except ArtifactNotFoundError:
        return not_found_response("Video not found")


@app.post(
    "/test-video",
    response_model=VideoCheckResponse,
    tags=["Processing"],
    summary="Check a video without processing it",
    responses={400: {"model": ErrorResponse, "description": "Invalid video file"}}
)
async def check_video(
    video: Optional[UploadFile] = File(None, description="Video file to check")
):
    """
    Probe an uploaded video and report its streams.

    Lets clients confirm a file is readable and has an audio track before
    starting a full upload. The file is deleted afterwards.
    """
    if video is None or not video.filename:
        return error_response(status.HTTP_400_BAD_REQUEST, "No video file uploaded")

    try:
        stored_path, file_size = await store_upload(video)
    except UploadRejectedError as e:
        return error_response(e.status_code, "Upload rejected", details=str(e))

    try:
        info = await media_probe.probe(stored_path)
    except ProbeError as e:
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid video file", details=str(e))
    finally:
        stored_path.unlink(missing_ok=True)

    log_with_context(logger, "info", "Video analysis", video_info=info.to_dict())

    return VideoCheckResponse(
        message="Video file is valid!",
        video_info=VideoInfo(**info.to_dict()),
        file_info=FileInfo(
            original_name=video.filename,
            mimetype=video.content_type,
            size=file_size,
        ),
    )


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Check service health"
)
async def health_check() -> HealthResponse:
    """Report that the server is running and which storage directories exist."""
    return HealthResponse(
        status="Server is running!",
        timestamp=_timestamp(),
        folders=settings.directory_status(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
