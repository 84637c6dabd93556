"""
API response models for the Subtitle Burner API.

This module defines Pydantic models for response serialization. Field names
are snake_case in Python and camelCase on the wire, matching the payloads
browser clients of the service already consume.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(CamelModel):
    """
    Response model for a successfully processed upload.

    Attributes:
        success: Always True
        message: Human readable status
        original_name: Filename supplied by the client
        processed_file_name: Name of the subtitled output
        download_url: Path downloading the output as an attachment
        video_url: Path streaming the output for playback
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Video processed successfully!",
                "originalName": "holiday.mp4",
                "processedFileName": "0f3c1c9e-8d7a-4b52-9d0e-2f6b2f3e4a11_subtitled.mp4",
                "downloadUrl": "/download/0f3c1c9e-8d7a-4b52-9d0e-2f6b2f3e4a11_subtitled.mp4",
                "videoUrl": "/video/0f3c1c9e-8d7a-4b52-9d0e-2f6b2f3e4a11_subtitled.mp4"
            }
        }
    )

    success: bool = Field(True, description="Whether processing succeeded")
    message: str = Field(..., description="Status message")
    original_name: str = Field(..., description="Client supplied filename")
    processed_file_name: str = Field(..., description="Name of the subtitled video")
    download_url: str = Field(..., description="Download path of the subtitled video")
    video_url: str = Field(..., description="Streaming path of the subtitled video")


class ErrorResponse(CamelModel):
    """
    Structured error payload.

    Attributes:
        success: Always False
        error: Short error summary
        code: Machine readable failure category, when known
        details: Proximate cause of the failure
        timestamp: ISO 8601 time of the failure
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "error": "Video processing failed",
                "code": "NO_AUDIO_TRACK",
                "details": "Video file does not contain an audio track.",
                "timestamp": "2024-01-01T12:00:00+00:00"
            }
        }
    )

    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error summary")
    code: Optional[str] = Field(None, description="Failure category")
    details: Optional[str] = Field(None, description="Underlying cause")
    timestamp: Optional[str] = Field(None, description="Failure time")


class FileInfo(CamelModel):
    """Metadata of an uploaded file as received."""
    original_name: Optional[str] = None
    mimetype: Optional[str] = None
    size: int = 0


class VideoInfo(CamelModel):
    """Stream report returned by the video pre-check."""

    has_audio: bool
    duration: Optional[float] = None
    size: Optional[int] = None
    format: Optional[str] = None
    streams: int = 0


class VideoCheckResponse(CamelModel):
    """Response model for the video pre-check endpoint."""

    success: bool = True
    message: str
    video_info: VideoInfo
    file_info: FileInfo


class HealthResponse(BaseModel):
    """
    Response model for health check endpoint.

    Attributes:
        status: Overall service status
        timestamp: ISO 8601 time of the check
        folders: Existence of each storage directory
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "Server is running!",
                "timestamp": "2024-01-01T12:00:00+00:00",
                "folders": {"uploads": True, "subtitles": True, "edited": True}
            }
        }
    )

    status: str = Field(..., description="Service status")
    timestamp: str = Field(..., description="Time of the check")
    folders: Dict[str, bool] = Field(..., description="Storage directory existence")
