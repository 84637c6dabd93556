"""
Byte-range streaming of finished videos.

This module serves files from the output directory with HTTP partial-content
semantics so browsers can seek during playback. Only a single
``bytes=<start>-<end>`` range is supported; the body is read from disk in
chunks while it is sent, never loaded whole.
"""

import logging
import re
from pathlib import Path
from typing import Iterator, Optional, Union

from fastapi import status
from fastapi.responses import Response, StreamingResponse


RANGE_PATTERN = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)

DEFAULT_CHUNK_SIZE = 64 * 1024


class ArtifactNotFoundError(Exception):
    """Exception raised when a requested output file does not exist."""
    pass


class RangeNotSatisfiableError(Exception):
    """Exception raised when a range lies outside the file."""

    def __init__(self, header: str, file_size: int):
        super().__init__(f"Range {header!r} not satisfiable for {file_size} bytes")
        self.header = header
        self.file_size = file_size


class ByteRange:
    """Inclusive byte span ``start``..``end`` of a file of ``total`` bytes."""

    def __init__(self, start: int, end: int, total: int):
        self.start = start
        self.end = end
        self.total = total

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, ByteRange):
            return NotImplemented
        return (self.start, self.end, self.total) == (other.start, other.end, other.total)

    def __repr__(self) -> str:
        return f"ByteRange(start={self.start}, end={self.end}, total={self.total})"


def parse_range_header(header: Optional[str], file_size: int) -> Optional[ByteRange]:
    """
    Parse a ``Range`` header against a file size.

    Accepts ``bytes=<start>-<end>``, ``bytes=<start>-`` (to end of file) and
    ``bytes=-<n>`` (last n bytes). An end beyond the file is clamped to the
    last byte.

    Returns:
        ByteRange, or None when the header is absent or malformed (the caller
        then serves the whole file)

    Raises:
        RangeNotSatisfiableError: If the range starts past the end of the file
            or ends before it starts
    """
    if not header:
        return None

    match = RANGE_PATTERN.match(header)
    if not match:
        return None

    start_text, end_text = match.groups()
    if not start_text and not end_text:
        return None

    last_byte = file_size - 1

    if not start_text:
        suffix_length = int(end_text)
        if suffix_length == 0 or file_size == 0:
            raise RangeNotSatisfiableError(header, file_size)
        return ByteRange(max(file_size - suffix_length, 0), last_byte, file_size)

    start = int(start_text)
    end = int(end_text) if end_text else last_byte
    end = min(end, last_byte)

    if start > last_byte or start > end:
        raise RangeNotSatisfiableError(header, file_size)

    return ByteRange(start, end, file_size)


def iter_file_range(
    path: Union[str, Path],
    start: int,
    end: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield bytes ``start``..``end`` (inclusive) of a file in chunks."""
    remaining = end - start + 1
    with open(path, "rb") as f:
        f.seek(start)
        while remaining > 0:
            chunk = f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


class RangeStreamer:
    """
    Serves finished videos from a directory, honoring byte-range requests.

    Attributes:
        directory: Directory holding the finished files
        chunk_size: Read size used while streaming
        media_type: Content type of the served files
    """

    def __init__(
        self,
        directory: Union[str, Path],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        media_type: str = "video/mp4"
    ):
        self.directory = Path(directory)
        self.chunk_size = chunk_size
        self.media_type = media_type
        self.logger = logging.getLogger(__name__)

    def resolve(self, name: str) -> Path:
        """
        Locate a finished file by name.

        Raises:
            ArtifactNotFoundError: If the name is not a plain file name, names
                a hidden file, or the file does not exist or cannot be looked up
        """
        if not name or name.startswith(".") or Path(name).name != name or "\\" in name:
            raise ArtifactNotFoundError(name)

        path = self.directory / name
        try:
            found = path.is_file()
        except OSError as e:
            # e.g. ENAMETOOLONG, which pathlib does not swallow
            self.logger.warning(f"Lookup of {name[:64]!r} failed: {e.strerror}")
            raise ArtifactNotFoundError(name) from e
        if not found:
            raise ArtifactNotFoundError(name)
        return path

    def stream(self, name: str, range_header: Optional[str] = None) -> Response:
        """
        Build the response for a playback request.

        Returns:
            200 with the whole file, 206 with the requested span, or 416 when
            the range cannot be satisfied

        Raises:
            ArtifactNotFoundError: If the file does not exist
        """
        path = self.resolve(name)
        file_size = path.stat().st_size

        try:
            byte_range = parse_range_header(range_header, file_size)
        except RangeNotSatisfiableError as e:
            self.logger.warning(str(e))
            return Response(
                status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
                headers={"Content-Range": f"bytes */{file_size}", "Accept-Ranges": "bytes"},
            )

        if byte_range is None:
            return StreamingResponse(
                iter_file_range(path, 0, file_size - 1, self.chunk_size),
                status_code=status.HTTP_200_OK,
                media_type=self.media_type,
                headers={"Content-Length": str(file_size), "Accept-Ranges": "bytes"},
            )

        self.logger.debug(f"Streaming {name}: {byte_range.content_range}")
        return StreamingResponse(
            iter_file_range(path, byte_range.start, byte_range.end, self.chunk_size),
            status_code=status.HTTP_206_PARTIAL_CONTENT,
            media_type=self.media_type,
            headers={
                "Content-Range": byte_range.content_range,
                "Accept-Ranges": "bytes",
                "Content-Length": str(byte_range.length),
            },
        )
