"""
Structured logging for the Subtitle Burner API.

Log lines are JSON objects so one job can be followed across the pipeline
by its ``job_id``. ``log_step`` wraps a pipeline step and records how long
it took, which makes slow transcriptions and renders easy to spot.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Iterator, Optional
from pythonjsonlogger import jsonlogger


SERVICE_NAME = "subtitle-burner-api"

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "multipart", "python_multipart")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that stamps every record with the service name, its level
    and its source location. Context passed through ``extra`` (job_id, step,
    file_path...) is kept as top-level keys.
    """

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)

        log_record['timestamp'] = self.formatTime(record, self.datefmt)
        log_record['service'] = SERVICE_NAME
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['location'] = f"{record.module}.{record.funcName}:{record.lineno}"

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    use_json: bool = True
) -> None:
    """
    Install the application's handlers on the root logger.

    Existing root handlers are replaced. Unless the level is DEBUG the HTTP
    client and multipart parser loggers are raised to WARNING; at INFO they
    would log every AssemblyAI poll.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file receiving a copy of the logs
        use_json: JSON lines when True, plain text otherwise
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    if use_json:
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(logger)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    noisy_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": log_level,
            "use_json": use_json,
            "log_file": log_file
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    job_id: Optional[str] = None,
    file_path: Optional[str] = None,
    step: Optional[str] = None,
    error: Optional[Exception] = None,
    **kwargs
) -> None:
    """
    Log a message with job context attached as structured fields.

    Args:
        logger: Logger instance to use
        level: Log level name (debug, info, warning, error, critical)
        message: Log message
        job_id: Job the message belongs to
        file_path: File the message is about
        step: Pipeline step name
        error: Exception to report; its traceback is attached
        **kwargs: Additional context fields

    Example:
        >>> log_with_context(
        ...     logger,
        ...     "info",
        ...     "SRT file saved",
        ...     job_id="550e8400-e29b-41d4-a716-446655440000",
        ...     file_path="subtitles/550e8400-e29b-41d4-a716-446655440000.srt"
        ... )
    """
    context = {
        key: value
        for key, value in (("job_id", job_id), ("step", step))
        if value
    }
    if file_path:
        context['file_path'] = str(file_path)
    if error is not None:
        context['error_type'] = type(error).__name__
        context['error_message'] = str(error)
    context.update(kwargs)

    log_method = getattr(logger, level.lower())
    log_method(message, extra=context, exc_info=error)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


@contextmanager
def log_step(
    logger: logging.Logger,
    message: str,
    job_id: Optional[str] = None,
    step: Optional[str] = None,
    **kwargs
) -> Iterator[None]:
    """
    Log the start of a unit of work, then its duration when it ends.

    A failing block is logged at warning level with the exception type and
    the exception is re-raised unchanged.
    """
    log_with_context(logger, "info", message, job_id=job_id, step=step, **kwargs)
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        log_with_context(
            logger,
            "warning",
            f"{message} failed",
            job_id=job_id,
            step=step,
            duration_ms=_elapsed_ms(start),
            error_type=type(e).__name__
        )
        raise
    log_with_context(
        logger,
        "info",
        f"{message} finished",
        job_id=job_id,
        step=step,
        duration_ms=_elapsed_ms(start)
    )
