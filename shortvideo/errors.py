from __future__ import annotations


class VideoServiceError(Exception):
    """Base class for every error the video service raises on purpose."""


class ValidationError(VideoServiceError):
    """Submission rejected before a job was recorded."""


class NotFoundError(VideoServiceError):
    pass


class NotReadyError(VideoServiceError):
    pass


class ConflictError(VideoServiceError):
    """Operation not allowed while the job is in its current state."""


class StageError(VideoServiceError):
    """A pipeline stage failed; fatal for the job that triggered it."""


class SynthesisError(StageError):
    pass


class AudioProcessingError(StageError):
    pass


class CaptionError(StageError):
    pass


class FootageNotFoundError(StageError):
    pass


class RenderError(StageError):
    pass


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {message}" if message else name
