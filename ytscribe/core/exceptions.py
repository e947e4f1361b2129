"""Error taxonomy for transcript acquisition."""


class TranscriptError(Exception):
    """Base class for every error raised by the pipeline."""
    pass


class RateLimitError(TranscriptError):
    """The platform answered HTTP 429 and retries were exhausted."""
    pass


class BotDetectionError(TranscriptError):
    """The platform put a login/bot gate in front of the video."""
    pass


class NoCaptionsError(TranscriptError):
    """The video has no caption tracks; triggers local transcription."""
    pass


class CaptionFetchError(TranscriptError):
    """A caption persona failed for a non-classified reason."""
    pass


class CaptionParseError(CaptionFetchError):
    """Caption XML could not be parsed."""
    pass


class ConfigurationError(TranscriptError):
    """An explicit override names something that is not available."""
    pass


class BusyError(TranscriptError):
    """Another transcription job already holds the transcription slot."""
    pass


class CommandError(TranscriptError):
    """An external tool exited unsuccessfully."""

    def __init__(self, message: str, returncode: int = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(CommandError, TimeoutError):
    """An external tool exceeded its timeout and was terminated."""
    pass


class AudioDownloadError(TranscriptError):
    pass


class TranscriptionError(TranscriptError):
    pass


class DiarizationError(TranscriptError):
    pass


class PipelineTimeoutError(TranscriptError, TimeoutError):
    """The global wall-clock budget for one acquisition ran out."""
    pass


class MetadataError(TranscriptError):
    pass


class VideoUnavailableError(MetadataError):
    """The video is private, restricted or removed."""
    pass


class InvalidVideoUrlError(TranscriptError, ValueError):
    pass
