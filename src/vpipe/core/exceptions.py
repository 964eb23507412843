"""Exception hierarchy for vpipe."""


class VPipeError(Exception):
    """Base exception for all vpipe errors."""

    retryable = True


# --- Pipeline ---


class PipelineError(VPipeError):
    """A pipeline run failed."""

    def __init__(self, message: str, video_id: str | None = None):
        self.video_id = video_id
        super().__init__(message)


class DownloadError(PipelineError):
    """Source object missing or object store unreachable."""


class MediaError(PipelineError):
    """ffmpeg/ffprobe command failed. Bad input is not worth retrying."""

    retryable = False

    def __init__(
        self,
        message: str,
        cmd: str | None = None,
        returncode: int | None = None,
        video_id: str | None = None,
    ):
        self.cmd = cmd
        self.returncode = returncode
        super().__init__(message, video_id=video_id)


class ProbeError(MediaError):
    """ffprobe could not read the input."""


class TranscodeError(MediaError):
    """ffmpeg failed to produce a derivative."""


class UploadError(PipelineError):
    """Object store rejected or failed a write."""


class CommitError(PipelineError):
    """Assets were uploaded but the database update failed."""


class VideoBusyError(PipelineError):
    """Another run currently holds the video."""


class ClaimLostError(VideoBusyError):
    """A newer run took over the video before this run could commit."""

    retryable = False


# --- Object storage ---


class StoreError(VPipeError):
    """Object store operation failed."""


class NotFoundError(StoreError):
    """Object key does not exist."""


# --- Queue ---


class QueueInfraError(VPipeError):
    """Queue backend unreachable or rejected the command."""


class JobValidationError(VPipeError):
    """Job payload is missing fields or malformed."""

    retryable = False


# --- Persistence ---


class DatabaseError(VPipeError):
    """Database operation failed."""


class VideoNotFoundError(VPipeError):
    """Video ID not found in database."""

    retryable = False
