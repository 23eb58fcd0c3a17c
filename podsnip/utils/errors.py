"""Custom exception hierarchy for the transcription pipeline.

All exceptions inherit from PipelineError, enabling targeted handling
at the orchestrator boundary while preserving specific failure context.
Each subclass carries a stable ``kind`` used in surfaced results.
"""


class PipelineError(Exception):
    """Base exception for all transcription pipeline errors."""

    kind = "pipeline"

    def __init__(self, message: str, episode_id: int | None = None) -> None:
        self.episode_id = episode_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.episode_id is not None:
            return f"[episode={self.episode_id}] {super().__str__()}"
        return super().__str__()


class EngineUnavailableError(PipelineError):
    """Raised when no recognition engine binary or model is installed."""

    kind = "engine_unavailable"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        instructions: str = "",
    ) -> None:
        self.instructions = instructions
        super().__init__(message, episode_id)


class NetworkError(PipelineError):
    """Raised when downloading episode audio fails or times out."""

    kind = "network"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message, episode_id)


class StagingError(PipelineError):
    """Raised when staged audio cannot be written to local storage."""

    kind = "io"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        path: str | None = None,
    ) -> None:
        self.path = path
        super().__init__(message, episode_id)


class ProcessSpawnError(PipelineError):
    """Raised when an external tool binary cannot be launched at all."""

    kind = "process_spawn"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        binary: str | None = None,
    ) -> None:
        self.binary = binary
        super().__init__(message, episode_id)


class TranscodeError(PipelineError):
    """Raised when ffmpeg runs but fails to produce the target WAV."""

    kind = "transcode"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        exit_code: int | None = None,
        stderr_tail: str = "",
        input_path: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.input_path = input_path
        super().__init__(message, episode_id)


class RecognitionError(PipelineError):
    """Raised when the speech recognition engine exits non-zero or emits nothing."""

    kind = "recognition"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        exit_code: int | None = None,
        stderr_tail: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(message, episode_id)


class NoSegmentsExtractedError(PipelineError):
    """Raised when engine output contains no usable transcript segments."""

    kind = "no_segments"


class TranscriptStoreError(PipelineError):
    """Raised when transcript persistence or lookup fails."""

    kind = "storage"

    def __init__(
        self,
        message: str,
        episode_id: int | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, episode_id)


class PipelineCancelledError(PipelineError):
    """Raised when an in-flight attempt is cancelled by the caller."""

    kind = "cancelled"
