"""Error hierarchy for the recording and generation pipeline."""

from typing import Optional


class Voice2ModelError(Exception):
    """Base class for every error raised by voice2model."""


class CaptureError(Voice2ModelError):
    """Microphone capture failed or was refused."""


class AlreadyRecording(CaptureError):
    """A start command arrived while a session is still active."""


class DeviceError(CaptureError):
    """The audio device or the raw-audio sink could not be used."""


class FlushTimeout(CaptureError):
    """The raw-audio sink did not confirm completion within the grace period.

    Non-fatal: the controller logs it and continues with whatever reached disk.
    """


class ConversionFailed(Voice2ModelError):
    """The external converter could not produce a usable normalized file."""


class PipelineStageError(Voice2ModelError):
    """A remote service call in the pipeline failed."""

    stage = "pipeline"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TranscriptionServiceError(PipelineStageError):
    stage = "transcribe"


class PromptOptimizationError(PipelineStageError):
    stage = "optimize_prompt"


class ImageGenerationError(PipelineStageError):
    stage = "generate_image"


class ModelGenerationError(PipelineStageError):
    stage = "generate_model"


class PublishError(PipelineStageError):
    stage = "publish"
