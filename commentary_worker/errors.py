"""
Exception hierarchy for the commentary pipeline.

Stage functions raise these; the processor turns them into StageResult
values and decides whether the job continues, degrades or fails.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors"""
    stage = "pipeline"


class AcquisitionError(PipelineError):
    """Source video could not be downloaded or clipped"""
    stage = "acquire"


class TranscriptionError(PipelineError):
    stage = "transcribe"


class FrameSamplingError(PipelineError):
    stage = "frames"


class VisionError(PipelineError):
    stage = "vision"


class DialogueGenerationError(PipelineError):
    """Completion call failed or returned no content"""
    stage = "dialogue"


class SynthesisError(PipelineError):
    """A single dialogue line could not be voiced"""
    stage = "tts"

    def __init__(self, message: str, line_index: int = -1):
        super().__init__(message)
        self.line_index = line_index


class AudioMergeError(PipelineError):
    stage = "merge"


class AudioFormatMismatchError(AudioMergeError):
    """Per-line audio buffers do not share one codec/sample rate/channel layout"""


class CompositionError(PipelineError):
    stage = "compose"


class StorageError(PipelineError):
    """Object storage read or write failed"""
    stage = "storage"


class PublicationError(PipelineError):
    stage = "publish"


class CacheStoreError(PipelineError):
    stage = "cache"
