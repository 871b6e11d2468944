"""
Chunked speech synthesis pipeline.

This package exposes the building blocks used by the CLI entry point:

- Text splitting and preprocessing (`split_text`).
- Error taxonomy shared by every stage (`errors`).
- Engine abstractions and concrete implementations (`tts_engine`).
- Retrying synthesis client (`client`).
- The orchestrator that writes chunk files (`pipeline`).
- Usage counters (`usage`).
- Audio merging helpers (`merger`).
- Run manifest helpers (`metadata`).
"""

from .errors import (
    AudioMergeError,
    ErrorKind,
    InvalidArgumentError,
    OutputDirectoryError,
    SpeechPipelineError,
    SynthesisError,
)
from .split_text import (
    Segment,
    preprocess_text,
    split_on_boundaries,
    split_text,
)
from .tts_engine import (
    MockSpeechEngine,
    OpenAISpeechEngine,
    PollySpeechEngine,
    SpeechEngine,
    Voice,
    VoiceOptions,
)
from .client import RetryPolicy, SynthesisClient, linear_backoff
from .pipeline import (
    Artifact,
    FailurePolicy,
    PipelineConfig,
    PipelineReport,
    SegmentFailure,
    SpeechPipeline,
)
from .usage import UsageObserver, UsageStats
from .merger import combine_artifacts
from .metadata import MetadataBuilder

__all__ = [
    "ErrorKind",
    "SpeechPipelineError",
    "InvalidArgumentError",
    "SynthesisError",
    "OutputDirectoryError",
    "AudioMergeError",
    "Segment",
    "split_text",
    "split_on_boundaries",
    "preprocess_text",
    "SpeechEngine",
    "OpenAISpeechEngine",
    "PollySpeechEngine",
    "MockSpeechEngine",
    "Voice",
    "VoiceOptions",
    "RetryPolicy",
    "SynthesisClient",
    "linear_backoff",
    "FailurePolicy",
    "PipelineConfig",
    "Artifact",
    "SegmentFailure",
    "PipelineReport",
    "SpeechPipeline",
    "UsageObserver",
    "UsageStats",
    "combine_artifacts",
    "MetadataBuilder",
]
