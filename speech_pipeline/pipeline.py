from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from .client import SynthesisClient, SynthesisFailure
from .errors import ErrorKind, InvalidArgumentError, OutputDirectoryError, SynthesisError
from .split_text import DEFAULT_MAX_CHUNK_LEN, Segment, split_on_boundaries, split_text
from .tts_engine import DEFAULT_INSTRUCTIONS, Voice, VoiceOptions
from .usage import UsageObserver

logger = logging.getLogger(__name__)

__all__ = [
    "FailurePolicy",
    "PipelineConfig",
    "Artifact",
    "SegmentFailure",
    "PipelineReport",
    "SpeechPipeline",
]


class FailurePolicy(str, Enum):
    CONTINUE = "continue"
    FAIL_FAST = "fail_fast"


@dataclass
class PipelineConfig:
    """
    Configuration describing how a document is turned into chunk files.
    """

    max_chunk_len: int = DEFAULT_MAX_CHUNK_LEN
    chunk_prefix: str = "chunk_"
    failure_policy: FailurePolicy = FailurePolicy.CONTINUE
    max_workers: int = 1
    word_boundaries: bool = False
    create_output_dir: bool = True

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise InvalidArgumentError("max_workers must be at least 1.")
        self.failure_policy = FailurePolicy(self.failure_policy)


@dataclass(frozen=True)
class Artifact:
    path: Path
    segment_index: int
    size_bytes: int = 0
    attempts: int = 1


@dataclass(frozen=True)
class SegmentFailure:
    segment_index: int
    kind: ErrorKind
    message: str
    retryable: bool = False
    attempts: int = 1


@dataclass
class PipelineReport:
    """
    Outcome of one run. ``artifacts`` and ``failures`` are ordered by segment
    index; a failed segment leaves a gap in the artifact numbering.
    """

    segment_count: int = 0
    attempted: int = 0
    artifacts: List[Artifact] = field(default_factory=list)
    failures: List[SegmentFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.artifacts)

    @property
    def paths(self) -> List[str]:
        return [artifact.path.as_posix() for artifact in self.artifacts]

    @property
    def status(self) -> str:
        if self.segment_count == 0:
            return "empty"
        if self.attempted == 0:
            return "cancelled"
        if self.succeeded == 0:
            return "failed"
        if self.succeeded < self.segment_count:
            return "partial"
        return "complete"

    @property
    def no_files_generated(self) -> bool:
        return self.attempted > 0 and self.succeeded == 0


class SpeechPipeline:
    """
    Drives splitting, synthesis and persistence for a whole document.

    Segments are synthesized one at a time in index order unless
    ``config.max_workers`` allows a bounded pool. A failed segment is recorded in
    the report and skipped, unless the failure policy is ``FAIL_FAST``.
    """

    def __init__(
        self,
        client: SynthesisClient,
        config: Optional[PipelineConfig] = None,
        observer: Optional[UsageObserver] = None,
    ) -> None:
        self.client = client
        self.config = config or PipelineConfig()
        self.observer = observer or UsageObserver()
        self._lock = threading.Lock()

    def split(self, document: str) -> List[Segment]:
        splitter = split_on_boundaries if self.config.word_boundaries else split_text
        return splitter(document, self.config.max_chunk_len)

    def run(
        self,
        document: str,
        output_dir: Union[str, Path],
        voice: Union[Voice, str] = Voice.ALLOY,
        instructions: str = DEFAULT_INSTRUCTIONS,
        options: Optional[VoiceOptions] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineReport:
        started = time.monotonic()
        voice = Voice.parse(voice)
        segments = self.split(document)
        output_dir = self._prepare_output_dir(Path(output_dir))

        report = PipelineReport(segment_count=len(segments))
        if not segments:
            logger.warning("No text found in document. Nothing to synthesize.")
            return report

        logger.info(
            "Synthesizing %d segments with voice %s into %s.", len(segments), voice.value, output_dir
        )
        if self.config.max_workers > 1 and len(segments) > 1:
            self._run_concurrent(segments, output_dir, voice, instructions, options, report, cancel_event)
        else:
            self._run_sequential(segments, output_dir, voice, instructions, options, report, cancel_event)

        report.artifacts.sort(key=lambda artifact: artifact.segment_index)
        report.failures.sort(key=lambda failure: failure.segment_index)
        if cancel_event is not None and cancel_event.is_set() and report.attempted < len(segments):
            report.cancelled = True
            logger.warning(
                "Run cancelled after %d of %d segments.", report.attempted, len(segments)
            )

        logger.info(
            "Speech generation completed. Successfully processed %d/%d segments.",
            report.succeeded,
            len(segments),
        )
        self.observer.run_finished(report, voice.value, len(document), time.monotonic() - started)
        return report

    def _run_sequential(self, segments, output_dir, voice, instructions, options, report, cancel_event) -> None:
        for segment in segments:
            if cancel_event is not None and cancel_event.is_set():
                break
            self._process_segment(segment, len(segments), output_dir, voice, instructions, options, report)

    def _run_concurrent(self, segments, output_dir, voice, instructions, options, report, cancel_event) -> None:
        stop = threading.Event()

        def task(segment: Segment) -> None:
            if stop.is_set() or (cancel_event is not None and cancel_event.is_set()):
                return
            try:
                self._process_segment(segment, len(segments), output_dir, voice, instructions, options, report)
            except Exception:
                stop.set()
                raise

        first_error: Optional[BaseException] = None
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            futures = [pool.submit(task, segment) for segment in segments]
            for future in futures:
                try:
                    future.result()
                except Exception as exc:
                    if first_error is None:
                        first_error = exc
        if first_error is not None:
            raise first_error

    def _process_segment(
        self,
        segment: Segment,
        total: int,
        output_dir: Path,
        voice: Voice,
        instructions: str,
        options: Optional[VoiceOptions],
        report: PipelineReport,
    ) -> None:
        logger.info("Generating speech for segment %d/%d...", segment.index + 1, total)
        logger.debug("Segment content: %r", segment.content)
        started = time.monotonic()
        result = self.client.synthesize_result(segment, voice, instructions, options)
        elapsed = time.monotonic() - started

        with self._lock:
            report.attempted += 1
        self.observer.segment_attempted(segment, voice.value, result.ok, elapsed)

        if isinstance(result, SynthesisFailure):
            with self._lock:
                report.failures.append(
                    SegmentFailure(
                        segment_index=segment.index,
                        kind=result.kind,
                        message=result.message,
                        retryable=result.retryable,
                        attempts=result.attempts,
                    )
                )
            if self.config.failure_policy is FailurePolicy.FAIL_FAST:
                logger.error("Aborting run: segment %d failed (%s).", segment.index + 1, result.kind.value)
                raise result.error or SynthesisError(result.kind, result.message)
            logger.warning(
                "Skipping segment %d due to %s: %s", segment.index + 1, result.kind.value, result.message
            )
            return

        path = output_dir / f"{self.config.chunk_prefix}{segment.index + 1}.{self.client.audio_format}"
        try:
            path.write_bytes(result.audio)
        except OSError as exc:
            raise OutputDirectoryError(f"Unable to write {path}: {exc}") from exc

        with self._lock:
            report.artifacts.append(
                Artifact(
                    path=path,
                    segment_index=segment.index,
                    size_bytes=len(result.audio),
                    attempts=result.attempts,
                )
            )
        logger.info("Successfully generated speech for segment %d -> %s", segment.index + 1, path.name)

    def _prepare_output_dir(self, output_dir: Path) -> Path:
        if not output_dir.exists():
            if not self.config.create_output_dir:
                raise OutputDirectoryError(f"Output directory does not exist: {output_dir}")
            try:
                output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise OutputDirectoryError(f"Unable to create output directory {output_dir}: {exc}") from exc
        if not output_dir.is_dir():
            raise OutputDirectoryError(f"Output path is not a directory: {output_dir}")
        if not os.access(output_dir, os.W_OK):
            raise OutputDirectoryError(f"Output directory is not writable: {output_dir}")
        return output_dir
