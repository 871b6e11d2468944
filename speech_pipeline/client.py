from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .errors import ErrorKind, InvalidArgumentError, SynthesisError
from .split_text import Segment
from .tts_engine import DEFAULT_INSTRUCTIONS, SpeechEngine, SpeechRequest, Voice, VoiceOptions

logger = logging.getLogger(__name__)

__all__ = [
    "linear_backoff",
    "RetryPolicy",
    "SynthesisSuccess",
    "SynthesisFailure",
    "SynthesisResult",
    "SynthesisClient",
]


def linear_backoff(attempt: int) -> float:
    """Seconds to wait after failed attempt ``attempt``: 1s, 2s, 3s..."""
    return 1.0 * attempt


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = linear_backoff
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1.")


@dataclass(frozen=True)
class SynthesisSuccess:
    audio: bytes
    attempts: int = 1

    ok = True


@dataclass(frozen=True)
class SynthesisFailure:
    kind: ErrorKind
    message: str
    retryable: bool
    attempts: int = 1
    error: Optional[SynthesisError] = field(default=None, compare=False, repr=False)

    ok = False


SynthesisResult = Union[SynthesisSuccess, SynthesisFailure]


class SynthesisClient:
    """
    Turns segments into audio bytes through a ``SpeechEngine``, retrying the
    failures the engine classified as retryable.
    """

    def __init__(self, engine: SpeechEngine, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.engine = engine
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def audio_format(self) -> str:
        return self.engine.audio_format

    def synthesize(
        self,
        segment: Segment,
        voice: Union[Voice, str] = Voice.ALLOY,
        instructions: str = DEFAULT_INSTRUCTIONS,
        options: Optional[VoiceOptions] = None,
    ) -> bytes:
        audio, _ = self._synthesize_with_retry(segment, voice, instructions, options)
        return audio

    def synthesize_result(
        self,
        segment: Segment,
        voice: Union[Voice, str] = Voice.ALLOY,
        instructions: str = DEFAULT_INSTRUCTIONS,
        options: Optional[VoiceOptions] = None,
    ) -> SynthesisResult:
        try:
            audio, attempts = self._synthesize_with_retry(segment, voice, instructions, options)
        except SynthesisError as exc:
            return SynthesisFailure(
                kind=exc.kind,
                message=exc.message,
                retryable=exc.retryable,
                attempts=exc.attempts,
                error=exc,
            )
        return SynthesisSuccess(audio=audio, attempts=attempts)

    def _synthesize_with_retry(
        self,
        segment: Segment,
        voice: Union[Voice, str],
        instructions: str,
        options: Optional[VoiceOptions],
    ) -> tuple[bytes, int]:
        request = SpeechRequest(
            text=segment.content,
            voice=Voice.parse(voice),
            instructions=instructions,
            options=options or VoiceOptions(),
        )
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                try:
                    audio = self.engine.synthesize_once(request)
                except SynthesisError:
                    raise
                except Exception as exc:
                    logger.exception(
                        "Unexpected error from %s for segment %d.", self.engine.descriptor(), segment.index + 1
                    )
                    raise SynthesisError(
                        ErrorKind.UNEXPECTED, f"Unexpected error in speech generation: {exc}"
                    ) from exc
                return audio, attempt
            except SynthesisError as exc:
                exc.attempts = attempt
                if not exc.retryable:
                    logger.error(
                        "Segment %d failed with non-retryable %s (attempt %d): %s",
                        segment.index + 1,
                        exc.kind.value,
                        attempt,
                        exc.message,
                    )
                    raise
                if attempt >= policy.max_attempts:
                    logger.error(
                        "Segment %d permanently failed with %s after %d attempts.",
                        segment.index + 1,
                        exc.kind.value,
                        attempt,
                    )
                    raise
                delay = policy.backoff(attempt)
                logger.warning(
                    "Segment %d failed with %s (attempt %d/%d). Retrying in %.2fs.",
                    segment.index + 1,
                    exc.kind.value,
                    attempt,
                    policy.max_attempts,
                    delay,
                )
                policy.sleep(delay)
