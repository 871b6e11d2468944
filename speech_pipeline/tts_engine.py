from __future__ import annotations

import io
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Union

import requests
from pydub import AudioSegment

from .errors import ErrorKind, InvalidArgumentError, SynthesisError, classify_status

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_INSTRUCTIONS",
    "DEFAULT_TIMEOUT_MS",
    "Voice",
    "VoiceOptions",
    "SpeechRequest",
    "render_instructions",
    "resolve_timeout_ms",
    "SpeechEngine",
    "OpenAISpeechEngine",
    "PollySpeechEngine",
    "MockSpeechEngine",
]

DEFAULT_INSTRUCTIONS = "Speak in a neutral tone."
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_OPENAI_MODEL = "gpt-4o-mini-tts"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


class Voice(str, Enum):
    SHIMMER = "shimmer"
    NOVA = "nova"
    ALLOY = "alloy"
    CORAL = "coral"
    ECHO = "echo"
    FABLE = "fable"
    ONYX = "onyx"
    SAGE = "sage"
    ASH = "ash"
    BALLAD = "ballad"

    @classmethod
    def parse(cls, value: Union[str, "Voice", None]) -> "Voice":
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.ALLOY
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(voice.value for voice in cls)
            raise InvalidArgumentError(f"Unknown voice {value!r}. Choose one of: {choices}.") from None


@dataclass(frozen=True)
class VoiceOptions:
    """
    Style adjustments relative to a neutral delivery.

    speed and volume are multipliers around 1.0, pitch is an offset around 0.
    """

    speed: Optional[float] = None
    pitch: Optional[float] = None
    volume: Optional[float] = None

    def __post_init__(self) -> None:
        _check_range("speed", self.speed, 0.5, 2.0)
        _check_range("pitch", self.pitch, -10.0, 10.0)
        _check_range("volume", self.volume, 0.5, 2.0)


@dataclass(frozen=True)
class SpeechRequest:
    text: str
    voice: Voice = Voice.ALLOY
    instructions: str = DEFAULT_INSTRUCTIONS
    options: VoiceOptions = field(default_factory=VoiceOptions)

    def rendered_instructions(self) -> str:
        return render_instructions(self.instructions, self.options)


def render_instructions(instructions: str, options: Optional[VoiceOptions] = None) -> str:
    """
    Fold voice options into the free-form instructions as qualitative hints.
    """
    rendered = (instructions or "").strip()
    hints = []
    if options is not None:
        if options.speed is not None and options.speed != 1.0:
            hints.append(f"Speak at {'a faster' if options.speed > 1.0 else 'a slower'} pace.")
        if options.pitch is not None and options.pitch != 0:
            hints.append(f"Use {'a higher' if options.pitch > 0 else 'a lower'} pitch.")
        if options.volume is not None and options.volume != 1.0:
            hints.append(f"Speak {'more loudly' if options.volume > 1.0 else 'more softly'}.")
    return " ".join([rendered, *hints]).strip()


def resolve_timeout_ms(value: Optional[Union[int, str]] = None) -> int:
    """
    Timeout for one remote call, from an explicit value or ``OPENAI_API_TIMEOUT``.
    """
    raw = value if value is not None else os.environ.get("OPENAI_API_TIMEOUT")
    if raw is None or raw == "":
        return DEFAULT_TIMEOUT_MS
    try:
        timeout_ms = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid timeout %r, using default of %d ms.", raw, DEFAULT_TIMEOUT_MS)
        return DEFAULT_TIMEOUT_MS
    if timeout_ms <= 0:
        logger.warning("Timeout must be positive (got %d), using default of %d ms.", timeout_ms, DEFAULT_TIMEOUT_MS)
        return DEFAULT_TIMEOUT_MS
    return timeout_ms


class SpeechEngine(ABC):
    """
    Thin abstraction over a remote text-to-speech service.

    ``synthesize_once`` performs exactly one remote call and either returns the
    audio bytes as received or raises a classified ``SynthesisError``. Retrying
    is the caller's business.
    """

    def __init__(self, *, audio_format: str = "mp3") -> None:
        self.audio_format = audio_format

    @abstractmethod
    def synthesize_once(self, request: SpeechRequest) -> bytes:
        """
        Convert one request into raw audio bytes.
        """

    def descriptor(self) -> str:
        return self.__class__.__name__


class OpenAISpeechEngine(SpeechEngine):
    """
    OpenAI ``/audio/speech`` implementation on top of ``requests``.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        audio_format: str = "mp3",
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(audio_format=audio_format)
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self._api_key:
            raise InvalidArgumentError(
                "OpenAI API key is missing. Pass --api-key or set OPENAI_API_KEY."
            )
        self._model = model or os.environ.get("OPENAI_TTS_MODEL") or DEFAULT_OPENAI_MODEL
        self._base_url = (base_url or os.environ.get("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.timeout_ms = resolve_timeout_ms(timeout_ms)
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/audio/speech"

    def build_payload(self, request: SpeechRequest) -> Dict[str, object]:
        return {
            "model": self._model,
            "input": request.text,
            "voice": Voice.parse(request.voice).value,
            "instructions": request.rendered_instructions(),
            "response_format": self.audio_format,
        }

    def synthesize_once(self, request: SpeechRequest) -> bytes:
        payload = self.build_payload(request)
        logger.debug(
            "Speech request: %s (%d characters)",
            {k: v for k, v in payload.items() if k != "input"},
            len(request.text),
        )
        try:
            response = self._session.post(
                self.endpoint,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout_ms / 1000.0,
            )
        except requests.Timeout as exc:
            raise SynthesisError(
                ErrorKind.REQUEST_TIMEOUT,
                f"Request timed out after {self.timeout_ms} ms. "
                "The speech service took too long to respond.",
            ) from exc
        except (
            requests.exceptions.InvalidURL,
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
            requests.exceptions.InvalidHeader,
            requests.exceptions.InvalidJSONError,
            requests.exceptions.URLRequired,
        ) as exc:
            raise SynthesisError(
                ErrorKind.REQUEST_SETUP_ERROR, f"Request setup error: {exc}"
            ) from exc
        except requests.RequestException as exc:
            raise SynthesisError(
                ErrorKind.NO_RESPONSE, f"No response received from speech service: {exc}"
            ) from exc

        logger.debug("Speech response status: %s", response.status_code)
        if response.status_code >= 300:
            raise classify_status(response.status_code, _response_text(response))
        return response.content


class PollySpeechEngine(SpeechEngine):
    """
    Amazon Polly implementation returning encoded audio bytes.

    Polly has no free-form instructions, so they are only logged.
    """

    THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "Throttling"}

    def __init__(
        self,
        *,
        engine: str = "neural",
        language_code: Optional[str] = None,
        voice_map: Optional[Dict[Voice, str]] = None,
        output_format: str = "mp3",
        timeout_ms: Optional[int] = None,
        boto3_client: Optional[object] = None,
    ) -> None:
        super().__init__(audio_format="ogg" if output_format == "ogg_vorbis" else output_format)
        try:
            import boto3  # type: ignore
            from botocore import exceptions as botocore_exceptions  # type: ignore
            from botocore.config import Config  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "boto3 is required for PollySpeechEngine but is not installed."
            ) from exc

        self.timeout_ms = resolve_timeout_ms(timeout_ms)
        if boto3_client is None:
            seconds = self.timeout_ms / 1000.0
            boto3_client = boto3.client(
                "polly",
                config=Config(
                    connect_timeout=seconds,
                    read_timeout=seconds,
                    retries={"total_max_attempts": 1},
                ),
            )
        self._client = boto3_client
        self._errors = botocore_exceptions
        self._engine = engine
        self._language_code = language_code
        self._voice_map = dict(DEFAULT_POLLY_VOICES)
        self._voice_map.update(voice_map or {})
        self._output_format = output_format

    def build_params(self, request: SpeechRequest) -> Dict[str, str]:
        params = {
            "Engine": self._engine,
            "VoiceId": self._voice_map[Voice.parse(request.voice)],
            "OutputFormat": self._output_format,
            "Text": request.text,
            "TextType": "text",
        }
        if self._language_code:
            params["LanguageCode"] = self._language_code
        return params

    def synthesize_once(self, request: SpeechRequest) -> bytes:
        errors = self._errors
        params = self.build_params(request)
        logger.debug("Polly request params: %s", {k: v for k, v in params.items() if k != "Text"})
        logger.debug("Polly ignores instructions: %r", request.rendered_instructions())
        try:
            response = self._client.synthesize_speech(**params)  # type: ignore[attr-defined]
            stream = response.get("AudioStream")
            audio_bytes = stream.read() if hasattr(stream, "read") else stream
        except (errors.ConnectTimeoutError, errors.ReadTimeoutError) as exc:
            raise SynthesisError(
                ErrorKind.REQUEST_TIMEOUT,
                f"Request timed out after {self.timeout_ms} ms. Polly took too long to respond.",
            ) from exc
        except errors.ParamValidationError as exc:
            raise SynthesisError(ErrorKind.REQUEST_SETUP_ERROR, f"Request setup error: {exc}") from exc
        except errors.ClientError as exc:
            error = exc.response.get("Error", {})
            if error.get("Code") in self.THROTTLING_CODES:
                raise SynthesisError(
                    ErrorKind.RATE_LIMITED,
                    "Polly rate limit exceeded. Please try again after some time.",
                    remote_status=429,
                ) from exc
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 500
            raise classify_status(int(status), error.get("Message", "")) from exc
        except errors.BotoCoreError as exc:
            raise SynthesisError(
                ErrorKind.NO_RESPONSE, f"No response received from Polly: {exc}"
            ) from exc

        if not audio_bytes:
            raise SynthesisError(ErrorKind.UPSTREAM_ERROR, "Polly returned an empty audio stream.")
        return audio_bytes


DEFAULT_POLLY_VOICES = {
    Voice.SHIMMER: "Joanna",
    Voice.NOVA: "Salli",
    Voice.ALLOY: "Ruth",
    Voice.CORAL: "Kimberly",
    Voice.ECHO: "Matthew",
    Voice.FABLE: "Brian",
    Voice.ONYX: "Stephen",
    Voice.SAGE: "Gregory",
    Voice.ASH: "Joey",
    Voice.BALLAD: "Justin",
}


class MockSpeechEngine(SpeechEngine):
    """
    Offline engine for tests and dry runs. Produces silent WAV audio whose length
    follows the text, and can be scripted to fail.

    ``failures`` maps a segment text to either an error raised on every call or a
    callable receiving the attempt number and returning an error (or ``None`` to
    succeed).
    """

    def __init__(
        self,
        failures: Optional[Dict[str, Union[SynthesisError, Callable[[int], Optional[SynthesisError]]]]] = None,
        *,
        base_duration_ms: int = 200,
        per_char_ms: int = 10,
        sample_rate: int = 22050,
    ) -> None:
        super().__init__(audio_format="wav")
        self._failures = failures or {}
        self._base_duration_ms = base_duration_ms
        self._per_char_ms = per_char_ms
        self._sample_rate = sample_rate
        self.calls: Dict[str, int] = {}
        self._lock = threading.Lock()

    def synthesize_once(self, request: SpeechRequest) -> bytes:
        with self._lock:
            attempt = self.calls.get(request.text, 0) + 1
            self.calls[request.text] = attempt

        failure = self._failures.get(request.text)
        if callable(failure):
            failure = failure(attempt)
        if failure is not None:
            raise failure

        duration = self._base_duration_ms + len(request.text) * self._per_char_ms
        segment = AudioSegment.silent(duration=duration, frame_rate=self._sample_rate)
        buffer = io.BytesIO()
        segment.export(buffer, format="wav")
        return buffer.getvalue()


def _check_range(name: str, value: Optional[float], low: float, high: float) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not low <= value <= high:
        raise InvalidArgumentError(f"{name} must be between {low} and {high}, got {value!r}.")


def _response_text(response: requests.Response) -> str:
    return (response.content or b"").decode("utf-8", errors="replace")
