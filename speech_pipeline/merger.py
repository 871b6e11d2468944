from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError
from pydub.utils import which

from .errors import AudioMergeError
from .pipeline import Artifact

logger = logging.getLogger(__name__)

__all__ = ["combine_artifacts"]


def combine_artifacts(
    artifacts: Sequence[Artifact],
    output_path: Path,
    *,
    output_format: Optional[str] = None,
    silence_gap_ms: int = 0,
) -> Optional[Path]:
    """
    Concatenate chunk files into one audio file, in segment order.

    Nothing is merged for zero artifacts (``None``) or a single one (its own
    path). Otherwise ffmpeg must be available; without it, or when a chunk cannot
    be decoded, ``AudioMergeError`` is raised. Chunk files are left untouched.
    """
    if not artifacts:
        return None
    ordered = sorted(artifacts, key=lambda artifact: artifact.segment_index)
    if len(ordered) == 1:
        return ordered[0].path

    if not which("ffmpeg"):
        raise AudioMergeError("ffmpeg is required to combine audio files but was not found on PATH.")

    output_path = Path(output_path)
    fmt = (output_format or output_path.suffix.lstrip(".") or ordered[0].path.suffix.lstrip(".")).lower()

    merged: Optional[AudioSegment] = None
    try:
        for idx, artifact in enumerate(ordered):
            segment = AudioSegment.from_file(
                str(artifact.path), format=artifact.path.suffix.lstrip(".") or None
            )
            merged = segment if merged is None else merged + segment
            if idx < len(ordered) - 1 and silence_gap_ms > 0:
                merged += _matching_silence(segment, silence_gap_ms)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        merged.export(str(output_path), format=fmt)
    except (CouldntDecodeError, CouldntEncodeError, OSError) as exc:
        logger.error("Failed to combine audio files: %s", exc)
        raise AudioMergeError(f"Failed to combine audio files: {exc}") from exc

    logger.info("Merged %d chunks into %s", len(ordered), output_path)
    return output_path


def _matching_silence(segment: AudioSegment, duration_ms: int) -> AudioSegment:
    silence = AudioSegment.silent(duration=duration_ms, frame_rate=segment.frame_rate)
    silence = silence.set_channels(segment.channels)
    silence = silence.set_sample_width(segment.sample_width)
    return silence
