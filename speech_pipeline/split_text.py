from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List

from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)

try:
    import kss  # type: ignore

    _HAS_KSS = True
except ImportError:  # pragma: no cover - module is optional
    kss = None
    _HAS_KSS = False

__all__ = [
    "DEFAULT_MAX_CHUNK_LEN",
    "Segment",
    "split_text",
    "split_on_boundaries",
    "expand_abbreviations",
    "preprocess_text",
]

DEFAULT_MAX_CHUNK_LEN = 1000

SENTENCE_END_PATTERN = re.compile(r"[\.?!。！？]+[\"'”’)\]]*\s+|\n\s*")
SECONDARY_SPLIT_PATTERN = re.compile(r"[,;:、·—–]\s+")
WHITESPACE_PATTERN = re.compile(r"\s+")

ABBREVIATIONS = {
    "Dr.": "Doctor",
    "Mr.": "Mister",
    "Mrs.": "Missus",
    "e.g.": "for example",
    "i.e.": "that is",
    "etc.": "etcetera",
}


@dataclass(frozen=True)
class Segment:
    index: int
    content: str

    def __len__(self) -> int:
        return len(self.content)


def split_text(text: str, max_chunk_len: int = DEFAULT_MAX_CHUNK_LEN) -> List[Segment]:
    """
    Slice text into contiguous segments of at most ``max_chunk_len`` characters.

    Content is preserved exactly, so joining the segment contents gives back the
    input. Empty or whitespace-only text yields no segments.
    """
    _check_max_chunk_len(max_chunk_len)
    if not text or not text.strip():
        return []

    return [
        Segment(index=index, content=text[start : start + max_chunk_len])
        for index, start in enumerate(range(0, len(text), max_chunk_len))
    ]


def split_on_boundaries(text: str, max_chunk_len: int = DEFAULT_MAX_CHUNK_LEN) -> List[Segment]:
    """
    Like ``split_text`` but avoids cutting through sentences and words.

    Each cut is placed at the last sentence end that fits, falling back to
    secondary delimiters (commas, semicolons, ...), then to whitespace and finally
    to a hard cut at ``max_chunk_len``. Trailing whitespace stays with the segment
    it follows, so the contents still join back to the original text.
    """
    _check_max_chunk_len(max_chunk_len)
    if not text or not text.strip():
        return []

    sentence_cuts = _sentence_cut_points(text)
    secondary_cuts = [m.end() for m in SECONDARY_SPLIT_PATTERN.finditer(text)]
    whitespace_cuts = [m.end() for m in WHITESPACE_PATTERN.finditer(text)]

    segments: List[Segment] = []
    start = 0
    while len(text) - start > max_chunk_len:
        limit = start + max_chunk_len
        cut = (
            _last_cut(sentence_cuts, start, limit)
            or _last_cut(secondary_cuts, start, limit)
            or _last_cut(whitespace_cuts, start, limit)
            or limit
        )
        segments.append(Segment(index=len(segments), content=text[start:cut]))
        start = cut

    segments.append(Segment(index=len(segments), content=text[start:]))
    logger.debug(
        "Split %d characters into %d segments (max_chunk_len=%d).",
        len(text),
        len(segments),
        max_chunk_len,
    )
    return segments


def expand_abbreviations(text: str) -> str:
    for abbreviation, expanded in ABBREVIATIONS.items():
        pattern = re.compile(r"(?<![\w.])" + re.escape(abbreviation) + r"(?=\s|$)")
        text = pattern.sub(expanded, text)
    return text


def preprocess_text(
    text: str,
    *,
    normalize_abbreviations: bool = False,
    collapse_whitespace: bool = False,
) -> str:
    """
    Optional clean-up applied to a document before it is split.
    """
    processed = text or ""
    if normalize_abbreviations:
        processed = expand_abbreviations(processed)
    if collapse_whitespace:
        processed = re.sub(r"[ \t]+", " ", processed)
        processed = re.sub(r"\n{3,}", "\n\n", processed)
    return processed


def _check_max_chunk_len(max_chunk_len: object) -> None:
    if isinstance(max_chunk_len, bool) or not isinstance(max_chunk_len, int) or max_chunk_len <= 0:
        raise InvalidArgumentError(
            f"max_chunk_len must be a positive integer, got {max_chunk_len!r}."
        )


def _sentence_cut_points(text: str) -> List[int]:
    if _HAS_KSS:
        return _kss_cut_points(text, kss.split_sentences(text))
    return [m.end() for m in SENTENCE_END_PATTERN.finditer(text)]


def _kss_cut_points(text: str, sentences: Iterable[str]) -> List[int]:
    # kss returns stripped sentences; locate them in the source to get offsets.
    cuts: List[int] = []
    cursor = 0
    for sentence in sentences:
        sentence = sentence.strip()
        if not sentence:
            continue
        position = text.find(sentence, cursor)
        if position < 0:
            continue
        cursor = position + len(sentence)
        match = WHITESPACE_PATTERN.match(text, cursor)
        cuts.append(match.end() if match else cursor)
    return cuts


def _last_cut(cuts: List[int], start: int, limit: int) -> int:
    best = 0
    for cut in cuts:
        if cut > limit:
            break
        if cut > start:
            best = cut
    return best
