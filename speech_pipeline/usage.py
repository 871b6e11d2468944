from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .pipeline import PipelineReport
    from .split_text import Segment

__all__ = ["UsageObserver", "UsageStats"]


class UsageObserver:
    """
    Hooks notified by ``SpeechPipeline``. The default implementation ignores
    everything, so subclasses only override what they need.
    """

    def segment_attempted(self, segment: "Segment", voice: str, succeeded: bool, elapsed: float) -> None:
        pass

    def run_finished(self, report: "PipelineReport", voice: str, characters: int, elapsed: float) -> None:
        pass


class UsageStats(UsageObserver):
    """
    In-memory usage counters: conversions, characters processed, breakdowns by
    voice and by day, and processing time.
    """

    def __init__(self, clock=None) -> None:
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.total_conversions = 0
        self.characters_processed = 0
        self.segments_attempted = 0
        self.segments_failed = 0
        self.by_voice: Dict[str, int] = {}
        self.by_date: Dict[str, int] = {}
        self.total_processing_time = 0.0

    @property
    def average_processing_time(self) -> float:
        if not self.total_conversions:
            return 0.0
        return self.total_processing_time / self.total_conversions

    @property
    def popular_voice(self) -> Optional[str]:
        if not self.by_voice:
            return None
        return max(self.by_voice.items(), key=lambda item: item[1])[0]

    def segment_attempted(self, segment: "Segment", voice: str, succeeded: bool, elapsed: float) -> None:
        with self._lock:
            self.segments_attempted += 1
            if not succeeded:
                self.segments_failed += 1

    def run_finished(self, report: "PipelineReport", voice: str, characters: int, elapsed: float) -> None:
        today = self._clock().date().isoformat()
        with self._lock:
            self.total_conversions += 1
            self.characters_processed += characters
            self.by_voice[voice] = self.by_voice.get(voice, 0) + 1
            self.by_date[today] = self.by_date.get(today, 0) + 1
            self.total_processing_time += elapsed

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "total_conversions": self.total_conversions,
                "characters_processed": self.characters_processed,
                "segments_attempted": self.segments_attempted,
                "segments_failed": self.segments_failed,
                "by_voice": dict(self.by_voice),
                "by_date": dict(self.by_date),
                "total_processing_time": self.total_processing_time,
                "average_processing_time": self.average_processing_time,
                "popular_voice": self.popular_voice,
            }
