from datetime import datetime, timezone

from speech_pipeline.pipeline import PipelineReport
from speech_pipeline.split_text import Segment
from speech_pipeline.usage import UsageStats


def test_usage_stats_aggregates_runs():
    stats = UsageStats(clock=lambda: datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))
    report = PipelineReport()

    stats.run_finished(report, "nova", 120, 2.0)
    stats.run_finished(report, "nova", 30, 1.0)
    stats.run_finished(report, "echo", 50, 3.0)
    stats.segment_attempted(Segment(0, "hi"), "echo", False, 0.1)

    assert stats.total_conversions == 3
    assert stats.characters_processed == 200
    assert stats.by_voice == {"nova": 2, "echo": 1}
    assert stats.by_date == {"2024-05-01": 3}
    assert stats.average_processing_time == 2.0
    assert stats.popular_voice == "nova"
    assert stats.snapshot()["segments_failed"] == 1


def test_usage_stats_start_empty():
    stats = UsageStats()

    assert stats.average_processing_time == 0.0
    assert stats.popular_voice is None
