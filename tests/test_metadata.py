import json
from pathlib import Path

from speech_pipeline.errors import ErrorKind
from speech_pipeline.metadata import MetadataBuilder
from speech_pipeline.pipeline import Artifact, PipelineConfig, PipelineReport, SegmentFailure
from speech_pipeline.tts_engine import MockSpeechEngine


def test_metadata_describes_artifacts_and_failures(tmp_path):
    report = PipelineReport(
        segment_count=3,
        attempted=3,
        artifacts=[
            Artifact(path=Path("out/chunk_1.wav"), segment_index=0, size_bytes=10),
            Artifact(path=Path("out/chunk_3.wav"), segment_index=2, size_bytes=12, attempts=2),
        ],
        failures=[SegmentFailure(segment_index=1, kind=ErrorKind.RATE_LIMITED, message="slow down")],
    )
    builder = MetadataBuilder(
        engine=MockSpeechEngine(),
        config=PipelineConfig(),
        output_path=tmp_path / "meta" / "metadata.json",
    )

    metadata = builder.build_metadata(report=report, voice="alloy")
    builder.write_metadata(metadata)

    written = json.loads(builder.output_path.read_text(encoding="utf-8"))
    assert written["status"] == "partial"
    assert written["engine"] == "MockSpeechEngine"
    assert [item["file"] for item in written["artifacts"]] == ["chunk_1.wav", "chunk_3.wav"]
    assert written["failures"] == [
        {"segment": 2, "kind": "rate_limited", "message": "slow down", "attempts": 1}
    ]
    assert written["failures_by_kind"] == {"rate_limited": 1}
    assert written["config"]["failure_policy"] == "continue"
