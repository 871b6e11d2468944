import pytest
from pydub import AudioSegment
from pydub.exceptions import CouldntEncodeError

from speech_pipeline import merger
from speech_pipeline.errors import AudioMergeError
from speech_pipeline.merger import combine_artifacts
from speech_pipeline.pipeline import Artifact


def write_chunks(tmp_path, durations):
    chunk_dir = tmp_path / "chunks"
    chunk_dir.mkdir()
    artifacts = []
    for index, duration in enumerate(durations):
        segment = AudioSegment.silent(duration=duration, frame_rate=22050)
        file_path = chunk_dir / f"chunk_{index + 1}.wav"
        segment.export(file_path, format="wav")
        artifacts.append(Artifact(path=file_path, segment_index=index))
    return artifacts


def test_combine_artifacts_concatenates_in_index_order(tmp_path, monkeypatch):
    monkeypatch.setattr(merger, "which", lambda name: "/usr/bin/ffmpeg")
    durations = [1000, 1500, 800]
    artifacts = write_chunks(tmp_path, durations)
    output_path = tmp_path / "merged.wav"

    result = combine_artifacts(list(reversed(artifacts)), output_path, silence_gap_ms=200)

    assert result == output_path
    merged = AudioSegment.from_file(output_path, format="wav")
    expected_duration = sum(durations) + 200 * (len(durations) - 1)
    assert abs(len(merged) - expected_duration) <= 50
    assert all(artifact.path.exists() for artifact in artifacts)


def test_combine_artifacts_skips_when_nothing_to_merge(tmp_path, monkeypatch):
    monkeypatch.setattr(merger, "which", lambda name: None)
    artifacts = write_chunks(tmp_path, [500])

    assert combine_artifacts([], tmp_path / "merged.wav") is None
    assert combine_artifacts(artifacts, tmp_path / "merged.wav") == artifacts[0].path
    assert not (tmp_path / "merged.wav").exists()


def test_combine_artifacts_fails_closed_without_ffmpeg(tmp_path, monkeypatch):
    monkeypatch.setattr(merger, "which", lambda name: None)
    artifacts = write_chunks(tmp_path, [500, 500])

    with pytest.raises(AudioMergeError):
        combine_artifacts(artifacts, tmp_path / "merged.wav")

    assert not (tmp_path / "merged.wav").exists()


def test_combine_artifacts_reports_undecodable_chunks(tmp_path, monkeypatch):
    monkeypatch.setattr(merger, "which", lambda name: "/usr/bin/ffmpeg")
    artifacts = write_chunks(tmp_path, [500, 500])
    artifacts[1].path.write_bytes(b"not audio at all")

    with pytest.raises(AudioMergeError):
        combine_artifacts(artifacts, tmp_path / "merged.wav")


def test_combine_artifacts_reports_export_failures(tmp_path, monkeypatch):
    monkeypatch.setattr(merger, "which", lambda name: "/usr/bin/ffmpeg")
    artifacts = write_chunks(tmp_path, [500, 500])

    def failing_export(self, out_f=None, format="mp3", **kwargs):
        raise CouldntEncodeError("Encoding failed. ffmpeg/avlib returned error code: 234")

    monkeypatch.setattr(AudioSegment, "export", failing_export)

    with pytest.raises(AudioMergeError):
        combine_artifacts(artifacts, tmp_path / "merged.mp3")


def test_combine_artifacts_rejects_unknown_output_format(tmp_path, monkeypatch):
    monkeypatch.setattr(merger, "which", lambda name: "/usr/bin/ffmpeg")
    artifacts = write_chunks(tmp_path, [500, 500])

    with pytest.raises(AudioMergeError):
        combine_artifacts(artifacts, tmp_path / "merged.bogusfmt")
