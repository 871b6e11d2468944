import json

import tts_chunks
from speech_pipeline.errors import ErrorKind, SynthesisError
from speech_pipeline.tts_engine import MockSpeechEngine


def test_cli_generates_chunks_with_mock_engine(tmp_path, capsys):
    source = tmp_path / "input.txt"
    source.write_text("Hello there. This is a longer test document.", encoding="utf-8")
    output_dir = tmp_path / "chunks"
    metadata_path = tmp_path / "metadata.json"

    exit_code = tts_chunks.main(
        [
            "--input",
            str(source),
            "--engine",
            "mock",
            "--output-dir",
            str(output_dir),
            "--max-chunk-len",
            "20",
            "--metadata-output",
            str(metadata_path),
        ]
    )

    assert exit_code == 0
    assert sorted(p.name for p in output_dir.iterdir()) == ["chunk_1.wav", "chunk_2.wav", "chunk_3.wav"]
    assert len(capsys.readouterr().out.strip().splitlines()) == 3
    metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
    assert metadata["status"] == "complete"
    assert metadata["succeeded"] == 3


def test_cli_rejects_empty_and_oversized_text(tmp_path):
    assert tts_chunks.main(["--text", "   ", "--engine", "mock", "--output-dir", str(tmp_path)]) == 2
    assert (
        tts_chunks.main(["--text", "x" * 11, "--max-length", "10", "--engine", "mock", "--output-dir", str(tmp_path)])
        == 2
    )


def test_cli_rejects_unknown_voice(tmp_path):
    assert tts_chunks.main(["--text", "hi", "--voice", "robot", "--engine", "mock", "--output-dir", str(tmp_path)]) == 2


def test_cli_reports_no_files_generated(tmp_path, monkeypatch, caplog):
    error = SynthesisError(ErrorKind.REQUEST_REJECTED, "nope")
    monkeypatch.setattr(tts_chunks, "create_engine", lambda args: MockSpeechEngine({"hi": error}))

    exit_code = tts_chunks.main(["--text", "hi", "--output-dir", str(tmp_path)])

    assert exit_code == 1
    assert "NO_FILES_GENERATED" in caplog.text


def test_cli_fail_fast_surfaces_error_code(tmp_path, monkeypatch, caplog):
    error = SynthesisError(ErrorKind.RATE_LIMITED, "slow down")
    monkeypatch.setattr(tts_chunks, "create_engine", lambda args: MockSpeechEngine({"hi": error}))

    exit_code = tts_chunks.main(["--text", "hi", "--fail-fast", "--output-dir", str(tmp_path)])

    assert exit_code == 1
    assert "RATE_LIMIT_EXCEEDED" in caplog.text


def test_cli_rejects_empty_input_file(tmp_path, caplog):
    source = tmp_path / "blank.txt"
    source.write_text("   \n", encoding="utf-8")

    exit_code = tts_chunks.main(["--input", str(source), "--engine", "mock", "--output-dir", str(tmp_path / "out")])

    assert exit_code == 2
    assert "EMPTY_FILE" in caplog.text
    assert not (tmp_path / "out").exists()


def test_cli_reports_unreadable_input_file(tmp_path, caplog):
    undecodable = tmp_path / "binary.txt"
    undecodable.write_bytes(b"\xff\xfe\xfa\xfb not utf-8")

    assert tts_chunks.main(["--input", str(undecodable), "--engine", "mock", "--output-dir", str(tmp_path)]) == 2
    assert tts_chunks.main(["--input", str(tmp_path / "missing.txt"), "--engine", "mock", "--output-dir", str(tmp_path)]) == 2
    assert caplog.text.count("FILE_READ_ERROR") == 2
