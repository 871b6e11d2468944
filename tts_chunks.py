#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from speech_pipeline.client import RetryPolicy, SynthesisClient
from speech_pipeline.errors import AudioMergeError, SpeechPipelineError, SynthesisError
from speech_pipeline.merger import combine_artifacts
from speech_pipeline.metadata import MetadataBuilder
from speech_pipeline.pipeline import FailurePolicy, PipelineConfig, PipelineReport, SpeechPipeline
from speech_pipeline.split_text import DEFAULT_MAX_CHUNK_LEN, preprocess_text
from speech_pipeline.tts_engine import (
    DEFAULT_INSTRUCTIONS,
    MockSpeechEngine,
    OpenAISpeechEngine,
    PollySpeechEngine,
    SpeechEngine,
    Voice,
    VoiceOptions,
)
from speech_pipeline.usage import UsageStats

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_INPUT = 2

DEFAULT_MAX_TEXT_LENGTH = 5000


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chunked text-to-speech synthesis pipeline.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", help="Input text file path.")
    source.add_argument("--text", help="Text to synthesize directly.")
    parser.add_argument("--input-encoding", default="utf-8", help="Encoding used for input file.")
    parser.add_argument("--output-dir", default="./output/chunks", help="Directory to store chunk files.")
    parser.add_argument("--voice", default=Voice.ALLOY.value, help="Voice identifier.")
    parser.add_argument("--instructions", default=DEFAULT_INSTRUCTIONS, help="Free-form style instructions.")
    parser.add_argument("--speed", type=float, help="Speaking pace, 0.5 to 2.0 (1.0 is neutral).")
    parser.add_argument("--pitch", type=float, help="Pitch offset, -10 to 10 (0 is neutral).")
    parser.add_argument("--volume", type=float, help="Loudness, 0.5 to 2.0 (1.0 is neutral).")
    parser.add_argument("--engine", default="openai", help="TTS engine to use (openai, polly, mock).")
    parser.add_argument("--api-key", help="API key for the OpenAI engine (defaults to OPENAI_API_KEY).")
    parser.add_argument("--model", help="Speech model name (defaults to OPENAI_TTS_MODEL).")
    parser.add_argument("--timeout-ms", type=int, help="Timeout per remote call (defaults to OPENAI_API_TIMEOUT).")
    parser.add_argument("--language-code", help="Language code hint for Polly.")
    parser.add_argument("--max-chunk-len", type=int, default=DEFAULT_MAX_CHUNK_LEN, help="Maximum characters per chunk.")
    parser.add_argument("--word-boundaries", action="store_true", help="Avoid cutting chunks mid-sentence or mid-word.")
    parser.add_argument("--expand-abbreviations", action="store_true", help="Spell out common abbreviations first.")
    parser.add_argument("--max-length", type=int, default=DEFAULT_MAX_TEXT_LENGTH, help="Maximum length of --text input.")
    parser.add_argument("--max-attempts", type=int, default=3, help="Maximum synthesis attempts per chunk.")
    parser.add_argument("--workers", type=int, default=1, help="Chunks synthesized in parallel.")
    parser.add_argument("--fail-fast", action="store_true", help="Stop at the first failed chunk.")
    parser.add_argument("--merge-output", help="Combine chunks into this file (requires ffmpeg).")
    parser.add_argument("--metadata-output", help="Path for metadata JSON output.")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def load_input_text(path: Path, encoding: str) -> str:
    if not path.exists():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    return path.read_text(encoding=encoding)


def create_engine(args: argparse.Namespace) -> SpeechEngine:
    engine_name = (args.engine or "").lower()
    if engine_name in {"mock", "dummy"}:
        return MockSpeechEngine()

    if engine_name in {"polly", "aws_polly"}:
        return PollySpeechEngine(language_code=args.language_code, timeout_ms=args.timeout_ms)

    if engine_name in {"openai", "gpt"}:
        return OpenAISpeechEngine(api_key=args.api_key, model=args.model, timeout_ms=args.timeout_ms)

    raise ValueError(f"Unsupported engine: {args.engine}")


def report_outcome(report: PipelineReport) -> int:
    if report.status == "empty":
        logger.warning("No text chunks were produced. Nothing to synthesize.")
        return EXIT_OK
    if report.no_files_generated:
        logger.error(
            "[NO_FILES_GENERATED] Failed to generate any audio files (%d chunks attempted).",
            report.attempted,
        )
        return EXIT_FAILED
    if report.failures:
        logger.warning(
            "Generated %d of %d chunks; skipped chunks: %s",
            report.succeeded,
            report.segment_count,
            ", ".join(str(failure.segment_index + 1) for failure in report.failures),
        )
    for path in report.paths:
        print(path)
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.debug)

    if args.input:
        input_path: Optional[Path] = Path(args.input)
        try:
            text = load_input_text(input_path, args.input_encoding)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("[FILE_READ_ERROR] Failed to read input file %s: %s", input_path, exc)
            return EXIT_BAD_INPUT
        if not text.strip():
            logger.error("[EMPTY_FILE] Input file %s is empty.", input_path)
            return EXIT_BAD_INPUT
    else:
        input_path = None
        text = args.text.strip()
        if not text:
            logger.error("[TEXT_EMPTY] Text input cannot be empty.")
            return EXIT_BAD_INPUT
        if len(text) > args.max_length:
            logger.error(
                "[TEXT_TOO_LONG] Text is too long (%d characters). Maximum length is %d characters.",
                len(text),
                args.max_length,
            )
            return EXIT_BAD_INPUT

    text = preprocess_text(text, normalize_abbreviations=args.expand_abbreviations)

    try:
        voice = Voice.parse(args.voice)
        options = VoiceOptions(speed=args.speed, pitch=args.pitch, volume=args.volume)
        engine = create_engine(args)
        config = PipelineConfig(
            max_chunk_len=args.max_chunk_len,
            failure_policy=FailurePolicy.FAIL_FAST if args.fail_fast else FailurePolicy.CONTINUE,
            max_workers=args.workers,
            word_boundaries=args.word_boundaries,
        )
        client = SynthesisClient(engine, RetryPolicy(max_attempts=args.max_attempts))
    except ValueError as exc:
        logger.error("[INVALID_ARGUMENT] %s", exc)
        return EXIT_BAD_INPUT

    stats = UsageStats()
    pipeline = SpeechPipeline(client, config, observer=stats)
    logger.info('Generating speech with voice "%s" and instructions "%s"', voice.value, args.instructions)
    try:
        report = pipeline.run(text, Path(args.output_dir), voice, args.instructions, options)
    except SynthesisError as exc:
        logger.error("[%s] %s (status %d, kind %s)", exc.error_code, exc.message, exc.status_code, exc.kind.value)
        return EXIT_FAILED
    except SpeechPipelineError as exc:
        logger.error("Speech generation failed: %s", exc)
        return EXIT_FAILED

    exit_code = report_outcome(report)

    merged_output = None
    if args.merge_output and report.artifacts:
        try:
            merged_output = combine_artifacts(report.artifacts, Path(args.merge_output))
        except AudioMergeError as exc:
            logger.error("%s", exc)
            exit_code = exit_code or EXIT_FAILED
        else:
            logger.info("Combined audio saved to %s", merged_output)

    if args.metadata_output:
        metadata_builder = MetadataBuilder(engine=engine, config=config, output_path=Path(args.metadata_output))
        metadata = metadata_builder.build_metadata(
            report=report,
            voice=voice.value,
            merged_output=merged_output,
            options={"input_path": input_path},
        )
        metadata_builder.write_metadata(metadata)
        logger.info("Metadata written to %s", metadata_builder.output_path)

    logger.debug("Usage: %s", stats.snapshot())
    return exit_code


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.error("Interrupted by user.")
        sys.exit(1)
    except Exception as exc:
        logger.exception("Fatal error: %s", exc)
        sys.exit(1)
