from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from .pipeline import PipelineConfig, PipelineReport
from .tts_engine import SpeechEngine

__all__ = ["MetadataBuilder"]


@dataclass
class MetadataBuilder:
    engine: SpeechEngine
    config: PipelineConfig
    output_path: Path

    def build_metadata(
        self,
        *,
        report: PipelineReport,
        voice: str,
        merged_output: Optional[Path] = None,
        options: Optional[Dict[str, object]] = None,
    ) -> Dict[str, object]:
        options = options or {}
        failures_by_kind: Dict[str, int] = {}
        for failure in report.failures:
            failures_by_kind[failure.kind.value] = failures_by_kind.get(failure.kind.value, 0) + 1

        metadata = {
            "created_at": datetime.now(timezone.utc).isoformat(),
            "engine": self.engine.descriptor(),
            "format": self.engine.audio_format,
            "voice": voice,
            "status": report.status,
            "segments": report.segment_count,
            "attempted": report.attempted,
            "succeeded": report.succeeded,
            "cancelled": report.cancelled,
            "input_path": str(options.get("input_path")) if options.get("input_path") else None,
            "artifacts": [
                {
                    "file": artifact.path.name,
                    "segment": artifact.segment_index + 1,
                    "bytes": artifact.size_bytes,
                    "attempts": artifact.attempts,
                }
                for artifact in report.artifacts
            ],
            "failures": [
                {
                    "segment": failure.segment_index + 1,
                    "kind": failure.kind.value,
                    "message": failure.message,
                    "attempts": failure.attempts,
                }
                for failure in report.failures
            ],
            "failures_by_kind": failures_by_kind,
            "merged_output": str(merged_output) if merged_output else None,
            "config": {
                "max_chunk_len": self.config.max_chunk_len,
                "word_boundaries": self.config.word_boundaries,
                "failure_policy": self.config.failure_policy.value,
                "max_workers": self.config.max_workers,
            },
        }

        return metadata

    def write_metadata(self, metadata: Dict[str, object]) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with self.output_path.open("w", encoding="utf-8") as f:
            json.dump(metadata, f, ensure_ascii=False, indent=2)
