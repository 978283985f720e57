"""Lightweight structured logging for practice sessions.

A session writes JSONL events (onsets, config, analysis summaries) and a
final summary so a practice run can be inspected or replayed later.  All
writes are best-effort: a full disk or a read-only directory must never
interrupt tracking or analysis.
"""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict
from typing import Any, Dict, Optional

from .models import PerformanceAnalysis

logger = logging.getLogger(__name__)


class SessionLogger:
    """Structured logger that emits JSONL events and a summary for one practice run."""

    def __init__(self, base_dir: str = "sessions", run_name: Optional[str] = None):
        self.base_dir = base_dir
        self.run_name = run_name or f"session_{int(time.time())}"
        self.run_dir = os.path.join(self.base_dir, self.run_name)
        os.makedirs(self.run_dir, exist_ok=True)
        self.events_path = os.path.join(self.run_dir, "events.jsonl")
        self.summary_path = os.path.join(self.run_dir, "summary.json")
        self._summary: Dict[str, Any] = {}
        self._start_time = time.perf_counter()
        self.log_event("session", "start", {"run_dir": self.run_dir})

    @staticmethod
    def _json_default(o: Any) -> Any:
        v = getattr(o, "value", None)
        if v is not None:
            return v
        try:
            return float(o)
        except (TypeError, ValueError):
            return str(o)

    def log_event(self, stage: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        entry: Dict[str, Any] = {
            "stage": stage,
            "event": event,
            "timestamp": time.time(),
        }
        if payload:
            entry.update(payload)
        try:
            with open(self.events_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=self._json_default) + "\n")
        except OSError as e:
            logger.warning("Could not write session event %s/%s: %s", stage, event, e)

    def emit_config(self, stage: str, config_obj: Any) -> None:
        try:
            config = asdict(config_obj)
        except TypeError:
            config = str(config_obj)
        self.log_event(stage, "config", {"config": config})

    def record_analysis(self, analysis: PerformanceAnalysis) -> None:
        summary = {
            "total_notes": analysis.total_notes,
            "notes_correct": analysis.notes_correct,
            "notes_wrong_pitch": analysis.notes_wrong_pitch,
            "notes_missed": analysis.notes_missed,
            "overall_score": analysis.overall_score,
            "pitch_tendency": analysis.pitch_tendency.value,
            "timing_tendency": analysis.timing_tendency.value,
        }
        self._summary["analysis"] = summary
        self.log_event("analyzer", "analysis", summary)

    def finalize(self) -> None:
        self._summary["duration_s"] = float(time.perf_counter() - self._start_time)
        try:
            with open(self.summary_path, "w", encoding="utf-8") as f:
                json.dump(self._summary, f, indent=2, default=self._json_default)
        except OSError as e:
            logger.warning("Could not write session summary: %s", e)

    @property
    def summary(self) -> Dict[str, Any]:
        return dict(self._summary)
