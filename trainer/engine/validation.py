"""Invariant checks for scores (before analysis) and analysis reports (after)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
import math
import logging

from .models import NoteStatus, PerformanceAnalysis, Score, ScoreValidationError

logger = logging.getLogger(__name__)


def _validate_notes(score: Score, violations: List[str]) -> None:
    for i, note in enumerate(score.notes):
        label = f"note[{i}] (measure {note.measure_number})"
        if note.is_rest != (note.midi == -1):
            violations.append(f"{label}: is_rest={note.is_rest} but midi={note.midi}")
        if not math.isfinite(note.start_beat) or note.start_beat < 0.0:
            violations.append(f"{label}: start_beat must be >= 0, got {note.start_beat}")
        if not math.isfinite(note.duration_beats) or note.duration_beats <= 0.0:
            violations.append(f"{label}: duration_beats must be > 0, got {note.duration_beats}")
        if not note.is_rest and not (0 <= note.midi <= 127):
            violations.append(f"{label}: midi {note.midi} outside 0..127")


def validate_score(score: Score, strict: bool = True) -> Dict[str, Any]:
    """Validate a score before it reaches the analyzer.

    Args:
        score: Score produced by the notation loader or exercise generator.
        strict: If True, raise ScoreValidationError on failure.

    Returns:
        {"status": "pass"} or {"status": "fail", "violations": ["..."]}
    """
    violations: List[str] = []

    if not math.isfinite(score.tempo) or score.tempo <= 0.0:
        violations.append(f"tempo must be > 0, got {score.tempo}")
    _validate_notes(score, violations)

    if not violations:
        return {"status": "pass"}

    report = {"status": "fail", "violations": violations}
    if strict:
        raise ScoreValidationError("; ".join(violations))
    logger.warning("Score failed validation: %s", "; ".join(violations))
    return report


def validate_analysis(
    score: Score,
    analysis: PerformanceAnalysis,
    strict: bool = False,
) -> Dict[str, Any]:
    """Check report invariants: one result per target in score order, consistent counts, bounded score."""
    violations: List[str] = []
    targets = score.target_notes()

    if len(analysis.note_results) != len(targets):
        violations.append(f"{len(analysis.note_results)} note results for {len(targets)} target notes")
    else:
        for i, (target, result) in enumerate(zip(targets, analysis.note_results)):
            if result.target_midi != target.midi or result.target_beat != target.start_beat:
                violations.append(f"result[{i}] does not line up with target at beat {target.start_beat}")
            if result.status is NoteStatus.MISSED and result.played_midi is not None:
                violations.append(f"result[{i}] is missed but carries a played pitch")
            if result.status is not NoteStatus.MISSED and result.pitch_error_cents is None:
                violations.append(f"result[{i}] is matched but has no pitch error")

    counted = analysis.notes_correct + analysis.notes_wrong_pitch + analysis.notes_missed
    if counted != analysis.total_notes:
        violations.append(f"status counts sum to {counted}, total_notes is {analysis.total_notes}")

    if not (0.0 <= analysis.overall_score <= 100.0):
        violations.append(f"overall_score {analysis.overall_score} outside 0..100")

    if not analysis.feedback:
        violations.append("feedback list is empty")

    if violations and strict:
        raise AssertionError("; ".join(violations))
    return {"status": "pass"} if not violations else {"status": "fail", "violations": violations}


def assert_valid_score(score: Optional[Score]) -> Score:
    """Return ``score`` unchanged after strict validation (raises on None)."""
    if score is None:
        raise ScoreValidationError("No score supplied")
    validate_score(score, strict=True)
    return score
