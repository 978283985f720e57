# trainer/engine/analyzer.py
"""
Performance analysis: score vs. detected notes

Aligns the notes a performer played with the target score, then derives
per-note results, aggregate pitch/timing tendencies, repeated interval
problems, an overall 0–100 score and (when a pitch trail is available)
technique diagnostics.

Matching is greedy in score order: each target claims the closest unused
played note within the timing tolerance, first found wins on ties, and a
claimed note is never reconsidered.  This is not a globally optimal
assignment; a later target can lose a played note an earlier target took.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import logging

from .config import AnalyzerConfig, TechniqueConfig
from .feedback import EMPTY_SCORE_FEEDBACK, build_feedback
from .intervals import analyze_intervals
from .models import (
    NoteEvent,
    NoteResult,
    NoteStatus,
    PerformanceAnalysis,
    PitchTendency,
    PitchTrailPoint,
    PlayedNote,
    Score,
    TimingTendency,
)
from .technique import analyze_technique
from .utils_config import coalesce_not_none

logger = logging.getLogger(__name__)

# Mean signed errors beyond these set the tendency labels
SHARP_FLAT_CENTS = 10.0
EARLY_LATE_BEATS = 0.1


def cents_between(played_midi: float, target_midi: int) -> float:
    return (played_midi - float(target_midi)) * 100.0


def _closest_unused(
    target: NoteEvent,
    played_notes: Sequence[PlayedNote],
    used: List[bool],
    timing_tolerance_beats: float,
) -> Optional[int]:
    best_idx: Optional[int] = None
    best_dist = float("inf")
    for i, played in enumerate(played_notes):
        if used[i]:
            continue
        dist = abs(played.onset_beat - target.start_beat)
        if dist <= timing_tolerance_beats and dist < best_dist:
            best_dist = dist
            best_idx = i
    return best_idx


def match_notes(
    target_notes: Sequence[NoteEvent],
    played_notes: Sequence[PlayedNote],
    tolerance_cents: float,
    timing_tolerance_beats: float,
) -> List[NoteResult]:
    """One NoteResult per target, in target order."""
    used = [False] * len(played_notes)
    results: List[NoteResult] = []

    for target in target_notes:
        idx = _closest_unused(target, played_notes, used, timing_tolerance_beats)
        if idx is None:
            results.append(NoteResult(target_midi=target.midi, target_beat=target.start_beat, status=NoteStatus.MISSED))
            continue

        used[idx] = True
        played = played_notes[idx]
        cent_error = cents_between(played.midi_float, target.midi)
        status = NoteStatus.CORRECT if abs(cent_error) <= tolerance_cents else NoteStatus.WRONG_PITCH
        results.append(
            NoteResult(
                target_midi=target.midi,
                target_beat=target.start_beat,
                status=status,
                played_midi=played.midi_float,
                pitch_error_cents=cent_error,
                timing_error_beats=played.onset_beat - target.start_beat,
            )
        )

    return results


def pitch_tendency_for(avg_cents: float) -> PitchTendency:
    if avg_cents > SHARP_FLAT_CENTS:
        return PitchTendency.SHARP
    if avg_cents < -SHARP_FLAT_CENTS:
        return PitchTendency.FLAT
    return PitchTendency.ACCURATE


def timing_tendency_for(avg_beats: float) -> TimingTendency:
    if avg_beats > EARLY_LATE_BEATS:
        return TimingTendency.LATE
    if avg_beats < -EARLY_LATE_BEATS:
        return TimingTendency.EARLY
    return TimingTendency.ON_TIME


def overall_score(total: int, correct: int, wrong_pitch: int, pitch_errors: Sequence[float]) -> float:
    """
    ``min(100, correct_rate*60 + hit_rate*20 + pitch_score*0.2)``.

    Hitting the right note outweighs merely being close in pitch.
    """
    if total <= 0:
        return 0.0
    correct_rate = correct / total
    hit_rate = (correct + wrong_pitch) / total
    if pitch_errors:
        abs_avg = sum(abs(e) for e in pitch_errors) / len(pitch_errors)
        pitch_score = (1.0 - min(abs_avg / 100.0, 1.0)) * 100.0
    else:
        pitch_score = 0.0
    return min(100.0, correct_rate * 60.0 + hit_rate * 20.0 + pitch_score * 0.2)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _matched_errors(results: Sequence[NoteResult]) -> Tuple[List[float], List[float]]:
    pitch_errors = [r.pitch_error_cents for r in results if r.pitch_error_cents is not None]
    timing_errors = [r.timing_error_beats for r in results if r.timing_error_beats is not None]
    return pitch_errors, timing_errors


def analyze_performance_with_trail(
    score: Score,
    played_notes: Sequence[PlayedNote],
    tolerance_cents: float,
    timing_tolerance_beats: float,
    pitch_trail: Optional[Sequence[PitchTrailPoint]],
    technique_config: Optional[TechniqueConfig] = None,
) -> PerformanceAnalysis:
    target_notes = score.target_notes()
    total_notes = len(target_notes)

    if total_notes == 0:
        return PerformanceAnalysis(feedback=[EMPTY_SCORE_FEEDBACK])

    note_results = match_notes(target_notes, played_notes, tolerance_cents, timing_tolerance_beats)

    notes_correct = sum(r.status is NoteStatus.CORRECT for r in note_results)
    notes_wrong_pitch = sum(r.status is NoteStatus.WRONG_PITCH for r in note_results)
    notes_missed = sum(r.status is NoteStatus.MISSED for r in note_results)

    pitch_errors, timing_errors = _matched_errors(note_results)
    avg_pitch_error_cents = _mean(pitch_errors)
    avg_timing_error_beats = _mean(timing_errors)
    pitch_tendency = pitch_tendency_for(avg_pitch_error_cents)
    timing_tendency = timing_tendency_for(avg_timing_error_beats)

    problem_intervals = analyze_intervals(note_results, tolerance_cents)

    feedback = build_feedback(
        total_notes=total_notes,
        notes_correct=notes_correct,
        notes_missed=notes_missed,
        pitch_errors=pitch_errors,
        timing_errors=timing_errors,
        avg_pitch_error_cents=avg_pitch_error_cents,
        pitch_tendency=pitch_tendency,
        timing_tendency=timing_tendency,
        problem_intervals=problem_intervals,
    )

    technique = analyze_technique(target_notes, note_results, pitch_trail, technique_config)

    analysis = PerformanceAnalysis(
        total_notes=total_notes,
        notes_correct=notes_correct,
        notes_wrong_pitch=notes_wrong_pitch,
        notes_missed=notes_missed,
        avg_pitch_error_cents=avg_pitch_error_cents,
        avg_timing_error_beats=avg_timing_error_beats,
        pitch_tendency=pitch_tendency,
        timing_tendency=timing_tendency,
        problem_intervals=problem_intervals,
        feedback=feedback,
        overall_score=overall_score(total_notes, notes_correct, notes_wrong_pitch, pitch_errors),
        note_results=note_results,
        pitch_stability=technique.pitch_stability,
        attack_quality=technique.attack_quality,
        breath_support=technique.breath_support,
        endurance_delta=technique.endurance_delta,
        technique_feedback=technique.feedback,
    )
    logger.debug(
        "Analyzed %d targets: %d correct, %d wrong pitch, %d missed (score %.1f)",
        total_notes, notes_correct, notes_wrong_pitch, notes_missed, analysis.overall_score,
    )
    return analysis


def analyze_performance(
    score: Score,
    played_notes: Sequence[PlayedNote],
    tolerance_cents: Optional[float] = None,
    timing_tolerance_beats: Optional[float] = None,
    pitch_trail: Optional[Sequence[PitchTrailPoint]] = None,
    config: Optional[AnalyzerConfig] = None,
    technique_config: Optional[TechniqueConfig] = None,
) -> PerformanceAnalysis:
    """
    Compare ``played_notes`` with ``score``.

    Explicit tolerances win over ``config``; both fall back to the
    ``AnalyzerConfig`` defaults (50 cents, 0.25 beat).  Technique metrics are
    only computed when ``pitch_trail`` is given and non-empty.
    """
    cfg = config or AnalyzerConfig()
    return analyze_performance_with_trail(
        score,
        played_notes,
        tolerance_cents=float(coalesce_not_none(tolerance_cents, cfg.tolerance_cents)),
        timing_tolerance_beats=float(coalesce_not_none(timing_tolerance_beats, cfg.timing_tolerance_beats)),
        pitch_trail=pitch_trail,
        technique_config=technique_config,
    )
