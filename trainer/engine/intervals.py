# trainer/engine/intervals.py
"""Detection of melodic jumps the performer repeatedly misses."""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from .detectors import midi_to_name
from .models import IntervalDirection, IntervalProblem, NoteResult

# A pattern needs at least this many occurrences ...
MIN_OCCURRENCES = 2
# ... and a mean error beyond this to count as a problem
MIN_AVG_ERROR_CENTS = 20.0
MAX_PROBLEMS = 3


def analyze_intervals(results: Sequence[NoteResult], tolerance_cents: float) -> List[IntervalProblem]:
    """
    Group the arrival error of each jump by its (from, to) target pitches.

    Only consecutive pairs where both notes were played count, and only when
    the arrival note is off by more than half the tolerance.  Keys keep
    first-seen order so ties in severity sort deterministically.
    """
    interval_errors: Dict[Tuple[int, int], List[float]] = {}

    for prev, curr in zip(results, results[1:]):
        if prev.pitch_error_cents is None or curr.pitch_error_cents is None:
            continue
        if abs(curr.pitch_error_cents) > tolerance_cents * 0.5:
            key = (prev.target_midi, curr.target_midi)
            interval_errors.setdefault(key, []).append(curr.pitch_error_cents)

    problems: List[IntervalProblem] = []
    for (from_midi, to_midi), errors in interval_errors.items():
        if len(errors) < MIN_OCCURRENCES:
            continue
        avg = sum(errors) / len(errors)
        if abs(avg) <= MIN_AVG_ERROR_CENTS:
            continue
        direction = IntervalDirection.UP if to_midi > from_midi else IntervalDirection.DOWN
        problems.append(
            IntervalProblem(
                from_note=midi_to_name(from_midi),
                to_note=midi_to_name(to_midi),
                direction=direction,
                avg_error_cents=avg,
                count=len(errors),
                from_midi=from_midi,
                to_midi=to_midi,
            )
        )

    problems.sort(key=lambda p: abs(p.avg_error_cents), reverse=True)
    return problems[:MAX_PROBLEMS]
