# trainer/engine/feedback.py
from __future__ import annotations

from typing import List, Sequence

from .models import IntervalDirection, IntervalProblem, PitchTendency, TimingTendency

GENERIC_FEEDBACK = "Play with the mic active to get feedback!"
EMPTY_SCORE_FEEDBACK = "No notes in score to analyze."

# Mean absolute errors above these make a bias worth mentioning
PITCH_BIAS_CENTS = 30.0
TIMING_BIAS_BEATS = 0.15


def _overall_sentence(pct: float) -> str:
    if pct >= 90.0:
        return f"Excellent! You nailed {pct:.0f}% of the notes."
    if pct >= 70.0:
        return f"Good job! You got {pct:.0f}% of the notes right."
    if pct >= 50.0:
        return f"Keep practicing! You hit {pct:.0f}% of the notes correctly."
    return f"This one's tough! You got {pct:.0f}% correct. Try slowing down the tempo."


def _interval_sentence(problem: IntervalProblem) -> str:
    dir_word = "ascending" if problem.direction is IntervalDirection.UP else "descending"
    if problem.avg_error_cents > 0.0:
        return (
            f"You overshoot when going {dir_word} from {problem.from_note} to {problem.to_note} "
            f"(avg +{problem.avg_error_cents:.0f} cents). Try less pressure on the jump."
        )
    return (
        f"You undershoot when going {dir_word} from {problem.from_note} to {problem.to_note} "
        f"(avg {problem.avg_error_cents:.0f} cents). Use more air support on the jump."
    )


def build_feedback(
    total_notes: int,
    notes_correct: int,
    notes_missed: int,
    pitch_errors: Sequence[float],
    timing_errors: Sequence[float],
    avg_pitch_error_cents: float,
    pitch_tendency: PitchTendency,
    timing_tendency: TimingTendency,
    problem_intervals: Sequence[IntervalProblem],
) -> List[str]:
    """
    Human-readable diagnostics, in a fixed order: overall result, missed notes,
    pitch bias, timing bias, then one line per problem interval (worst first).
    """
    feedback: List[str] = []

    if total_notes > 0:
        feedback.append(_overall_sentence(notes_correct / total_notes * 100.0))

    if notes_missed > 0:
        plural = "" if notes_missed == 1 else "s"
        feedback.append(f"You missed {notes_missed} note{plural}. Make sure to play through the whole piece.")

    if pitch_errors:
        abs_avg = sum(abs(e) for e in pitch_errors) / len(pitch_errors)
        if abs_avg > PITCH_BIAS_CENTS:
            if pitch_tendency is PitchTendency.SHARP:
                feedback.append(
                    f"Your pitch is consistently {avg_pitch_error_cents:.0f} cents sharp. "
                    "Try relaxing your embouchure slightly."
                )
            elif pitch_tendency is PitchTendency.FLAT:
                feedback.append(
                    f"Your pitch is consistently {abs(avg_pitch_error_cents):.0f} cents flat. "
                    "Try firming up your embouchure and using more air support."
                )

    if timing_errors:
        abs_avg = sum(abs(e) for e in timing_errors) / len(timing_errors)
        if abs_avg > TIMING_BIAS_BEATS:
            if timing_tendency is TimingTendency.LATE:
                feedback.append(
                    "You tend to come in late. Try anticipating the beat and starting your air a bit earlier."
                )
            elif timing_tendency is TimingTendency.EARLY:
                feedback.append("You tend to rush ahead. Try listening to the beat and holding back slightly.")

    for problem in problem_intervals:
        feedback.append(_interval_sentence(problem))

    if not feedback:
        feedback.append(GENERIC_FEEDBACK)

    return feedback
