import pytest

from trainer.engine.analyzer import analyze_performance
from trainer.engine.intervals import MAX_PROBLEMS, analyze_intervals
from trainer.engine.models import IntervalDirection, NoteResult, NoteStatus
from trainer.tests.audio_utils import make_score, played


def _results(seq, tolerance_cents=50.0):
    """NoteResults from (target_midi, cent_error) pairs; error None means missed."""
    out = []
    for i, (midi, err) in enumerate(seq):
        if err is None:
            out.append(NoteResult(target_midi=midi, target_beat=float(i), status=NoteStatus.MISSED))
            continue
        status = NoteStatus.CORRECT if abs(err) <= tolerance_cents else NoteStatus.WRONG_PITCH
        out.append(
            NoteResult(
                target_midi=midi,
                target_beat=float(i),
                status=status,
                played_midi=midi + err / 100.0,
                pitch_error_cents=err,
                timing_error_beats=0.0,
            )
        )
    return out


def test_repeated_overshoot_is_one_problem():
    score = make_score([(0.0, 1.0, 60), (1.0, 1.0, 67), (2.0, 1.0, 60), (3.0, 1.0, 67)])
    perf = [played(0.0, 60.0), played(1.0, 67.4), played(2.0, 60.0), played(3.0, 67.4)]
    result = analyze_performance(score, perf, 50.0, 0.25)

    assert len(result.problem_intervals) == 1
    problem = result.problem_intervals[0]
    assert problem.from_note == "C4"
    assert problem.to_note == "G4"
    assert (problem.from_midi, problem.to_midi) == (60, 67)
    assert problem.direction is IntervalDirection.UP
    assert problem.count == 2
    assert problem.avg_error_cents == pytest.approx(40.0)
    assert (
        "You overshoot when going ascending from C4 to G4 (avg +40 cents). Try less pressure on the jump."
        in result.feedback
    )


def test_single_occurrence_is_not_a_problem():
    results = _results([(60, 0.0), (67, 40.0), (60, 0.0), (64, 40.0)])
    assert analyze_intervals(results, 50.0) == []


def test_small_arrival_errors_ignored():
    # 20 cents is within half of the 50 cent tolerance
    results = _results([(60, 0.0), (67, 20.0), (60, 0.0), (67, 20.0)])
    assert analyze_intervals(results, 50.0) == []


def test_average_must_exceed_floor():
    # both arrivals recorded (> 15) but the mean is exactly 20
    results = _results([(60, 0.0), (67, 18.0), (60, 0.0), (67, 22.0)], tolerance_cents=30.0)
    assert analyze_intervals(results, 30.0) == []


def test_missed_note_breaks_the_pair():
    results = _results([(60, 0.0), (67, None), (60, 0.0), (67, 40.0), (60, None), (67, 40.0)])
    assert analyze_intervals(results, 50.0) == []


def test_descending_undershoot():
    results = _results([(67, 0.0), (60, -40.0), (67, 0.0), (60, -40.0)])
    problems = analyze_intervals(results, 50.0)

    assert len(problems) == 1
    assert problems[0].direction is IntervalDirection.DOWN
    assert problems[0].avg_error_cents == pytest.approx(-40.0)


def test_worst_three_sorted_by_magnitude():
    seq = []
    for low, err in [(50, 30.0), (51, -40.0), (52, 50.0), (53, 35.0)]:
        seq += [(low, 0.0), (low + 10, err)] * 2
    problems = analyze_intervals(_results(seq), 50.0)

    assert len(problems) == MAX_PROBLEMS
    assert [(p.from_midi, p.to_midi) for p in problems] == [(52, 62), (51, 61), (53, 63)]
    assert [p.count for p in problems] == [2, 2, 2]


def test_equal_severity_keeps_first_seen_order():
    seq = [(60, 0.0), (64, -30.0)] * 2 + [(62, 0.0), (65, 30.0)] * 2
    problems = analyze_intervals(_results(seq), 50.0)
    assert [(p.from_midi, p.to_midi) for p in problems] == [(60, 64), (62, 65)]
