# trainer/engine/technique.py
"""
Within-note technique diagnostics from a dense pitch trail.

Four metrics, each ``None`` when there was not enough data to compute it:

* pitch stability – std-dev (cents) of the trail inside each held note
* attack quality  – 1 minus the share of leading points still off-pitch
* breath support  – how little the pitch drifts across long notes
* endurance delta – correct-note rate in the first half minus the second half
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .config import TechniqueConfig
from .models import NoteEvent, NoteResult, NoteStatus, PitchTrailPoint


@dataclass
class TechniqueReport:
    pitch_stability: Optional[float] = None
    attack_quality: Optional[float] = None
    breath_support: Optional[float] = None
    endurance_delta: Optional[float] = None
    feedback: List[str] = field(default_factory=list)


def _points_in_note(note: NoteEvent, pitch_trail: Sequence[PitchTrailPoint]) -> List[PitchTrailPoint]:
    end = note.end_beat
    return [p for p in pitch_trail if note.start_beat <= p.beat < end]


def _attack_ratio(cents: np.ndarray, settle_cents: float) -> float:
    settled = np.flatnonzero(np.abs(cents) <= settle_cents)
    lead = int(settled[0]) if settled.size else int(cents.size)
    return lead / float(cents.size)


def _endurance_delta(note_results: Sequence[NoteResult], min_notes: int) -> Optional[float]:
    if len(note_results) < max(min_notes, 2):
        return None
    mid = len(note_results) // 2
    first, second = note_results[:mid], note_results[mid:]
    first_rate = sum(r.status is NoteStatus.CORRECT for r in first) / len(first)
    second_rate = sum(r.status is NoteStatus.CORRECT for r in second) / len(second)
    return (first_rate - second_rate) * 100.0


def analyze_technique(
    target_notes: Sequence[NoteEvent],
    note_results: Sequence[NoteResult],
    pitch_trail: Optional[Sequence[PitchTrailPoint]],
    config: Optional[TechniqueConfig] = None,
) -> TechniqueReport:
    cfg = config or TechniqueConfig()
    if not pitch_trail or not target_notes:
        return TechniqueReport()

    stability_values: List[float] = []
    attack_ratios: List[float] = []
    sustain_drifts: List[float] = []

    for target in target_notes:
        points = _points_in_note(target, pitch_trail)
        if len(points) < cfg.min_trail_points:
            continue

        midi = np.array([p.midi_float for p in points], dtype=np.float64)
        cents = (midi - float(target.midi)) * 100.0

        stability_values.append(float(np.std(cents)))
        attack_ratios.append(_attack_ratio(cents, cfg.settle_cents))

        if target.duration_beats >= cfg.long_note_beats:
            mid = len(points) // 2
            if mid > 0:
                drift = abs(float(np.mean(midi[mid:])) - float(np.mean(midi[:mid]))) * 100.0
                sustain_drifts.append(drift)

    report = TechniqueReport()

    if stability_values:
        report.pitch_stability = float(np.mean(stability_values))

    if attack_ratios:
        report.attack_quality = max(0.0, 1.0 - float(np.mean(attack_ratios)))

    if sustain_drifts:
        avg_drift = float(np.mean(sustain_drifts))
        report.breath_support = max(0.0, 1.0 - min(avg_drift / cfg.breath_drift_scale_cents, 1.0))

    report.endurance_delta = _endurance_delta(note_results, cfg.min_endurance_notes)

    if report.pitch_stability is not None and report.pitch_stability > cfg.stability_threshold_cents:
        report.feedback.append("Your pitch wobbles on sustained notes. Focus on steady airflow.")
    if report.attack_quality is not None and report.attack_quality < cfg.attack_threshold:
        report.feedback.append("Your note attacks are slow to center. Try a firmer tongue stroke.")
    if report.breath_support is not None and report.breath_support < cfg.breath_threshold:
        report.feedback.append("Your pitch drops through long notes. Practice deep breathing.")
    if report.endurance_delta is not None and report.endurance_delta > cfg.endurance_threshold:
        report.feedback.append("Your accuracy drops later in the piece. Build endurance with long tones.")

    return report
