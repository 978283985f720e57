# trainer/engine/models.py
"""Dataclasses and enums shared by the pitch detector and the analyzer.

Everything here is a plain value type.  The detector produces
``PitchEstimate`` objects, an upstream tracker turns those into
``PlayedNote`` / ``PitchTrailPoint`` streams, and the analyzer compares
them with a ``Score`` to build a ``PerformanceAnalysis``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any, Mapping
from enum import Enum
import math

import numpy as np


class ScoreValidationError(ValueError):
    """Raised when a score is structurally invalid (missing fields, bad rests...)."""


class NoteStatus(str, Enum):
    CORRECT = "correct"
    WRONG_PITCH = "wrong_pitch"
    MISSED = "missed"


class PitchTendency(str, Enum):
    SHARP = "sharp"
    FLAT = "flat"
    ACCURATE = "accurate"


class TimingTendency(str, Enum):
    EARLY = "early"
    LATE = "late"
    ON_TIME = "on_time"


class IntervalDirection(str, Enum):
    UP = "up"
    DOWN = "down"


# ------------------------------------------------------------
# Detector side
# ------------------------------------------------------------

@dataclass
class AudioFrame:
    samples: np.ndarray                     # mono float samples
    sample_rate: float                      # Hz

    def __len__(self) -> int:
        return int(np.asarray(self.samples).size)


@dataclass(frozen=True)
class PitchEstimate:
    hz: float                               # 0.0 if unvoiced
    confidence: float                       # 0–1
    midi_float: float                       # fractional MIDI (A4 = 69)

    @classmethod
    def silence(cls) -> "PitchEstimate":
        return cls(hz=0.0, confidence=0.0, midi_float=0.0)

    @property
    def is_silence(self) -> bool:
        return self.hz <= 0.0


# ------------------------------------------------------------
# Score side (supplied by the notation loader / exercise generator)
# ------------------------------------------------------------

@dataclass
class NoteEvent:
    start_beat: float
    duration_beats: float
    midi: int                               # -1 for rests
    is_rest: bool = False
    measure_number: int = 1
    note_type: str = "quarter"              # "whole", "half", "quarter", ...

    @property
    def end_beat(self) -> float:
        return self.start_beat + self.duration_beats


@dataclass
class MeasureInfo:
    number: int
    start_beat: float
    duration_beats: float
    time_sig_num: int = 4
    time_sig_den: int = 4


@dataclass
class TransposeInfo:
    chromatic: int = 0
    diatonic: int = 0


@dataclass
class Score:
    tempo: float = 120.0                    # quarter-note BPM
    notes: List[NoteEvent] = field(default_factory=list)
    measures: List[MeasureInfo] = field(default_factory=list)
    key_fifths: int = 0
    transpose: Optional[TransposeInfo] = None
    title: Optional[str] = None
    total_beats: Optional[float] = None

    def __post_init__(self) -> None:
        if self.total_beats is None:
            self.total_beats = max((n.end_beat for n in self.notes), default=0.0)

    @property
    def seconds_per_beat(self) -> float:
        return 60.0 / self.tempo if self.tempo > 0 else 0.0

    def target_notes(self) -> List[NoteEvent]:
        """Non-rest notes in ascending start-beat order (stable for equal starts)."""
        return sorted((n for n in self.notes if not n.is_rest), key=lambda n: n.start_beat)

    def note_at(self, beat: float) -> Optional[NoteEvent]:
        """The first non-rest note sounding at ``beat``, if any."""
        for note in self.notes:
            if note.is_rest:
                continue
            if note.start_beat <= beat < note.end_beat:
                return note
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Score":
        """Build a score from the loader's serialised (snake_case) output."""
        if "notes" not in data:
            raise ScoreValidationError("Score is missing required field 'notes'")
        if not isinstance(data["notes"], (list, tuple)):
            raise ScoreValidationError(f"Score field 'notes' must be a list, got {type(data['notes']).__name__}")

        notes: List[NoteEvent] = []
        for i, raw in enumerate(data["notes"]):
            if not isinstance(raw, Mapping):
                raise ScoreValidationError(f"Note {i} must be a mapping, got {type(raw).__name__}")
            missing = [k for k in ("start_beat", "duration_beats", "midi") if k not in raw]
            if missing:
                raise ScoreValidationError(f"Note {i} is missing required field(s): {', '.join(missing)}")
            midi = int(raw["midi"])
            notes.append(
                NoteEvent(
                    start_beat=float(raw["start_beat"]),
                    duration_beats=float(raw["duration_beats"]),
                    midi=midi,
                    is_rest=bool(raw.get("is_rest", midi == -1)),
                    measure_number=int(raw.get("measure_number", 1)),
                    note_type=str(raw.get("note_type", "quarter")),
                )
            )

        measures: List[MeasureInfo] = []
        for i, m in enumerate(data.get("measures") or []):
            if not isinstance(m, Mapping):
                raise ScoreValidationError(f"Measure {i} must be a mapping, got {type(m).__name__}")
            missing = [k for k in ("number", "start_beat", "duration_beats") if k not in m]
            if missing:
                raise ScoreValidationError(f"Measure {i} is missing required field(s): {', '.join(missing)}")
            measures.append(
                MeasureInfo(
                    number=int(m["number"]),
                    start_beat=float(m["start_beat"]),
                    duration_beats=float(m["duration_beats"]),
                    time_sig_num=int(m.get("time_sig_num", 4)),
                    time_sig_den=int(m.get("time_sig_den", 4)),
                )
            )

        transpose = None
        if data.get("transpose"):
            t = data["transpose"]
            transpose = TransposeInfo(chromatic=int(t.get("chromatic", 0)), diatonic=int(t.get("diatonic", 0)))

        total_beats = data.get("total_beats")
        return cls(
            tempo=float(data.get("tempo", 120.0)),
            notes=notes,
            measures=measures,
            key_fifths=int(data.get("key_fifths", 0)),
            transpose=transpose,
            title=data.get("title"),
            total_beats=float(total_beats) if total_beats is not None else None,
        )


# ------------------------------------------------------------
# Performance side
# ------------------------------------------------------------

@dataclass
class PlayedNote:
    onset_beat: float
    midi_float: float
    midi_rounded: int
    confidence: float = 0.0


@dataclass
class PitchTrailPoint:
    beat: float
    midi_float: float


@dataclass
class NoteResult:
    target_midi: int
    target_beat: float
    status: NoteStatus
    played_midi: Optional[float] = None
    pitch_error_cents: Optional[float] = None
    timing_error_beats: Optional[float] = None

    @property
    def is_matched(self) -> bool:
        return self.status is not NoteStatus.MISSED


@dataclass
class IntervalProblem:
    from_note: str                          # e.g. "C4"
    to_note: str                            # e.g. "G4"
    direction: IntervalDirection
    avg_error_cents: float
    count: int
    from_midi: int = 0
    to_midi: int = 0


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


@dataclass
class PerformanceAnalysis:
    total_notes: int = 0
    notes_correct: int = 0
    notes_wrong_pitch: int = 0
    notes_missed: int = 0
    avg_pitch_error_cents: float = 0.0
    avg_timing_error_beats: float = 0.0
    pitch_tendency: PitchTendency = PitchTendency.ACCURATE
    timing_tendency: TimingTendency = TimingTendency.ON_TIME
    problem_intervals: List[IntervalProblem] = field(default_factory=list)
    feedback: List[str] = field(default_factory=list)
    overall_score: float = 0.0              # 0–100
    note_results: List[NoteResult] = field(default_factory=list)

    # Technique analysis (populated only when a pitch trail is supplied)
    pitch_stability: Optional[float] = None     # cents std-dev within held notes
    attack_quality: Optional[float] = None      # 0–1, higher settles faster
    breath_support: Optional[float] = None      # 0–1, higher drifts less
    endurance_delta: Optional[float] = None     # first-half minus second-half accuracy (points)
    technique_feedback: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-serializable representation for the UI layer.
        """
        return _plain(asdict(self))
