"""Engine package initializer.

Re-exports the entry points of the pitch detector, the performance
analyzer and the tracker that connects them, so callers can write
``from trainer.engine import YinDetector, analyze_performance``.
"""

from __future__ import annotations

from .analyzer import analyze_performance, analyze_performance_with_trail, match_notes
from .config import (
    DEFAULT_CONFIG,
    AnalyzerConfig,
    DetectorConfig,
    InstrumentProfile,
    TechniqueConfig,
    TrackerConfig,
    TrainerConfig,
)
from .detectors import YinDetector, YinScratch, detect_pitch_yin, hz_to_midi, midi_to_hz, midi_to_name
from .models import (
    AudioFrame,
    IntervalDirection,
    IntervalProblem,
    MeasureInfo,
    NoteEvent,
    NoteResult,
    NoteStatus,
    PerformanceAnalysis,
    PitchEstimate,
    PitchTendency,
    PitchTrailPoint,
    PlayedNote,
    Score,
    ScoreValidationError,
    TimingTendency,
    TransposeInfo,
)
from .tracking import PerformanceTracker, load_take, track_audio, track_file
from .validation import validate_analysis, validate_score

__all__ = [
    'analyze_performance',
    'analyze_performance_with_trail',
    'match_notes',
    'DEFAULT_CONFIG',
    'AnalyzerConfig',
    'DetectorConfig',
    'InstrumentProfile',
    'TechniqueConfig',
    'TrackerConfig',
    'TrainerConfig',
    'YinDetector',
    'YinScratch',
    'detect_pitch_yin',
    'hz_to_midi',
    'midi_to_hz',
    'midi_to_name',
    'AudioFrame',
    'IntervalDirection',
    'IntervalProblem',
    'MeasureInfo',
    'NoteEvent',
    'NoteResult',
    'NoteStatus',
    'PerformanceAnalysis',
    'PitchEstimate',
    'PitchTendency',
    'PitchTrailPoint',
    'PlayedNote',
    'Score',
    'ScoreValidationError',
    'TimingTendency',
    'TransposeInfo',
    'PerformanceTracker',
    'track_audio',
    'track_file',
    'load_take',
    'validate_analysis',
    'validate_score',
]
