# trainer/engine/tracking.py
"""
Performance tracking: pitch estimates to played notes

Turns the detector's per-frame ``PitchEstimate`` stream into the two inputs
the analyzer consumes:

  - ``pitch_trail``: every voiced frame as (beat, fractional MIDI)
  - ``played_notes``: one ``PlayedNote`` per detected onset

A new note starts when a rounded MIDI pitch different from the last detected
one holds for ``min_onset_frames`` consecutive voiced frames.  The onset is
the beat of the first frame of that run.  ``release_frames`` unvoiced frames
forget the last pitch, so a re-tongued repeat of the same note is a new onset.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

import logging
import math
import warnings

import librosa
import numpy as np
import scipy.signal

from .analyzer import analyze_performance
from .config import AnalyzerConfig, TechniqueConfig, TrackerConfig
from .detectors import YinDetector, hz_to_midi
from .instrumentation import SessionLogger
from .models import PerformanceAnalysis, PitchEstimate, PitchTrailPoint, PlayedNote, Score
from .validation import assert_valid_score

logger = logging.getLogger(__name__)


def _round_midi(midi_float: float) -> int:
    # Half-up rounding (Python's round() would send 60.5 to 60)
    return int(math.floor(midi_float + 0.5))


class PerformanceTracker:
    def __init__(self, config: Optional[TrackerConfig] = None, session_logger: Optional[SessionLogger] = None):
        self.config = config or TrackerConfig()
        self.session_logger = session_logger
        self.played_notes: List[PlayedNote] = []
        self.pitch_trail: List[PitchTrailPoint] = []
        self.last_detected_midi: Optional[int] = None
        self._candidate: List[Tuple[float, PitchEstimate]] = []
        self._candidate_midi: Optional[int] = None
        self._unvoiced_run = 0

    def reset(self) -> None:
        self.played_notes = []
        self.pitch_trail = []
        self.last_detected_midi = None
        self._candidate = []
        self._candidate_midi = None
        self._unvoiced_run = 0

    def _is_voiced(self, estimate: PitchEstimate) -> bool:
        return estimate.hz > 0.0 and estimate.confidence > self.config.min_confidence

    def update(self, estimate: PitchEstimate, beat: float) -> Optional[PlayedNote]:
        """Feed one estimate at ``beat``; returns the PlayedNote if this frame completed an onset."""
        if not self._is_voiced(estimate):
            self._unvoiced_run += 1
            self._candidate = []
            self._candidate_midi = None
            if self._unvoiced_run >= self.config.release_frames:
                self.last_detected_midi = None
            return None

        self._unvoiced_run = 0
        self.pitch_trail.append(PitchTrailPoint(beat=float(beat), midi_float=estimate.midi_float))

        rounded = _round_midi(estimate.midi_float)
        if rounded == self.last_detected_midi:
            self._candidate = []
            self._candidate_midi = None
            return None

        if rounded != self._candidate_midi:
            self._candidate = []
            self._candidate_midi = rounded
        self._candidate.append((float(beat), estimate))

        if len(self._candidate) < max(1, self.config.min_onset_frames):
            return None

        onset_beat = self._candidate[0][0]
        note = PlayedNote(
            onset_beat=onset_beat,
            midi_float=float(np.mean([e.midi_float for _, e in self._candidate])),
            midi_rounded=rounded,
            confidence=float(np.mean([e.confidence for _, e in self._candidate])),
        )
        self.played_notes.append(note)
        self.last_detected_midi = rounded
        self._candidate = []
        self._candidate_midi = None

        logger.debug("Onset at beat %.3f: MIDI %d (%.2f)", note.onset_beat, note.midi_rounded, note.midi_float)
        if self.session_logger is not None:
            self.session_logger.log_event("tracker", "onset", {
                "onset_beat": note.onset_beat,
                "midi_float": note.midi_float,
                "midi_rounded": note.midi_rounded,
                "confidence": note.confidence,
            })
        return note

    def analyze(
        self,
        score: Score,
        config: Optional[AnalyzerConfig] = None,
        technique_config: Optional[TechniqueConfig] = None,
    ) -> PerformanceAnalysis:
        """Validate ``score`` and analyze what has been tracked so far (idempotent)."""
        assert_valid_score(score)
        analysis = analyze_performance(
            score,
            self.played_notes,
            pitch_trail=self.pitch_trail,
            config=config,
            technique_config=technique_config,
        )
        if self.session_logger is not None:
            self.session_logger.record_analysis(analysis)
        return analysis


def _smooth(estimates: List[PitchEstimate], window: int) -> List[PitchEstimate]:
    if window <= 1 or len(estimates) < window:
        return estimates
    if window % 2 == 0:
        window += 1
    f0 = scipy.signal.medfilt(np.array([e.hz for e in estimates], dtype=np.float64), kernel_size=window)
    smoothed: List[PitchEstimate] = []
    for hz, e in zip(f0, estimates):
        if hz <= 0.0 or e.is_silence:
            smoothed.append(PitchEstimate.silence())
        else:
            smoothed.append(PitchEstimate(hz=float(hz), confidence=e.confidence, midi_float=hz_to_midi(float(hz))))
    return smoothed


def track_audio(
    audio: Any,
    sample_rate: float,
    tempo_bpm: float,
    detector: Optional[YinDetector] = None,
    config: Optional[TrackerConfig] = None,
    start_beat: float = 0.0,
    session_logger: Optional[SessionLogger] = None,
) -> PerformanceTracker:
    """
    Run the detector over a recorded take and feed the tracker.

    Frame centre times are converted to beats with ``tempo_bpm``; the take is
    assumed to start at ``start_beat``.
    """
    if tempo_bpm <= 0:
        raise ValueError(f"tempo_bpm must be > 0, got {tempo_bpm}")

    detector = detector or YinDetector()
    tracker = PerformanceTracker(config=config, session_logger=session_logger)

    times, estimates = detector.track(audio, sample_rate)
    estimates = _smooth(estimates, tracker.config.median_window)

    beats_per_second = tempo_bpm / 60.0
    for t, estimate in zip(times, estimates):
        tracker.update(estimate, start_beat + float(t) * beats_per_second)

    if session_logger is not None:
        session_logger.log_event("tracker", "take", {
            "frames": len(estimates),
            "played_notes": len(tracker.played_notes),
            "detector": str(detector),
        })
    return tracker


def load_take(path: str, sample_rate: Optional[float] = None) -> Tuple[np.ndarray, float]:
    """Load a recorded take as mono float32 (``sample_rate=None`` keeps the file's rate)."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            audio, sr = librosa.load(path, sr=sample_rate, mono=True)
    except Exception as e:
        raise RuntimeError(f"Failed to load take {path}: {e}")

    if len(audio) == 0:
        raise ValueError(f"Take {path} is empty")
    logger.debug("Loaded %s: %d samples at %d Hz", path, len(audio), sr)
    return audio.astype(np.float32), float(sr)


def track_file(
    path: str,
    tempo_bpm: float,
    detector: Optional[YinDetector] = None,
    config: Optional[TrackerConfig] = None,
    start_beat: float = 0.0,
    session_logger: Optional[SessionLogger] = None,
) -> PerformanceTracker:
    """``track_audio`` over an audio file on disk."""
    audio, sr = load_take(path)
    if session_logger is not None:
        session_logger.log_event("tracker", "load", {"path": str(path), "sample_rate": sr, "samples": len(audio)})
    return track_audio(
        audio,
        sr,
        tempo_bpm,
        detector=detector,
        config=config,
        start_beat=start_beat,
        session_logger=session_logger,
    )
