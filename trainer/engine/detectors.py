# trainer/engine/detectors.py
"""
YIN pitch detection for single-voice instrument practice.

The detector turns one audio frame into one ``PitchEstimate``.  Silence,
noise and malformed input never raise; they all collapse to
``PitchEstimate.silence()``.

The only state that survives a call is an optional caller-owned
``YinScratch`` holding the difference/CMND buffers, so a real-time caller
can avoid re-allocating them for every frame.
"""
from __future__ import annotations

from typing import Any, List, Optional, Tuple

import logging
import math

import librosa
import numpy as np

from .config import DetectorConfig, InstrumentProfile
from .models import AudioFrame, PitchEstimate

logger = logging.getLogger(__name__)

# RMS of the mean-centred frame below which we report silence
SILENCE_RMS = 0.02

# If even the global CMND minimum is above this, the frame is unpitched
UNVOICED_CEILING = 0.5

_PARABOLA_EPS = 1e-10


# --------------------------------------------------------------------------------------
# Utility
# --------------------------------------------------------------------------------------
def hz_to_midi(hz: float) -> float:
    if hz <= 0.0:
        return 0.0
    return 69.0 + 12.0 * float(np.log2(hz / 440.0))


def midi_to_hz(m: float) -> float:
    """Convert MIDI pitch to frequency in Hz."""
    return 440.0 * 2 ** ((float(m) - 69.0) / 12.0)


def midi_to_name(midi: int) -> str:
    """Sharp-spelled note name with octave, e.g. 70 -> 'A#4'."""
    return str(librosa.midi_to_note(int(midi), octave=True, unicode=False))


def _as_mono(samples: Any) -> Optional[np.ndarray]:
    try:
        y = np.asarray(samples, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError):
        return None
    if not np.all(np.isfinite(y)):
        return None
    return y


def _frame_audio(y: np.ndarray, frame_length: int, hop_length: int) -> np.ndarray:
    y = np.asarray(y, dtype=np.float64).reshape(-1)
    if len(y) <= 0:
        return np.zeros((0, frame_length), dtype=np.float64)
    if len(y) < frame_length:
        pad = frame_length - len(y)
        y = np.pad(y, (0, pad), mode="constant")

    n_frames = 1 + (len(y) - frame_length) // hop_length
    frames = np.lib.stride_tricks.as_strided(
        y,
        shape=(n_frames, frame_length),
        strides=(y.strides[0] * hop_length, y.strides[0]),
        writeable=False,
    )
    return frames


class YinScratch:
    """Reusable difference/CMND buffers. Grows on demand, never shrinks."""

    def __init__(self, capacity: int = 0):
        self.diff = np.zeros((capacity,), dtype=np.float64)
        self.cmnd = np.zeros((capacity,), dtype=np.float64)

    @property
    def capacity(self) -> int:
        return int(self.diff.shape[0])

    def buffers(self, size: int) -> Tuple[np.ndarray, np.ndarray]:
        if size > self.capacity:
            self.diff = np.zeros((size,), dtype=np.float64)
            self.cmnd = np.zeros((size,), dtype=np.float64)
        return self.diff[:size], self.cmnd[:size]


# --------------------------------------------------------------------------------------
# YIN steps
# --------------------------------------------------------------------------------------
def _difference(y: np.ndarray, max_lag: int, out: np.ndarray) -> None:
    """d(tau) = sum_j (y[j] - y[j + tau])^2 over the first half of the frame."""
    half = y.size // 2
    head = y[:half]
    out[0] = 0.0
    for tau in range(1, max_lag + 1):
        delta = head - y[tau:tau + half]
        out[tau] = float(np.dot(delta, delta))


def _cumulative_mean_normalized(diff: np.ndarray, max_lag: int, out: np.ndarray) -> None:
    out[0] = 1.0
    d = diff[1:max_lag + 1]
    running = np.cumsum(d)
    taus = np.arange(1, max_lag + 1, dtype=np.float64)
    out[1:max_lag + 1] = 1.0
    np.divide(d * taus, running, out=out[1:max_lag + 1], where=running > 0.0)


def _select_valley(cmnd: np.ndarray, min_lag: int, max_lag: int, threshold: float) -> Optional[int]:
    """
    First dip below ``threshold`` (walked forward to the bottom of its valley),
    otherwise the global minimum if it is still plausibly pitched.
    """
    window = cmnd[min_lag:max_lag + 1]
    below = np.flatnonzero(window < threshold)
    if below.size > 0:
        tau = min_lag + int(below[0])
        while tau + 1 <= max_lag and cmnd[tau + 1] < cmnd[tau]:
            tau += 1
        return tau

    tau = min_lag + int(np.argmin(window))
    if cmnd[tau] > UNVOICED_CEILING:
        return None
    return tau


def _parabolic_refine(cmnd: np.ndarray, tau: int, max_lag: int) -> float:
    if tau <= 0 or tau >= max_lag:
        return float(tau)
    alpha = cmnd[tau - 1]
    beta = cmnd[tau]
    gamma = cmnd[tau + 1]
    denom = 2.0 * (2.0 * beta - alpha - gamma)
    if abs(denom) <= _PARABOLA_EPS:
        return float(tau)
    return float(tau + (alpha - gamma) / denom)


def detect_pitch_yin(
    samples: Any,
    sample_rate: float,
    fmin: float = 80.0,
    fmax: float = 1200.0,
    threshold: float = 0.15,
    scratch: Optional[YinScratch] = None,
) -> PitchEstimate:
    """
    Estimate the fundamental of one mono frame with YIN.

    Returns ``PitchEstimate.silence()`` for an invalid fmin/fmax range,
    empty/short frames, a non-positive sample rate, quiet frames, a
    degenerate lag range or unpitched input.
    """
    y = _as_mono(samples)
    try:
        sr = float(sample_rate)
        lo, hi = float(fmin), float(fmax)
    except (TypeError, ValueError):
        return PitchEstimate.silence()
    if not (0.0 < lo < hi):
        logger.debug("Invalid frequency range fmin=%s, fmax=%s", fmin, fmax)
        return PitchEstimate.silence()
    if y is None or y.size < 2 or not math.isfinite(sr) or sr <= 0.0:
        return PitchEstimate.silence()

    # 1. Silence gate on the mean-centred signal
    centred = y - float(np.mean(y))
    rms = math.sqrt(float(np.dot(centred, centred)) / y.size)
    if rms < SILENCE_RMS:
        return PitchEstimate.silence()

    # 2. Lag range
    min_lag = int(math.ceil(sr / hi))
    max_lag = min(int(math.floor(sr / lo)), y.size // 2)
    if min_lag >= max_lag or max_lag < 2:
        logger.debug("Degenerate lag range [%d, %d] for %d samples at %.1f Hz", min_lag, max_lag, y.size, sr)
        return PitchEstimate.silence()

    # 3./4. Difference function + CMND
    if scratch is None:
        scratch = YinScratch()
    diff, cmnd = scratch.buffers(max_lag + 1)
    _difference(y, max_lag, diff)
    _cumulative_mean_normalized(diff, max_lag, cmnd)

    # 5. Valley selection
    tau = _select_valley(cmnd, min_lag, max_lag, threshold)
    if tau is None:
        return PitchEstimate.silence()

    # 6. Sub-sample refinement
    refined = _parabolic_refine(cmnd, tau, max_lag)
    if refined <= 0.0:
        return PitchEstimate.silence()

    # 7. Output
    hz = sr / refined
    confidence = 1.0 - min(float(cmnd[tau]), 1.0)
    return PitchEstimate(hz=float(hz), confidence=float(confidence), midi_float=hz_to_midi(hz))


# --------------------------------------------------------------------------------------
# Detector
# --------------------------------------------------------------------------------------
class YinDetector:
    """
    Monophonic YIN detector with a fixed frequency range and clarity threshold.

    ``detect`` handles one frame (the real-time path); ``track`` / ``predict``
    frame a longer signal and run ``detect`` per frame with a shared scratch.
    """

    def __init__(
        self,
        fmin: float = 80.0,
        fmax: float = 1200.0,
        threshold: float = 0.15,
        frame_length: int = 2048,
        hop_length: int = 512,
    ):
        if not (0.0 < float(fmin) < float(fmax)):
            raise ValueError(f"Invalid frequency range: fmin={fmin}, fmax={fmax}")
        if int(frame_length) < 2 or int(hop_length) < 1:
            raise ValueError(f"Invalid framing: frame_length={frame_length}, hop_length={hop_length}")
        self.fmin = float(fmin)
        self.fmax = float(fmax)
        self.threshold = float(threshold)
        self.frame_length = int(frame_length)
        self.hop_length = int(hop_length)

    @classmethod
    def from_config(cls, config: DetectorConfig) -> "YinDetector":
        return cls(
            fmin=config.fmin,
            fmax=config.fmax,
            threshold=config.threshold,
            frame_length=config.frame_length,
            hop_length=config.hop_length,
        )

    @classmethod
    def from_profile(cls, profile: InstrumentProfile, base: Optional[DetectorConfig] = None) -> "YinDetector":
        base = base or DetectorConfig()
        return cls(
            fmin=profile.fmin,
            fmax=profile.fmax,
            threshold=float(profile.special.get("threshold", base.threshold)),
            frame_length=int(profile.special.get("frame_length", base.frame_length)),
            hop_length=int(profile.special.get("hop_length", base.hop_length)),
        )

    def detect(self, samples: Any, sample_rate: float, scratch: Optional[YinScratch] = None) -> PitchEstimate:
        return detect_pitch_yin(
            samples,
            sample_rate,
            fmin=self.fmin,
            fmax=self.fmax,
            threshold=self.threshold,
            scratch=scratch,
        )

    def detect_frame(self, frame: AudioFrame, scratch: Optional[YinScratch] = None) -> PitchEstimate:
        return self.detect(frame.samples, frame.sample_rate, scratch=scratch)

    def track(
        self,
        audio: Any,
        sample_rate: float,
        frame_length: Optional[int] = None,
        hop_length: Optional[int] = None,
    ) -> Tuple[np.ndarray, List[PitchEstimate]]:
        """Per-frame estimates and their centre times (seconds)."""
        frame_length = int(frame_length or self.frame_length)
        hop_length = int(hop_length or self.hop_length)

        y = _as_mono(audio)
        try:
            sr = float(sample_rate)
        except (TypeError, ValueError):
            sr = float("nan")
        if y is None or y.size == 0 or not math.isfinite(sr) or sr <= 0.0:
            return np.zeros((0,), dtype=np.float64), []

        frames = _frame_audio(y, frame_length=frame_length, hop_length=hop_length)
        scratch = YinScratch(capacity=frame_length // 2 + 1)
        estimates = [self.detect(frame, sr, scratch=scratch) for frame in frames]
        times = (np.arange(len(frames)) * hop_length + frame_length / 2.0) / sr
        return times, estimates

    def predict(
        self,
        audio: Any,
        sample_rate: float,
        frame_length: Optional[int] = None,
        hop_length: Optional[int] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Frame-wise (f0, confidence) arrays; unvoiced frames are 0."""
        _, estimates = self.track(audio, sample_rate, frame_length=frame_length, hop_length=hop_length)
        f0 = np.array([e.hz for e in estimates], dtype=np.float64)
        conf = np.array([e.confidence for e in estimates], dtype=np.float64)
        return f0, conf

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(fmin={self.fmin:g}, fmax={self.fmax:g}, threshold={self.threshold:g})"
