from typing import Dict, Any, List, Optional, Mapping
from dataclasses import dataclass, field

from .utils_config import apply_dotted_overrides


# ------------------------------------------------------------
# Detector Config (YIN)
# ------------------------------------------------------------

@dataclass
class DetectorConfig:
    # Default range covers a Bb trumpet at concert pitch (~80 Hz to ~1200 Hz)
    fmin: float = 80.0
    fmax: float = 1200.0

    # Absolute CMND threshold for the first-valley search
    threshold: float = 0.15

    # Framing used when running over a longer signal (offline / file input)
    frame_length: int = 2048
    hop_length: int = 512


# ------------------------------------------------------------
# Analyzer Config (matching + scoring)
# ------------------------------------------------------------

@dataclass
class AnalyzerConfig:
    tolerance_cents: float = 50.0           # |cent error| <= this counts as correct
    timing_tolerance_beats: float = 0.25    # max |onset - start| for a match


@dataclass
class TechniqueConfig:
    settle_cents: float = 20.0              # attack is "settled" within this many cents
    min_trail_points: int = 3               # notes with fewer trail points are skipped
    long_note_beats: float = 2.0            # breath support only looks at notes this long
    breath_drift_scale_cents: float = 50.0  # drift that maps breath support to 0

    min_endurance_notes: int = 4

    # Feedback thresholds
    stability_threshold_cents: float = 15.0
    attack_threshold: float = 0.7
    breath_threshold: float = 0.7
    endurance_threshold: float = 15.0


# ------------------------------------------------------------
# Tracker Config (pitch estimates -> played notes / pitch trail)
# ------------------------------------------------------------

@dataclass
class TrackerConfig:
    min_confidence: float = 0.5             # frames at or below this are unvoiced
    min_onset_frames: int = 2               # new pitch must persist this many frames
    release_frames: int = 2                 # unvoiced frames before a repeat re-articulates
    median_window: int = 1                  # odd kernel for offline smoothing (1 = off)


# ------------------------------------------------------------
# Instrument profiles
# ------------------------------------------------------------

@dataclass
class InstrumentProfile:
    instrument: str
    fmin: float
    fmax: float
    special: Dict[str, Any] = field(default_factory=dict)


_profiles: List[InstrumentProfile] = [
    # Bb trumpet, concert pitch (E3 pedal region up to ~D6)
    InstrumentProfile(instrument="trumpet", fmin=80.0, fmax=1200.0),
    InstrumentProfile(instrument="flugelhorn", fmin=80.0, fmax=1000.0),
    InstrumentProfile(instrument="trombone", fmin=50.0, fmax=700.0),
    InstrumentProfile(instrument="french_horn", fmin=55.0, fmax=900.0),
    # Low brass needs longer frames to fit two periods
    InstrumentProfile(
        instrument="tuba",
        fmin=30.0,
        fmax=400.0,
        special={"frame_length": 4096},
    ),
    InstrumentProfile(instrument="flute", fmin=240.0, fmax=2400.0, special={"frame_length": 1024}),
    InstrumentProfile(instrument="clarinet", fmin=140.0, fmax=1600.0),
    InstrumentProfile(instrument="alto_saxophone", fmin=130.0, fmax=900.0),
    InstrumentProfile(instrument="tenor_saxophone", fmin=95.0, fmax=700.0),
    InstrumentProfile(instrument="violin", fmin=190.0, fmax=2600.0),
    InstrumentProfile(
        instrument="voice",
        fmin=70.0,
        fmax=1100.0,
        special={"threshold": 0.2},
    ),
]


# ------------------------------------------------------------
# Trainer Config
# ------------------------------------------------------------

@dataclass
class TrainerConfig:
    instrument: str = "trumpet"
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    technique: TechniqueConfig = field(default_factory=TechniqueConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    instrument_profiles: List[InstrumentProfile] = field(default_factory=lambda: list(_profiles))

    def get_profile(self, instrument_name: str) -> Optional[InstrumentProfile]:
        """
        Instrument profile lookup with simple aliasing.
        """
        name = instrument_name.lower().replace("-", "_").replace(" ", "_")

        aliases = {
            "bb_trumpet": "trumpet",
            "c_trumpet": "trumpet",
            "cornet": "trumpet",
            "horn": "french_horn",
            "alto_sax": "alto_saxophone",
            "tenor_sax": "tenor_saxophone",
            "vocals": "voice",
            "singing": "voice",
        }
        canonical = aliases.get(name, name)

        for p in self.instrument_profiles:
            if p.instrument.lower() == canonical:
                return p
        return None

    def detector_for_instrument(self) -> DetectorConfig:
        """Detector settings with the active instrument's range applied."""
        profile = self.get_profile(self.instrument)
        if profile is None:
            return self.detector
        return DetectorConfig(
            fmin=profile.fmin,
            fmax=profile.fmax,
            threshold=float(profile.special.get("threshold", self.detector.threshold)),
            frame_length=int(profile.special.get("frame_length", self.detector.frame_length)),
            hop_length=int(profile.special.get("hop_length", self.detector.hop_length)),
        )

    @classmethod
    def from_dict(cls, overrides: Mapping[str, Any]) -> "TrainerConfig":
        """Defaults with dotted-path overrides applied, e.g. ``{"analyzer.tolerance_cents": 30}``."""
        cfg = cls()
        apply_dotted_overrides(cfg, overrides)
        return cfg


DEFAULT_CONFIG = TrainerConfig()
