import json
import os

import numpy as np
import pytest

from trainer.engine.config import TrackerConfig
from trainer.engine.detectors import YinDetector, hz_to_midi, midi_to_hz
from trainer.engine.instrumentation import SessionLogger
from trainer.engine.models import NoteStatus, PitchEstimate, ScoreValidationError
from trainer.engine.tracking import PerformanceTracker, load_take, track_audio, track_file
from trainer.tests.audio_utils import generate_melody, generate_silence, make_score

SR = 44100


def est(midi_float, confidence=0.9):
    hz = midi_to_hz(midi_float)
    return PitchEstimate(hz=hz, confidence=confidence, midi_float=hz_to_midi(hz))


def feed(tracker, frames, start=0.0, step=0.1):
    for i, e in enumerate(frames):
        tracker.update(e, start + i * step)


class TestPerformanceTracker:
    @pytest.fixture
    def tracker(self):
        return PerformanceTracker()

    def test_onset_needs_consecutive_frames(self, tracker):
        assert tracker.update(est(60.1), 0.0) is None
        note = tracker.update(est(59.9), 0.1)

        assert note is not None
        assert note.onset_beat == 0.0
        assert note.midi_rounded == 60
        assert note.midi_float == pytest.approx(60.0)
        assert note.confidence == pytest.approx(0.9)
        assert tracker.last_detected_midi == 60

    def test_held_note_is_one_onset(self, tracker):
        feed(tracker, [est(60.0)] * 10)
        assert len(tracker.played_notes) == 1
        assert len(tracker.pitch_trail) == 10

    def test_pitch_change_is_new_onset(self, tracker):
        feed(tracker, [est(60.0)] * 3 + [est(62.0)] * 3)
        assert [n.midi_rounded for n in tracker.played_notes] == [60, 62]
        assert tracker.played_notes[1].onset_beat == pytest.approx(0.3)

    def test_confidence_gate_is_strict(self, tracker):
        feed(tracker, [est(60.0, confidence=0.5)] * 5)
        assert tracker.played_notes == []
        assert tracker.pitch_trail == []

        feed(tracker, [est(60.0, confidence=0.51)] * 5)
        assert [n.midi_rounded for n in tracker.played_notes] == [60]
        assert len(tracker.pitch_trail) == 5

    def test_single_frame_blip_ignored(self, tracker):
        feed(tracker, [est(60.0)] * 3 + [est(64.0)] + [est(60.0)] * 3)
        assert [n.midi_rounded for n in tracker.played_notes] == [60]
        # the blip is still part of the trail
        assert len(tracker.pitch_trail) == 7

    def test_short_gap_does_not_rearticulate(self, tracker):
        feed(tracker, [est(60.0)] * 3 + [PitchEstimate.silence()] + [est(60.0)] * 3)
        assert len(tracker.played_notes) == 1

    def test_release_allows_repeat(self, tracker):
        silence = PitchEstimate.silence()
        feed(tracker, [est(60.0)] * 3 + [silence, silence] + [est(60.0)] * 3)
        assert [n.midi_rounded for n in tracker.played_notes] == [60, 60]
        assert tracker.played_notes[1].onset_beat == pytest.approx(0.5)

    def test_low_confidence_is_unvoiced(self, tracker):
        feed(tracker, [est(60.0, confidence=0.3)] * 5)
        assert tracker.played_notes == []
        assert tracker.pitch_trail == []

    def test_half_up_rounding(self, tracker):
        e = PitchEstimate(hz=midi_to_hz(60.5), confidence=0.9, midi_float=60.5)
        feed(tracker, [e, e])
        assert tracker.played_notes[0].midi_rounded == 61

    def test_single_frame_onsets(self):
        tracker = PerformanceTracker(TrackerConfig(min_onset_frames=1))
        feed(tracker, [est(60.0), est(62.0), est(64.0)])
        assert [n.midi_rounded for n in tracker.played_notes] == [60, 62, 64]

    def test_reset(self, tracker):
        feed(tracker, [est(60.0)] * 3)
        tracker.reset()
        assert tracker.played_notes == []
        assert tracker.pitch_trail == []
        assert tracker.last_detected_midi is None

    def test_analyze(self, tracker):
        feed(tracker, [est(60.0)] * 5 + [est(62.0)] * 5, step=0.2)
        score = make_score([(0.0, 1.0, 60), (1.0, 1.0, 62)])
        first = tracker.analyze(score)
        second = tracker.analyze(score)

        assert [r.status for r in first.note_results] == [NoteStatus.CORRECT, NoteStatus.CORRECT]
        assert first.pitch_stability == pytest.approx(0.0, abs=1e-6)
        assert first.to_dict() == second.to_dict()

    def test_analyze_rejects_invalid_score(self, tracker):
        score = make_score([(0.0, 0.0, 60)])
        with pytest.raises(ScoreValidationError):
            tracker.analyze(score)

    def test_session_events(self, tmp_path):
        session = SessionLogger(base_dir=str(tmp_path), run_name="take1")
        tracker = PerformanceTracker(session_logger=session)
        feed(tracker, [est(60.0)] * 3)
        tracker.analyze(make_score([(0.0, 1.0, 60)]))

        with open(os.path.join(session.run_dir, "events.jsonl"), encoding="utf-8") as f:
            events = [json.loads(line) for line in f]
        kinds = [(e["stage"], e["event"]) for e in events]
        assert ("tracker", "onset") in kinds
        assert kinds[-1] == ("analyzer", "analysis")
        assert session.summary["analysis"]["notes_correct"] == 1


class TestTrackAudio:
    def test_melody(self):
        # 0.5 s notes with 0.1 s gaps at 120 BPM: onsets every 1.2 beats
        audio = generate_melody([60, 62, 64], note_sec=0.5, sr=SR, gap_sec=0.1)
        tracker = track_audio(audio, SR, tempo_bpm=120.0)

        assert [n.midi_rounded for n in tracker.played_notes] == [60, 62, 64]
        for i, note in enumerate(tracker.played_notes):
            assert abs(note.onset_beat - 1.2 * i) < 0.15

        score = make_score([(0.0, 1.0, 60), (1.2, 1.0, 62), (2.4, 1.0, 64)])
        analysis = tracker.analyze(score)
        assert analysis.notes_correct == 3

    def test_start_beat_offset(self):
        audio = generate_melody([67], note_sec=0.5, sr=SR)
        tracker = track_audio(audio, SR, tempo_bpm=60.0, start_beat=4.0)
        assert len(tracker.played_notes) == 1
        assert tracker.played_notes[0].onset_beat >= 4.0

    def test_median_smoothing(self):
        audio = generate_melody([60, 65], note_sec=0.5, sr=SR, gap_sec=0.1)
        tracker = track_audio(audio, SR, tempo_bpm=120.0, config=TrackerConfig(median_window=5))
        assert [n.midi_rounded for n in tracker.played_notes] == [60, 65]

    def test_custom_detector(self):
        audio = generate_melody([45], note_sec=0.5, sr=SR)  # A2, 110 Hz
        detector = YinDetector(fmin=50.0, fmax=700.0)
        tracker = track_audio(audio, SR, tempo_bpm=120.0, detector=detector)
        assert [n.midi_rounded for n in tracker.played_notes] == [45]

    def test_silence(self):
        tracker = track_audio(generate_silence(1.0, SR), SR, tempo_bpm=120.0)
        assert tracker.played_notes == []
        assert tracker.pitch_trail == []

    def test_invalid_tempo(self):
        with pytest.raises(ValueError):
            track_audio(generate_silence(0.1, SR), SR, tempo_bpm=0.0)


class TestTrackFile:
    def test_wav_take(self, tmp_path):
        import soundfile as sf

        audio = generate_melody([62, 65], note_sec=0.5, sr=22050, gap_sec=0.2)
        path = tmp_path / "take.wav"
        sf.write(path, audio, 22050)

        session = SessionLogger(base_dir=str(tmp_path), run_name="file")
        tracker = track_file(str(path), tempo_bpm=120.0, session_logger=session)

        assert [n.midi_rounded for n in tracker.played_notes] == [62, 65]
        with open(session.events_path, encoding="utf-8") as f:
            events = [json.loads(line)["event"] for line in f]
        assert events[1] == "load"
        assert events[-1] == "take"

    def test_load_take_keeps_rate(self, tmp_path):
        import soundfile as sf

        path = tmp_path / "a4.wav"
        sf.write(path, generate_melody([69], note_sec=0.2, sr=16000), 16000)
        audio, sr = load_take(str(path))
        assert sr == 16000.0
        assert audio.dtype == np.float32
        assert len(audio) == 3200

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuntimeError):
            load_take(str(tmp_path / "nope.wav"))
