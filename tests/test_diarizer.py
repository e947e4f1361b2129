import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fakes import ScriptedRunner, fail, write_json
from ytscribe.config import Settings
from ytscribe.models.transcript import DiarizationSegment, TranscriptSegment
from ytscribe.services.diarizer import Diarizer, merge_speakers


def seg(start_ms, duration_ms, text="x"):
    return TranscriptSegment(text=text, start_ms=start_ms, duration_ms=duration_ms)


def turn(speaker, start, end):
    return DiarizationSegment(speaker=speaker, start=start, end=end)


def test_tie_goes_to_first_turn():
    merged = merge_speakers([seg(1000, 2000)], [turn("SPEAKER_00", 0.5, 2.0), turn("SPEAKER_01", 2.0, 4.0)])
    assert merged[0].speaker == "Speaker 1"


def test_largest_overlap_wins_and_labels_follow_first_use():
    turns = [turn("SPEAKER_07", 0.0, 1.0), turn("SPEAKER_03", 1.0, 5.0)]
    merged = merge_speakers([seg(800, 2000), seg(0, 900)], turns)
    # SPEAKER_03 is used first, so it becomes Speaker 1
    assert [s.speaker for s in merged] == ["Speaker 1", "Speaker 2"]


def test_no_overlap_leaves_segment_unlabelled():
    merged = merge_speakers([seg(10000, 1000, "late")], [turn("SPEAKER_00", 0.0, 2.0)])
    assert merged[0].speaker is None
    assert merged[0].text == "late"


def test_merge_without_turns():
    segments = [seg(0, 1000)]
    assert merge_speakers(segments, []) == segments


def make(tmp_path, runner, token="hf_secret"):
    return Diarizer(Settings(HF_TOKEN=token, PYTHON_BIN="python3"), runner=runner)


def test_enabled_only_with_token(tmp_path):
    assert make(tmp_path, ScriptedRunner([]), token="hf_x").enabled
    assert not make(tmp_path, ScriptedRunner([]), token="  ").enabled
    assert not make(tmp_path, ScriptedRunner([]), token=None).enabled


def test_diarize_labels_segments(tmp_path):
    out = str(tmp_path / "out")

    def step(cmd):
        assert "hf_secret" not in " ".join(cmd)
        write_json(cmd[4], [
            {"speaker": "SPEAKER_01", "start": 0.0, "end": 1.5},
            {"speaker": "SPEAKER_00", "start": 1.5, "end": 3.0},
        ])

    runner = ScriptedRunner([step])
    merged = make(tmp_path, runner).diarize([seg(0, 1000), seg(1600, 1000)], "a.mp3", out, timeout=10)
    assert [s.speaker for s in merged] == ["Speaker 1", "Speaker 2"]


def test_diarize_failure_returns_input_unchanged(tmp_path):
    segments = [seg(0, 1000, "keep me")]
    runner = ScriptedRunner([fail("pyannote crashed")])
    assert make(tmp_path, runner).diarize(segments, "a.mp3", str(tmp_path), timeout=10) == segments


def test_diarize_missing_output_returns_input_unchanged(tmp_path):
    segments = [seg(0, 1000)]
    runner = ScriptedRunner([lambda cmd: None])
    assert make(tmp_path, runner).diarize(segments, "a.mp3", str(tmp_path), timeout=10) == segments
