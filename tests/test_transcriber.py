import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from fakes import ScriptedRunner, fail, write_json
from ytscribe.config import Settings
from ytscribe.core.backend import BackendChoice
from ytscribe.core.exceptions import TranscriptionError
from ytscribe.services.transcriber import (
    LocalTranscriber,
    expected_json_path,
    mlx_model_candidates,
    normalize_segments,
)

WHISPER_JSON = {"segments": [
    {"start": 0.0, "end": 2.5, "text": " Hello there."},
    {"start": 2.5, "end": 4.0, "text": "General Kenobi. "},
]}


def choice(engine="openai", device="cpu", requested="auto"):
    return BackendChoice(requested=requested, engine=engine, device=device, model="base", timeout_seconds=30)


def writes_output(audio_path, output_dir, data=WHISPER_JSON):
    def step(cmd):
        write_json(expected_json_path(audio_path, output_dir), data)
    return step


def writes_junk_then_fails(output_dir):
    def step(cmd):
        write_json(os.path.join(output_dir, "partial.json"), {})
        fail("crashed")(cmd)
    return step


@pytest.fixture
def paths(tmp_path):
    audio = str(tmp_path / "audio" / "abc123def45.mp3")
    out = str(tmp_path / "out")
    return audio, out


def make(runner):
    return LocalTranscriber(Settings(PYTHON_BIN="/usr/bin/python3"), runner=runner)


def test_normalize_segments():
    segments = normalize_segments(WHISPER_JSON["segments"])
    assert [(s.text, s.start_ms, s.duration_ms) for s in segments] == [
        ("Hello there.", 0, 2500),
        ("General Kenobi.", 2500, 1500),
    ]


def test_mlx_candidates():
    assert mlx_model_candidates("base") == ["mlx-community/whisper-base-mlx", "mlx-community/whisper-base"]
    assert mlx_model_candidates("org/custom") == ["org/custom"]
    assert mlx_model_candidates("base", "my/override") == ["my/override"]


def test_generic_cpu_success(paths):
    audio, out = paths
    runner = ScriptedRunner([writes_output(audio, out)])
    outcome = make(runner).transcribe(audio, out, choice())
    assert outcome.used_backend == "openai"
    assert outcome.used_device == "cpu"
    assert outcome.fallback_reason is None
    assert len(outcome.segments) == 2
    cmd = runner.commands[0]
    assert cmd[:3] == ["/usr/bin/python3", "-m", "whisper"]
    assert "--device" not in cmd


def test_mps_disables_fp16(paths):
    audio, out = paths
    runner = ScriptedRunner([writes_output(audio, out)])
    make(runner).transcribe(audio, out, choice(device="mps"))
    cmd = runner.commands[0]
    assert cmd[cmd.index("--device") + 1] == "mps"
    assert cmd[cmd.index("--fp16") + 1] == "False"


def test_full_fallback_ladder(paths):
    audio, out = paths
    runner = ScriptedRunner([
        writes_junk_then_fails(out),        # mlx candidate 1
        fail("no such repo"),               # mlx candidate 2
        writes_output(audio, out),          # openai / cpu
    ])
    outcome = make(runner).transcribe(audio, out, choice(engine="mlx", device="mps", requested="mlx"))
    assert outcome.requested_backend == "mlx"
    assert outcome.used_backend == "openai"
    assert outcome.used_device == "cpu"
    assert "mlx" in outcome.fallback_reason.lower()
    assert not os.path.exists(os.path.join(out, "partial.json"))
    assert len(runner.commands) == 3


def test_mps_exit_zero_without_output_falls_back_to_cpu(paths):
    audio, out = paths
    runner = ScriptedRunner([lambda cmd: None, writes_output(audio, out)])
    outcome = make(runner).transcribe(audio, out, choice(device="mps"))
    assert outcome.used_device == "cpu"
    assert "produced no output" in outcome.fallback_reason
    assert "--device" not in runner.commands[1]


def test_second_mlx_candidate_wins(paths):
    audio, out = paths
    runner = ScriptedRunner([fail("404"), writes_output(audio, out)])
    outcome = make(runner).transcribe(audio, out, choice(engine="mlx", device="mps"))
    assert outcome.used_backend == "mlx"
    assert outcome.used_device == "apple_silicon"
    assert runner.commands[1][4] == "mlx-community/whisper-base"


def test_cpu_failure_is_final(paths):
    audio, out = paths
    runner = ScriptedRunner([fail("out of memory")])
    with pytest.raises(TranscriptionError):
        make(runner).transcribe(audio, out, choice())
    assert len(runner.commands) == 1


def test_fallback_failure_propagates(paths):
    audio, out = paths
    runner = ScriptedRunner([fail(), fail()])
    with pytest.raises(TranscriptionError):
        make(runner).transcribe(audio, out, choice(device="mps"))
