import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from ytscribe.core.exceptions import BusyError
from ytscribe.core.gate import TranscriptionGate
from ytscribe.utils.reaper import NullReaper, PsutilReaper, default_reaper, matches_helper


def test_second_holder_is_rejected():
    gate = TranscriptionGate()
    with gate.hold("first"):
        assert gate.is_busy()
        assert gate.holder == "first"
        with pytest.raises(BusyError):
            with gate.hold("second"):
                pass
    assert not gate.is_busy()


def test_released_after_exception():
    gate = TranscriptionGate()
    with pytest.raises(RuntimeError):
        with gate.hold("x"):
            raise RuntimeError("boom")
    assert not gate.is_busy()
    with gate.hold("y"):
        assert gate.holder == "y"


@pytest.mark.parametrize("cmdline,expected", [
    ("/usr/bin/python3 -m yt_dlp -x https://www.youtube.com/watch?v=abc", True),
    ("/usr/local/bin/yt-dlp -x --audio-format mp3", True),
    ("python3 -m whisper audio.mp3 --model base", True),
    ("python3 -c from mlx_whisper import transcribe", True),
    ("python3 -c from pyannote.audio import Pipeline", True),
    ("vim whisper_notes.txt", False),
    ("ytscribe https://youtu.be/abc", False),
])
def test_matches_helper(cmdline, expected):
    assert matches_helper(cmdline) is expected


def test_default_reaper():
    assert isinstance(default_reaper(False), NullReaper)
    assert isinstance(default_reaper(True), PsutilReaper)
    assert NullReaper().sweep() == 0


def test_sweep_never_raises(monkeypatch):
    reaper = PsutilReaper()

    def broken():
        raise RuntimeError("process table unavailable")

    monkeypatch.setattr(reaper, "find_orphans", broken)
    assert reaper.sweep() == 0
