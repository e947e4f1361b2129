import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from fakes import ScriptedRunner, fail, succeed
from ytscribe.config import Settings
from ytscribe.core.backend import (
    ACCELERATED,
    DEFAULT_TIMEOUT_SECONDS,
    GENERIC,
    BackendSelector,
    is_accelerated_platform,
    resolve_timeout_seconds,
)
from ytscribe.core.exceptions import ConfigurationError


def selector(backend="auto", device="auto", supported=True, probe=None, timeout_ms=None):
    runner = ScriptedRunner([] if probe is None else [probe])
    s = Settings(WHISPER_BACKEND=backend, WHISPER_DEVICE=device, WHISPER_TIMEOUT_MS=timeout_ms)
    return BackendSelector(s, runner=runner, platform_check=lambda: supported), runner


def test_platform_detection():
    assert is_accelerated_platform("darwin", "arm64")
    assert not is_accelerated_platform("darwin", "x86_64")
    assert not is_accelerated_platform("linux", "arm64")


def test_auto_prefers_accelerated_when_importable():
    sel, runner = selector(probe=succeed)
    assert sel.select_engine() == ACCELERATED
    assert len(runner.commands) == 1
    assert "mlx_whisper" in runner.commands[0][-1]


def test_auto_downgrades_silently_when_not_importable():
    sel, _ = selector(probe=fail())
    assert sel.select_engine() == GENERIC


def test_auto_on_unsupported_platform_skips_probe():
    sel, runner = selector(supported=False)
    assert sel.select_engine() == GENERIC
    assert runner.commands == []


def test_explicit_generic_never_probes():
    sel, runner = selector(backend="openai")
    assert sel.select_engine() == GENERIC
    assert runner.commands == []


def test_explicit_accelerated_unavailable_is_configuration_error():
    sel, _ = selector(backend="mlx", probe=fail())
    with pytest.raises(ConfigurationError):
        sel.select_engine()


def test_explicit_accelerated_on_other_platform_trusts_probe():
    sel, _ = selector(backend="MLX", supported=False, probe=succeed)
    assert sel.select_engine() == ACCELERATED


def test_invalid_backend_is_treated_as_auto():
    sel, _ = selector(backend="cuda", supported=False)
    assert sel.select_engine() == GENERIC


@pytest.mark.parametrize("device,supported,expected", [
    ("auto", True, "mps"),
    ("auto", False, "cpu"),
    ("cpu", True, "cpu"),
    ("mps", False, "mps"),
    ("gpu", True, "mps"),
    ("gpu", False, "cpu"),
])
def test_device_table(device, supported, expected):
    sel, _ = selector(device=device, supported=supported)
    assert sel.select_device() == expected


def test_timeout_parsing():
    assert resolve_timeout_seconds(None) == DEFAULT_TIMEOUT_SECONDS
    assert resolve_timeout_seconds("") == DEFAULT_TIMEOUT_SECONDS
    assert resolve_timeout_seconds("90000") == 90.0
    for raw in ["abc", "0", "-5", "inf", "nan"]:
        assert resolve_timeout_seconds(raw) == DEFAULT_TIMEOUT_SECONDS


def test_select_builds_full_choice():
    sel, _ = selector(supported=False, timeout_ms="1500")
    choice = sel.select()
    assert choice.requested == "auto"
    assert choice.engine == GENERIC
    assert choice.device == "cpu"
    assert choice.model == "base"
    assert choice.timeout_seconds == 1.5
