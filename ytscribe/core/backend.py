"""Transcription engine and device selection.

Both choices are plain lookup tables keyed by (override, platform facts) so the
whole fallback matrix can be checked without touching the machine.
"""
import math
import platform
import sys
from typing import Callable, Optional
from pydantic import BaseModel
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.exceptions import CommandError, ConfigurationError
from ytscribe.utils.logger import logger
from ytscribe.utils.process import Runner, run_command

ACCELERATED = "mlx"
GENERIC = "openai"
UNAVAILABLE = "unavailable"

ENGINE_OVERRIDES = ("auto", ACCELERATED, GENERIC)
DEVICE_OVERRIDES = ("auto", "cpu", "mps")

DEFAULT_TIMEOUT_SECONDS = 480.0
PROBE_TIMEOUT_SECONDS = 5.0
PROBE_SCRIPT = "import importlib.util,sys;sys.exit(0 if importlib.util.find_spec('mlx_whisper') else 1)"

# (override, accelerated platform, mlx_whisper importable) -> engine
ENGINE_TABLE = {
    ("auto", True, True): ACCELERATED,
    ("auto", True, False): GENERIC,
    ("auto", False, True): GENERIC,
    ("auto", False, False): GENERIC,
    (ACCELERATED, True, True): ACCELERATED,
    (ACCELERATED, False, True): ACCELERATED,
    (ACCELERATED, True, False): UNAVAILABLE,
    (ACCELERATED, False, False): UNAVAILABLE,
    (GENERIC, True, True): GENERIC,
    (GENERIC, True, False): GENERIC,
    (GENERIC, False, True): GENERIC,
    (GENERIC, False, False): GENERIC,
}

# (override, accelerated platform) -> device for the generic engine
DEVICE_TABLE = {
    ("auto", True): "mps",
    ("auto", False): "cpu",
    ("cpu", True): "cpu",
    ("cpu", False): "cpu",
    ("mps", True): "mps",
    ("mps", False): "mps",
}


class BackendChoice(BaseModel):
    requested: str
    engine: str
    device: str
    model: str
    timeout_seconds: float


def is_accelerated_platform(system: str = None, machine: str = None) -> bool:
    """Apple Silicon is the only place mlx_whisper runs."""
    system = system if system is not None else sys.platform
    machine = machine if machine is not None else platform.machine()
    return system == "darwin" and machine == "arm64"


def normalize_override(raw: Optional[str], allowed, setting_name: str) -> str:
    value = (raw or "auto").strip().lower()
    if value in allowed:
        return value
    logger.warning(
        f'Ignoring invalid {setting_name}="{raw}". Use one of: {", ".join(allowed)}.'
    )
    return "auto"


def resolve_timeout_seconds(raw: Optional[str]) -> float:
    if raw is None or not str(raw).strip():
        return DEFAULT_TIMEOUT_SECONDS
    try:
        ms = float(raw)
    except ValueError:
        ms = float("nan")
    if not math.isfinite(ms) or ms <= 0:
        logger.warning(f'Ignoring invalid WHISPER_TIMEOUT_MS="{raw}", using {DEFAULT_TIMEOUT_SECONDS:.0f}s.')
        return DEFAULT_TIMEOUT_SECONDS
    return ms / 1000.0


def probe_accelerated(python_bin: str, runner: Runner = run_command) -> bool:
    try:
        runner([python_bin, "-c", PROBE_SCRIPT], timeout=PROBE_TIMEOUT_SECONDS, label="mlx_whisper probe")
        return True
    except CommandError:
        return False


class BackendSelector:
    def __init__(self, settings: Settings = None, runner: Runner = run_command,
                 platform_check: Callable[[], bool] = is_accelerated_platform):
        self.settings = settings or default_settings
        self.runner = runner
        self.platform_check = platform_check

    def engine_override(self) -> str:
        return normalize_override(self.settings.WHISPER_BACKEND, ENGINE_OVERRIDES, "WHISPER_BACKEND")

    def select_engine(self, override: str = None) -> str:
        override = override or self.engine_override()
        supported = self.platform_check()
        needs_probe = override == ACCELERATED or (override == "auto" and supported)
        available = probe_accelerated(self.settings.PYTHON_BIN, self.runner) if needs_probe else False

        engine = ENGINE_TABLE[(override, supported, available)]
        if engine == UNAVAILABLE:
            raise ConfigurationError(
                f'WHISPER_BACKEND={ACCELERATED} was requested but Python module "mlx_whisper" '
                f"is not importable by {self.settings.PYTHON_BIN}."
            )
        if override == "auto" and supported and not available:
            logger.info('mlx_whisper is not installed; using OpenAI Whisper instead.')
        return engine

    def select_device(self) -> str:
        override = normalize_override(self.settings.WHISPER_DEVICE, DEVICE_OVERRIDES, "WHISPER_DEVICE")
        return DEVICE_TABLE[(override, self.platform_check())]

    def select(self) -> BackendChoice:
        requested = self.engine_override()
        return BackendChoice(
            requested=requested,
            engine=self.select_engine(requested),
            device=self.select_device(),
            model=self.settings.WHISPER_MODEL,
            timeout_seconds=resolve_timeout_seconds(self.settings.WHISPER_TIMEOUT_MS),
        )
