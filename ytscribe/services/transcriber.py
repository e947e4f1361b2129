"""Local Whisper transcription with engine/device fallback."""
import json
import os
import shutil
import time
from typing import Any, Dict, Iterable, List, Optional
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.backend import ACCELERATED, GENERIC, BackendChoice
from ytscribe.core.exceptions import (
    CommandError,
    CommandTimeoutError,
    ConfigurationError,
    TranscriptError,
    TranscriptionError,
)
from ytscribe.models.transcript import TranscriptionOutcome, TranscriptSegment, to_ms
from ytscribe.utils.logger import logger
from ytscribe.utils.process import Runner, run_command

# Runs inside the configured interpreter so mlx_whisper never has to be importable here.
MLX_SCRIPT = (
    "import json, sys;"
    "from mlx_whisper import transcribe;"
    "audio, model_name, out_path = sys.argv[1:4];"
    "res = transcribe(audio, path_or_hf_repo=model_name);"
    "f = open(out_path, 'w', encoding='utf-8');"
    "json.dump({'segments': res.get('segments', [])}, f);"
    "f.close()"
)


def expected_json_path(audio_path: str, output_dir: str) -> str:
    stem = os.path.splitext(os.path.basename(audio_path))[0]
    return os.path.join(output_dir, f"{stem}.json")


def normalize_segments(raw_segments: Iterable[Dict[str, Any]]) -> List[TranscriptSegment]:
    """Whisper-style {start, end, text} seconds -> millisecond segments."""
    segments = []
    for seg in raw_segments:
        start = float(seg["start"])
        end = float(seg["end"])
        segments.append(TranscriptSegment(
            text=str(seg.get("text") or "").strip(),
            start_ms=max(to_ms(start), 0),
            duration_ms=max(to_ms(end - start), 0),
        ))
    return segments


def mlx_model_candidates(model: str, override: Optional[str] = None) -> List[str]:
    """Repository names to try for the mlx engine, most likely first.

    mlx-community publishes both ``whisper-<m>-mlx`` and ``whisper-<m>`` repos
    depending on the model size.
    """
    if override:
        return [override]
    if "/" in model:
        return [model]
    candidates = [f"mlx-community/whisper-{model}-mlx", f"mlx-community/whisper-{model}"]
    return list(dict.fromkeys(candidates))


def reset_output_dir(output_dir: str) -> None:
    shutil.rmtree(output_dir, ignore_errors=True)
    os.makedirs(output_dir, exist_ok=True)


class LocalTranscriber:
    def __init__(self, settings: Settings = None, runner: Runner = run_command):
        self.settings = settings or default_settings
        self.runner = runner

    def _ensure_output(self, audio_path: str, output_dir: str, label: str) -> None:
        # openai-whisper on MPS can exit 0 after NaNs and write nothing
        json_path = expected_json_path(audio_path, output_dir)
        if not os.path.isfile(json_path):
            raise TranscriptionError(f"{label} produced no output (expected {json_path})")

    def run_generic(self, audio_path: str, output_dir: str, model: str, device: str, timeout: float) -> None:
        label = f"OpenAI Whisper ({device})"
        cmd = [
            self.settings.PYTHON_BIN, "-m", "whisper", audio_path,
            "--model", model,
            "--output_format", "json",
            "--output_dir", output_dir,
        ]
        if device != "cpu":
            cmd += ["--device", device]
        if device == "mps":
            # FP16 on MPS yields NaNs/empty output on some machines
            cmd += ["--fp16", "False"]
        try:
            self.runner(cmd, timeout=timeout, label=label)
        except CommandTimeoutError:
            raise
        except CommandError as e:
            raise TranscriptionError(f"{label} failed: {e}") from e
        self._ensure_output(audio_path, output_dir, label)

    def run_accelerated(self, audio_path: str, output_dir: str, model: str, timeout: float) -> None:
        json_path = expected_json_path(audio_path, output_dir)
        candidates = mlx_model_candidates(model, self.settings.MLX_WHISPER_MODEL)
        last_error = ""
        for candidate in candidates:
            label = f"MLX Whisper ({candidate})"
            try:
                self.runner(
                    [self.settings.PYTHON_BIN, "-c", MLX_SCRIPT, audio_path, candidate, json_path],
                    timeout=timeout,
                    label=label,
                )
                self._ensure_output(audio_path, output_dir, label)
                return
            except TranscriptError as e:
                last_error = str(e)
                logger.info(f"mlx candidate failed ({candidate}): {last_error}")
        raise TranscriptionError(
            f"MLX backend failed for all model candidates: {', '.join(candidates)} ({last_error})"
        )

    def read_segments(self, audio_path: str, output_dir: str) -> List[TranscriptSegment]:
        json_path = expected_json_path(audio_path, output_dir)
        try:
            with open(json_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return normalize_segments(data.get("segments") or [])
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise TranscriptionError(f"Could not read Whisper output {json_path}: {e}") from e

    def transcribe(self, audio_path: str, output_dir: str, choice: BackendChoice) -> TranscriptionOutcome:
        """Run the chosen engine, falling back to OpenAI Whisper on CPU.

        mlx failure -> openai/cpu; openai on a non-cpu device -> openai/cpu;
        openai/cpu failure is final. The output directory is wiped before
        each fallback attempt.
        """
        os.makedirs(output_dir, exist_ok=True)
        logger.info(
            f'Transcribing with model "{choice.model}" (backend="{choice.engine}", '
            f"timeout={choice.timeout_seconds:.0f}s)..."
        )
        started = time.monotonic()

        used_backend = choice.engine
        used_device = "apple_silicon" if choice.engine == ACCELERATED else choice.device
        fallback_reason = None

        try:
            if choice.engine == ACCELERATED:
                self.run_accelerated(audio_path, output_dir, choice.model, choice.timeout_seconds)
            else:
                self.run_generic(audio_path, output_dir, choice.model, choice.device, choice.timeout_seconds)
        except ConfigurationError:
            raise
        except TranscriptError as e:
            if choice.engine == GENERIC and choice.device == "cpu":
                raise
            fallback_reason = str(e)
            logger.warning(f"{used_backend}/{used_device} failed ({fallback_reason}), falling back to OpenAI Whisper on CPU...")
            reset_output_dir(output_dir)
            self.run_generic(audio_path, output_dir, choice.model, "cpu", choice.timeout_seconds)
            used_backend, used_device = GENERIC, "cpu"

        segments = self.read_segments(audio_path, output_dir)
        wall_time = time.monotonic() - started
        logger.info(
            f"Transcription complete: {len(segments)} segments, model={choice.model}, "
            f"requested_backend={choice.requested}, used_backend={used_backend}, used_device={used_device}, "
            f"fallback_reason={fallback_reason or 'none'}, wall-clock={wall_time:.1f}s"
        )
        return TranscriptionOutcome(
            segments=segments,
            requested_backend=choice.requested,
            used_backend=used_backend,
            used_device=used_device,
            fallback_reason=fallback_reason,
        )
