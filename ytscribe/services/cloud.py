import os
import time
from typing import Any, List, Optional
from openai import OpenAI, OpenAIError
from pydantic import BaseModel
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.exceptions import TranscriptionError
from ytscribe.models.transcript import TranscriptionOutcome, TranscriptSegment
from ytscribe.services.transcriber import normalize_segments
from ytscribe.utils.logger import logger

PROVIDER_BASE_URLS = {
    "groq": "https://api.groq.com/openai/v1",
    "openai": "https://api.openai.com/v1",
}

DEFAULT_MODELS = {
    "groq": "whisper-large-v3-turbo",
    "openai": "whisper-1",
}

REQUEST_TIMEOUT_SECONDS = 300.0


class CloudConfig(BaseModel):
    provider: str
    api_key: str
    model: Optional[str] = None

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider]


def get_cloud_config(settings: Settings = None) -> Optional[CloudConfig]:
    settings = settings or default_settings
    api_key = (settings.WHISPER_CLOUD_API_KEY or "").strip()
    if not api_key:
        return None
    provider = (settings.WHISPER_CLOUD_PROVIDER or "").strip().lower() or "groq"
    if provider not in PROVIDER_BASE_URLS:
        logger.warning(f'Invalid WHISPER_CLOUD_PROVIDER="{provider}". Use "groq" or "openai".')
        return None
    model = (settings.WHISPER_CLOUD_MODEL or "").strip() or None
    return CloudConfig(provider=provider, api_key=api_key, model=model)


def parse_cloud_response(data: Any) -> List[TranscriptSegment]:
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    data = data or {}
    if not isinstance(data, dict):
        raise TranscriptionError("Cloud Whisper API returned an unexpected response")
    raw_segments = data.get("segments") or []
    if raw_segments:
        try:
            return normalize_segments(raw_segments)
        except (KeyError, TypeError, ValueError) as e:
            raise TranscriptionError(f"Cloud Whisper API returned malformed segments: {e!r}") from e
    text = (data.get("text") or "").strip()
    if text:
        return [TranscriptSegment(text=text, start_ms=0, duration_ms=0)]
    raise TranscriptionError("Cloud Whisper API returned no segments or text")


class CloudTranscriber:
    """Whisper over an OpenAI-compatible transcription endpoint (Groq or OpenAI).

    Requests are never retried: every call is billed.
    """

    def __init__(self, config: CloudConfig, client: OpenAI = None):
        self.config = config
        self.client = client or OpenAI(
            api_key=config.api_key,
            base_url=PROVIDER_BASE_URLS[config.provider],
            max_retries=0,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    def transcribe(self, audio_path: str) -> TranscriptionOutcome:
        provider, model = self.config.provider, self.config.resolved_model
        logger.info(f"Transcribing with {provider} (model={model})...")
        started = time.monotonic()

        try:
            with open(audio_path, "rb") as f:
                response = self.client.audio.transcriptions.create(
                    file=(os.path.basename(audio_path), f, "audio/mpeg"),
                    model=model,
                    response_format="verbose_json",
                    timestamp_granularities=["segment"],
                )
        except OpenAIError as e:
            message = getattr(e, "message", None) or str(e)
            raise TranscriptionError(f"{provider} transcription failed: {message}") from e
        except OSError as e:
            raise TranscriptionError(f"Could not read audio file {audio_path}: {e}") from e

        segments = parse_cloud_response(response)
        logger.info(
            f"Cloud transcription done: {len(segments)} segments, provider={provider}, "
            f"model={model}, wall-clock={time.monotonic() - started:.1f}s"
        )
        return TranscriptionOutcome(
            segments=segments,
            requested_backend="cloud",
            used_backend=f"cloud:{provider}",
            used_device="remote",
        )


def build_cloud_transcriber(settings: Settings = None) -> Optional[CloudTranscriber]:
    config = get_cloud_config(settings)
    return CloudTranscriber(config) if config else None
