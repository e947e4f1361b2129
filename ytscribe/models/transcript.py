from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

def to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))

class TranscriptSource(str, Enum):
    PLATFORM_CAPTIONS = "platform_captions"
    LOCAL_TRANSCRIPTION = "local_transcription"

class TranscriptSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    start_ms: int = Field(ge=0)
    duration_ms: int = Field(ge=0)
    speaker: Optional[str] = None

class CaptionTrack(BaseModel):
    vss_id: Optional[str] = None
    base_url: str

class DiarizationSegment(BaseModel):
    speaker: str
    start: float
    end: float

class PipelineResult(BaseModel):
    segments: List[TranscriptSegment]
    source: TranscriptSource

class TranscriptionOutcome(BaseModel):
    segments: List[TranscriptSegment]
    requested_backend: str
    used_backend: str
    used_device: str
    fallback_reason: Optional[str] = None
