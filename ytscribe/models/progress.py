from enum import Enum
from typing import Callable, Optional
from pydantic import BaseModel, Field

class Stage(str, Enum):
    CAPTIONS = "captions"
    DOWNLOADING = "downloading"
    TRANSCRIBING = "transcribing"
    DIARIZING = "diarizing"
    DONE = "done"

class ProgressUpdate(BaseModel):
    stage: Stage
    percent: int = Field(ge=0, le=100)
    status: str

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
