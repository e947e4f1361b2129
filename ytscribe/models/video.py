from pydantic import BaseModel
from ytscribe.models.transcript import PipelineResult

class VideoMetadata(BaseModel):
    video_id: str
    title: str
    author: str
    channel_url: str
    thumbnail_url: str

class VideoTranscriptResult(VideoMetadata):
    transcript: PipelineResult
