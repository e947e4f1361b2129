from abc import ABC, abstractmethod
from typing import List
from ytscribe.models.transcript import TranscriptSegment

class CaptionPersona(ABC):
    """One simulated client identity used to reach platform captions."""

    name: str = "persona"

    @abstractmethod
    def fetch(self, video_id: str) -> List[TranscriptSegment]:
        """Return caption segments, or raise a classified TranscriptError."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
