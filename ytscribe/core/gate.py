import threading
from contextlib import contextmanager
from typing import Iterator, Optional
from ytscribe.core.exceptions import BusyError
from ytscribe.utils.logger import logger

class TranscriptionGate:
    """Single-permit gate around local transcription.

    A second job fails fast with BusyError instead of queueing. The permit is
    released by the ``with`` block on every exit path.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[str] = None

    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @contextmanager
    def hold(self, video_id: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise BusyError(
                f"A transcription is already in progress ({self._holder}); try {video_id} again later."
            )
        self._holder = video_id
        logger.debug(f"Transcription slot acquired for {video_id}")
        try:
            yield
        finally:
            self._holder = None
            self._lock.release()
            logger.debug(f"Transcription slot released for {video_id}")
