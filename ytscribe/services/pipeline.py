"""Transcript acquisition: platform captions first, then local/cloud Whisper."""
import os
import shutil
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, TimeoutError as FuturesTimeout, wait
from typing import Callable, List, Optional, TypeVar
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.backend import BackendSelector, resolve_timeout_seconds
from ytscribe.core.exceptions import (
    BotDetectionError,
    NoCaptionsError,
    PipelineTimeoutError,
    TranscriptError,
)
from ytscribe.core.gate import TranscriptionGate
from ytscribe.core.persona import CaptionPersona
from ytscribe.models.progress import ProgressCallback, ProgressUpdate, Stage
from ytscribe.models.transcript import PipelineResult, TranscriptSegment, TranscriptSource
from ytscribe.models.video import VideoTranscriptResult
from ytscribe.providers.youtube import YouTubeClient, default_personas, extract_video_id
from ytscribe.services.audio import AudioAcquirer
from ytscribe.services.cloud import CloudTranscriber, build_cloud_transcriber
from ytscribe.services.diarizer import Diarizer
from ytscribe.services.transcriber import LocalTranscriber
from ytscribe.utils.logger import logger
from ytscribe.utils.reaper import ProcessReaper, default_reaper

T = TypeVar("T")


def _report(progress: ProgressCallback, stage: Stage, percent: int, status: str) -> None:
    if progress:
        progress(ProgressUpdate(stage=stage, percent=percent, status=status))


class TranscriptPipeline:
    def __init__(
        self,
        settings: Settings = None,
        client: YouTubeClient = None,
        personas: List[CaptionPersona] = None,
        audio: AudioAcquirer = None,
        selector: BackendSelector = None,
        transcriber: LocalTranscriber = None,
        cloud: Optional[CloudTranscriber] = None,
        diarizer: Diarizer = None,
        gate: TranscriptionGate = None,
        reaper: ProcessReaper = None,
    ):
        self.settings = settings or default_settings
        self.client = client or YouTubeClient(settings=self.settings)
        self.personas = personas if personas is not None else default_personas(self.client)
        self.audio = audio or AudioAcquirer(self.settings)
        self.selector = selector or BackendSelector(self.settings)
        self.transcriber = transcriber or LocalTranscriber(self.settings)
        self.cloud = cloud if cloud is not None else build_cloud_transcriber(self.settings)
        self.diarizer = diarizer or Diarizer(self.settings)
        self.gate = gate or TranscriptionGate()
        self.reaper = reaper or default_reaper(self.settings.REAP_ORPHANS_ON_STARTUP)

    def startup(self) -> None:
        """Sweep helpers orphaned by a previous crash. Never fails."""
        killed = self.reaper.sweep()
        if killed:
            logger.info(f"Cleaned up {killed} orphaned helper process(es)")

    def is_busy(self) -> bool:
        return self.gate.is_busy()

    def output_dir(self, video_id: str) -> str:
        return os.path.join(self.settings.SCRATCH_DIR, "whisper-out", video_id)

    # -- captions ---------------------------------------------------------

    def fetch_captions(self, video_id: str) -> List[TranscriptSegment]:
        """Try each persona in order; raise the last persona's error if none succeeds.

        NoCaptionsError from the last persona is what sends the caller to
        transcription.
        """
        if not self.personas:
            raise NoCaptionsError(f"No caption clients configured for video {video_id}.")
        errors: List[TranscriptError] = []
        for persona in self.personas:
            try:
                segments = persona.fetch(video_id)
                logger.info(f"[{persona.name}] Got {len(segments)} caption segments for {video_id}")
                return segments
            except TranscriptError as e:
                logger.warning(f"[{persona.name}] {type(e).__name__}: {e}")
                errors.append(e)

        last = errors[-1]
        if all(isinstance(e, BotDetectionError) for e in errors):
            raise BotDetectionError(
                f"YouTube is blocking every client for video {video_id} with a sign-in/bot check. "
                "Try again later or from another network."
            ) from last
        raise last

    # -- transcription ----------------------------------------------------

    def transcribe_audio(self, video_id: str, progress: ProgressCallback = None) -> List[TranscriptSegment]:
        with self.gate.hold(video_id):
            output_dir = self.output_dir(video_id)
            try:
                _report(progress, Stage.DOWNLOADING, 10, "Downloading audio")
                audio_path = self.audio.download(video_id)

                _report(progress, Stage.TRANSCRIBING, 40, "Transcribing audio")
                if self.cloud is not None:
                    outcome = self.cloud.transcribe(audio_path)
                else:
                    choice = self.selector.select()
                    outcome = self.transcriber.transcribe(audio_path, output_dir, choice)
                segments = outcome.segments

                if self.diarizer.enabled:
                    _report(progress, Stage.DIARIZING, 80, "Identifying speakers")
                    segments = self.diarizer.diarize(
                        segments, audio_path, output_dir,
                        resolve_timeout_seconds(self.settings.WHISPER_TIMEOUT_MS),
                    )
                return segments
            finally:
                self.audio.cleanup(video_id)
                shutil.rmtree(output_dir, ignore_errors=True)

    def run(self, video_id: str, progress: ProgressCallback = None) -> PipelineResult:
        """Acquire a transcript without the global deadline."""
        _report(progress, Stage.CAPTIONS, 0, "Fetching captions")
        try:
            segments = self.fetch_captions(video_id)
            source = TranscriptSource.PLATFORM_CAPTIONS
        except NoCaptionsError:
            logger.info(f"No captions for {video_id}, falling back to local transcription")
            segments = self.transcribe_audio(video_id, progress)
            source = TranscriptSource.LOCAL_TRANSCRIPTION
        _report(progress, Stage.DONE, 100, "Done")
        return PipelineResult(segments=segments, source=source)

    # -- deadline-bounded entry points ------------------------------------

    def _timeout(self, timeout: Optional[float]) -> float:
        return self.settings.PIPELINE_TIMEOUT if timeout is None else timeout

    def acquire_transcript(self, video_id: str, progress: ProgressCallback = None,
                           timeout: float = None) -> PipelineResult:
        """Run the pipeline under the global wall-clock budget.

        On expiry the caller gets PipelineTimeoutError straight away. The worker
        is not cancelled: its subprocesses run until their own timeouts, and its
        cleanup and gate release happen when it finishes.
        """
        return self._with_deadline(lambda: self.run(video_id, progress), video_id, self._timeout(timeout))

    def _with_deadline(self, fn: Callable[[], T], video_id: str, timeout: float) -> T:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ytscribe")
        try:
            future = executor.submit(fn)
            return future.result(timeout=timeout)
        except FuturesTimeout:
            raise PipelineTimeoutError(f"Timed out after {timeout:.0f}s acquiring transcript for {video_id}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def fetch_video(self, url: str, progress: ProgressCallback = None,
                    timeout: float = None) -> VideoTranscriptResult:
        """Metadata and transcript for a video URL, fetched concurrently."""
        video_id = extract_video_id(url)
        timeout = self._timeout(timeout)
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="ytscribe")
        try:
            meta_future = executor.submit(self.client.fetch_metadata, video_id)
            transcript_future = executor.submit(self.run, video_id, progress)
            done, pending = wait([meta_future, transcript_future], timeout=timeout, return_when=FIRST_EXCEPTION)
            for future in (meta_future, transcript_future):
                if future in done and future.exception() is not None:
                    raise future.exception()
            if pending:
                raise PipelineTimeoutError(f"Timed out after {timeout:.0f}s fetching video {video_id}")
            metadata = meta_future.result()
            return VideoTranscriptResult(**metadata.model_dump(), transcript=transcript_future.result())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


_pipeline: Optional[TranscriptPipeline] = None
_pipeline_lock = threading.Lock()


def get_pipeline() -> TranscriptPipeline:
    """Process-wide pipeline; the orphan sweep runs on first use."""
    global _pipeline
    with _pipeline_lock:
        if _pipeline is None:
            _pipeline = TranscriptPipeline()
            _pipeline.startup()
        return _pipeline


def acquire_transcript(video_id: str, progress: ProgressCallback = None) -> PipelineResult:
    return get_pipeline().acquire_transcript(video_id, progress)


def is_busy() -> bool:
    return get_pipeline().is_busy()


def fetch_video(url: str, progress: ProgressCallback = None) -> VideoTranscriptResult:
    return get_pipeline().fetch_video(url, progress)
