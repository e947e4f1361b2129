import glob
import os
from typing import List
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.exceptions import AudioDownloadError, CommandError, CommandTimeoutError
from ytscribe.providers.youtube import watch_url
from ytscribe.utils.logger import logger
from ytscribe.utils.process import Runner, run_command

class AudioAcquirer:
    """Downloads a video's audio track to ``<scratch>/audio/<video_id>.mp3`` with yt-dlp."""

    def __init__(self, settings: Settings = None, runner: Runner = run_command):
        self.settings = settings or default_settings
        self.runner = runner

    @property
    def audio_dir(self) -> str:
        return os.path.join(self.settings.SCRATCH_DIR, "audio")

    def audio_path(self, video_id: str) -> str:
        return os.path.join(self.audio_dir, f"{video_id}.mp3")

    def ytdlp_command(self) -> List[str]:
        if self.settings.YTDLP_PATH:
            return [self.settings.YTDLP_PATH]
        return [self.settings.PYTHON_BIN, "-m", "yt_dlp"]

    def build_command(self, video_id: str) -> List[str]:
        return self.ytdlp_command() + [
            "-x",
            "--audio-format", "mp3",
            "--audio-quality", "5",
            "-o", os.path.join(self.audio_dir, f"{video_id}.%(ext)s"),
            "--no-playlist",
            watch_url(video_id),
        ]

    def download(self, video_id: str) -> str:
        os.makedirs(self.audio_dir, exist_ok=True)
        logger.info(f"Downloading audio for {video_id}...")
        try:
            result = self.runner(
                self.build_command(video_id),
                timeout=self.settings.AUDIO_DOWNLOAD_TIMEOUT,
                label="yt-dlp",
            )
        except CommandTimeoutError:
            raise
        except CommandError as e:
            raise AudioDownloadError(f"Audio download failed for video {video_id}: {e}") from e

        if result.stderr:
            logger.debug(f"yt-dlp stderr: {result.stderr[:500]}")

        path = self.audio_path(video_id)
        # yt-dlp can exit 0 without producing the file (e.g. geo-blocked formats)
        if not os.path.isfile(path):
            raise AudioDownloadError(f"yt-dlp finished but produced no audio file for video {video_id} (expected {path})")
        return path

    def cleanup(self, video_id: str) -> None:
        for path in glob.glob(os.path.join(glob.escape(self.audio_dir), f"{glob.escape(video_id)}.*")):
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")
