import re
import json
import time
import requests
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse, parse_qs
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.exceptions import (
    BotDetectionError,
    CaptionFetchError,
    InvalidVideoUrlError,
    MetadataError,
    NoCaptionsError,
    RateLimitError,
    VideoUnavailableError,
)
from ytscribe.core.persona import CaptionPersona
from ytscribe.models.transcript import CaptionTrack, TranscriptSegment
from ytscribe.models.video import VideoMetadata
from ytscribe.providers.captions import parse_caption_xml
from ytscribe.utils.logger import logger
from ytscribe.utils.retry import (
    CAPTION_ATTEMPTS,
    CAPTION_DELAYS,
    PLAYER_ATTEMPTS,
    PLAYER_DELAYS,
    with_retry,
)

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
PLAYER_URL = "https://www.youtube.com/youtubei/v1/player?key={key}"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
OEMBED_URL = "https://www.youtube.com/oembed"
PLAYER_RESPONSE_RE = re.compile(r"var\s+ytInitialPlayerResponse\s*=\s*(\{.+?\});\s*</script>", re.DOTALL)

ANDROID_USER_AGENT = "com.google.android.youtube/19.35.36 (Linux; U; Android 14) gzip"
DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def watch_url(video_id: str) -> str:
    return WATCH_URL.format(video_id=video_id)


def extract_video_id(url: str) -> str:
    """Extract the 11-character video id from a watch/short/embed/youtu.be URL."""
    if not url or not isinstance(url, str):
        raise InvalidVideoUrlError("A YouTube URL is required")
    p = urlparse(url.strip())
    if not p.scheme or not p.netloc:
        raise InvalidVideoUrlError(f"Invalid URL: {url}")

    host = (p.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = p.path or ""

    video_id = None
    if host in ("youtube.com", "m.youtube.com"):
        if path == "/watch":
            video_id = (parse_qs(p.query).get("v") or [None])[0]
        else:
            for prefix in ("/embed/", "/v/", "/shorts/"):
                if path.startswith(prefix):
                    video_id = path[len(prefix):].split("/")[0]
                    break
    elif host == "youtu.be":
        video_id = path.lstrip("/").split("/")[0]

    if not video_id:
        raise InvalidVideoUrlError(
            f"Could not extract video ID from URL: {url}. Supported formats: "
            "youtube.com/watch?v=, youtu.be/, youtube.com/embed/, youtube.com/shorts/"
        )
    video_id = video_id.split("?")[0].split("&")[0]
    if not VIDEO_ID_RE.match(video_id):
        raise InvalidVideoUrlError(
            f'Extracted video ID "{video_id}" is invalid. YouTube video IDs are '
            "11 characters (letters, digits, - and _)."
        )
    return video_id


def select_caption_track(tracks: List[CaptionTrack]) -> CaptionTrack:
    """Manual English, then auto-generated English, then whatever comes first."""
    for vss_id in (".en", "a.en"):
        for track in tracks:
            if track.vss_id == vss_id:
                return track
    return tracks[0]


class YouTubeClient:
    """Thin HTTP layer shared by the metadata fetch and every caption persona."""

    def __init__(self, session: Optional[requests.Session] = None, settings: Settings = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.session = session or requests.Session()
        self.settings = settings or default_settings
        self.sleep = sleep

    def request(self, method: str, url: str, what: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.settings.HTTP_TIMEOUT)
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise CaptionFetchError(f"Request for {what} failed: {e}") from e
        if resp.status_code == 429:
            raise RateLimitError(f"YouTube rate-limited the {what}.")
        return resp

    def request_with_retry(self, method: str, url: str, what: str, attempts: int, delays, **kwargs) -> requests.Response:
        return with_retry(
            self.request, method, url, what,
            max_attempts=attempts, delays=delays, sleep=self.sleep, **kwargs
        )

    def fetch_metadata(self, video_id: str) -> VideoMetadata:
        """Fetch title/author/thumbnail through oEmbed (no API key needed)."""
        try:
            resp = self.session.get(
                OEMBED_URL,
                params={"url": watch_url(video_id), "format": "json"},
                timeout=self.settings.HTTP_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            raise MetadataError(f"Failed to fetch metadata for video {video_id}: {e}") from e

        if resp.status_code == 401:
            raise VideoUnavailableError(f"Video {video_id} is private or restricted - metadata unavailable.")
        if resp.status_code == 404:
            raise VideoUnavailableError(f"Video {video_id} not found - it may have been removed.")
        if not resp.ok:
            raise MetadataError(f"Failed to fetch metadata for video {video_id} (HTTP {resp.status_code}).")

        try:
            data = resp.json()
        except ValueError as e:
            raise MetadataError(f"Metadata response for video {video_id} was not valid JSON.") from e
        if not isinstance(data, dict):
            raise MetadataError(f"Unexpected metadata response for video {video_id}.")
        return VideoMetadata(
            video_id=video_id,
            title=data.get("title") or "Untitled",
            author=data.get("author_name") or "Unknown",
            channel_url=data.get("author_url") or "",
            thumbnail_url=data.get("thumbnail_url") or f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
        )


class PlayerResponsePersona(CaptionPersona):
    """Shared handling of a player response: classify, pick a track, download, parse."""

    def __init__(self, client: YouTubeClient):
        self.client = client

    def _section(self, parent: Dict[str, Any], key: str, video_id: str) -> Dict[str, Any]:
        value = parent.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise CaptionFetchError(f"[{self.name}] Unexpected player response for video {video_id}: {key} is not an object.")
        return value

    def captions_from_player(self, player: Any, video_id: str) -> List[TranscriptSegment]:
        if not isinstance(player, dict):
            raise CaptionFetchError(f"[{self.name}] Player response for video {video_id} is not a JSON object.")
        status = self._section(player, "playabilityStatus", video_id).get("status")
        if status == "LOGIN_REQUIRED":
            raise BotDetectionError(
                f"YouTube asked the {self.name} client to sign in for video {video_id} "
                "(bot check, private or age-restricted video)."
            )

        captions = self._section(player, "captions", video_id)
        raw_tracks = self._section(captions, "playerCaptionsTracklistRenderer", video_id).get("captionTracks") or []
        if not isinstance(raw_tracks, list):
            raise CaptionFetchError(f"[{self.name}] Unexpected caption track list for video {video_id}.")
        tracks = [
            CaptionTrack(vss_id=t.get("vssId") if isinstance(t.get("vssId"), str) else None, base_url=t["baseUrl"])
            for t in raw_tracks
            if isinstance(t, dict) and isinstance(t.get("baseUrl"), str) and t["baseUrl"]
        ]
        if not tracks:
            raise NoCaptionsError(f"Captions are disabled for video {video_id}.")

        track = select_caption_track(tracks)
        logger.info(f"[{self.name}] Fetching caption track {track.vss_id or '?'} for {video_id}...")
        resp = self.client.request_with_retry(
            "GET", track.base_url, f"caption download for video {video_id}",
            CAPTION_ATTEMPTS, CAPTION_DELAYS,
        )
        if not resp.ok:
            raise CaptionFetchError(f"Failed to fetch captions for video {video_id} (HTTP {resp.status_code}).")

        xml = resp.text
        if not xml.strip():
            raise NoCaptionsError(f"Captions are disabled for video {video_id}.")
        segments = parse_caption_xml(xml)
        if not segments:
            raise NoCaptionsError(f"Caption track for video {video_id} contained no text.")
        return segments


class InnerTubePersona(PlayerResponsePersona):
    """Calls the private player API with a given client identity."""

    def __init__(self, client: YouTubeClient, name: str, client_context: Dict[str, Any], user_agent: str):
        super().__init__(client)
        self.name = name
        self.client_context = client_context
        self.user_agent = user_agent

    def fetch(self, video_id: str) -> List[TranscriptSegment]:
        payload = {
            "context": {"client": self.client_context},
            "videoId": video_id,
            "contentCheckOk": True,
            "racyCheckOk": True,
        }
        resp = self.client.request_with_retry(
            "POST",
            PLAYER_URL.format(key=self.client.settings.INNERTUBE_API_KEY),
            f"player API ({self.name}) for video {video_id}",
            PLAYER_ATTEMPTS, PLAYER_DELAYS,
            json=payload,
            headers={"Content-Type": "application/json", "User-Agent": self.user_agent},
        )
        if not resp.ok:
            raise CaptionFetchError(f"Failed to fetch video info for {video_id} (HTTP {resp.status_code}).")
        try:
            player = resp.json()
        except ValueError as e:
            raise CaptionFetchError(f"Player API returned invalid JSON for video {video_id}.") from e
        return self.captions_from_player(player, video_id)


class WatchPagePersona(PlayerResponsePersona):
    """Scrapes ytInitialPlayerResponse out of the public watch page."""

    name = "watch_page"

    def fetch(self, video_id: str) -> List[TranscriptSegment]:
        resp = self.client.request_with_retry(
            "GET", watch_url(video_id), f"watch page for video {video_id}",
            PLAYER_ATTEMPTS, PLAYER_DELAYS,
            headers={"User-Agent": DESKTOP_USER_AGENT, "Accept-Language": "en-US,en;q=0.9"},
        )
        if not resp.ok:
            raise CaptionFetchError(f"Failed to fetch watch page for video {video_id} (HTTP {resp.status_code}).")

        m = PLAYER_RESPONSE_RE.search(resp.text)
        if not m:
            raise CaptionFetchError(f"Could not extract player response from watch page for video {video_id}.")
        try:
            player = json.loads(m.group(1))
        except json.JSONDecodeError as e:
            raise CaptionFetchError(
                f"Failed to parse player response JSON from watch page for video {video_id}."
            ) from e
        return self.captions_from_player(player, video_id)


def android_persona(client: YouTubeClient) -> InnerTubePersona:
    return InnerTubePersona(
        client,
        name="android",
        client_context={
            "hl": "en",
            "gl": "US",
            "clientName": "ANDROID",
            "clientVersion": "19.35.36",
            "androidSdkVersion": 34,
            "userAgent": ANDROID_USER_AGENT,
        },
        user_agent=ANDROID_USER_AGENT,
    )


def web_persona(client: YouTubeClient) -> InnerTubePersona:
    return InnerTubePersona(
        client,
        name="web",
        client_context={
            "hl": "en",
            "gl": "US",
            "clientName": "WEB",
            "clientVersion": "2.20240726.00.00",
            "userAgent": DESKTOP_USER_AGENT,
        },
        user_agent=DESKTOP_USER_AGENT,
    )


def default_personas(client: YouTubeClient) -> List[CaptionPersona]:
    """Mobile app, then browser, then page scrape."""
    return [android_persona(client), web_persona(client), WatchPagePersona(client)]
