"""
Remote media fetcher using yt-dlp.
Downloads the audio track of a single video from a supported platform.
"""

import asyncio
import uuid
import logging
from pathlib import Path
from typing import Optional, Callable

import yt_dlp

from config import settings
from engine.cancellation import CancellationToken
from engine.interfaces import FetchedMedia
from utils.exceptions import CancellationError, DownloadError

logger = logging.getLogger(__name__)


# Extractor name fragments mapped to display names; first match wins
PLATFORM_NAMES = [
    ("youtube", "YouTube"),
    ("vimeo", "Vimeo"),
    ("twitter", "Twitter"),
    ("tiktok", "TikTok"),
    ("instagram", "Instagram"),
    ("facebook", "Facebook"),
    ("twitch", "Twitch"),
    ("soundcloud", "SoundCloud"),
    ("reddit", "Reddit"),
]


def normalize_platform_name(extractor: Optional[str]) -> Optional[str]:
    """Map a yt-dlp extractor key (e.g. 'Youtube', 'twitter:spaces') to a display name."""
    if not extractor:
        return None
    lowered = extractor.lower()
    for fragment, name in PLATFORM_NAMES:
        if fragment in lowered:
            return name
    return extractor[:1].upper() + extractor[1:]


def classify_download_error(message: str) -> DownloadError:
    """Translate yt-dlp error output into a user-facing DownloadError."""
    if "Unsupported URL" in message or "is not a valid URL" in message:
        return DownloadError("This website is not supported for video download.")
    if "Private video" in message or "Video unavailable" in message:
        return DownloadError("Video unavailable: Video is private or unavailable")
    if "Sign in" in message or "confirm your age" in message or "age-restricted" in message.lower():
        return DownloadError("Video unavailable: Age-restricted or requires sign-in")
    if "geo-restrict" in message.lower() or "country" in message.lower():
        return DownloadError("Video unavailable: Not available in your region")
    return DownloadError(message.strip() or "Download failed")


class MediaFetcher:
    """Fetcher for remote URLs, backed by yt-dlp."""

    def __init__(self, download_dir: Optional[Path] = None):
        self.download_dir = Path(download_dir or settings.download_dir)

    def get_info(self, url: str) -> dict:
        """
        Get video metadata without downloading.

        Returns:
            Dict with title, duration, thumbnail, platform, etc.
        """
        ydl_opts = {
            'quiet': True,
            'no_warnings': True,
            'extract_flat': False,
            'noplaylist': True,  # Never download playlists
        }

        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as e:
            logger.error(f"Failed to get video info: {e}")
            raise classify_download_error(str(e))
        except Exception as e:
            logger.error(f"Failed to get video info: {e}")
            raise DownloadError(f"Could not fetch video info: {str(e)}")

        return {
            'id': info.get('id'),
            'title': info.get('title'),
            'duration': info.get('duration'),
            'thumbnail': info.get('thumbnail'),
            'uploader': info.get('uploader'),
            'platform': normalize_platform_name(info.get('extractor_key') or info.get('extractor')),
        }

    def download_audio(
        self,
        url: str,
        progress_callback: Optional[Callable[[float], None]] = None,
        token: Optional[CancellationToken] = None,
    ) -> FetchedMedia:
        """
        Download the audio track of `url` as mp3.

        Args:
            url: Single video URL
            progress_callback: Called with the downloaded fraction (0..1)
            token: Checked on every yt-dlp progress tick

        Returns:
            FetchedMedia pointing at the local file
        """
        # Unique prefix so concurrent downloads of same-titled media never collide
        file_id = str(uuid.uuid4())[:8]
        output_template = str(self.download_dir / f"{file_id}_%(title)s.%(ext)s")

        def progress_hook(d):
            if token is not None:
                token.raise_if_cancelled()
            if progress_callback is None:
                return
            if d['status'] == 'downloading':
                total = d.get('total_bytes') or d.get('total_bytes_estimate')
                downloaded = d.get('downloaded_bytes') or 0
                if total:
                    progress_callback(min(1.0, downloaded / total))
            elif d['status'] == 'finished':
                progress_callback(1.0)

        ydl_opts = {
            'outtmpl': output_template,
            'quiet': True,
            'no_warnings': True,
            'noplaylist': True,
            'format': 'bestaudio/best',
            'postprocessors': [{
                'key': 'FFmpegExtractAudio',
                'preferredcodec': 'mp3',
                'preferredquality': '192',
            }],
            'progress_hooks': [progress_hook],
        }
        if settings.ffmpeg_path:
            ydl_opts['ffmpeg_location'] = settings.ffmpeg_path

        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=True)
                filename = ydl.prepare_filename(info)
        except CancellationError:
            self._cleanup(file_id)
            raise
        except yt_dlp.utils.DownloadError as e:
            self._cleanup(file_id)
            if token is not None and token.is_cancelled:
                raise CancellationError()
            logger.error(f"Download failed: {e}")
            raise classify_download_error(str(e))
        except Exception as e:
            self._cleanup(file_id)
            if token is not None and token.is_cancelled:
                raise CancellationError()
            logger.error(f"Unexpected error during download: {e}")
            raise DownloadError(str(e))

        file_path = Path(filename).with_suffix('.mp3')
        if not file_path.exists():
            raise DownloadError("Could not extract audio: output file not found")

        return FetchedMedia(
            local_path=str(file_path.resolve()),
            title=info.get('title'),
            size_bytes=file_path.stat().st_size,
            metadata={
                'duration': info.get('duration'),
                'uploader': info.get('uploader'),
                'platform': normalize_platform_name(info.get('extractor_key') or info.get('extractor')),
                'source_url': url,
            },
        )

    async def fetch(
        self,
        url: str,
        on_progress: Callable[[float], None],
        token: CancellationToken,
    ) -> FetchedMedia:
        """Download in the default executor; progress is reported from that thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.download_audio, url, on_progress, token)

    def _cleanup(self, file_id: str) -> None:
        for partial in self.download_dir.glob(f"{file_id}_*"):
            try:
                partial.unlink()
            except OSError as e:
                logger.warning(f"Could not remove partial download {partial}: {e}")

