import logging
from pathlib import Path
from typing import Any

import yt_dlp

from studytree.config import settings
from studytree.errors import ExternalProcessError

logger = logging.getLogger(__name__)


class MediaFetcher:
    """Download a remote lecture video to a local file with yt-dlp."""

    def __init__(self, video_format: str | None = None) -> None:
        self.video_format = video_format or settings.ytdlp_format

    def fetch(self, url: str, destination: Path) -> Path:
        """Download *url* to *destination* (an ``.mp4`` path hint).

        Blocking; call from a worker thread.  Returns the file actually
        written, which may differ in extension when the merge format differs.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        opts: dict[str, Any] = {
            "format": self.video_format,
            "outtmpl": str(destination),
            "merge_output_format": "mp4",
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
        }
        logger.info("Downloading video with yt-dlp: %s", url)
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                ydl.download([url])
        except yt_dlp.utils.DownloadError as exc:
            logger.error("yt-dlp download error: %s", exc)
            raise ExternalProcessError(f"yt-dlp failed: {exc}") from exc

        if destination.exists():
            logger.info("Video downloaded successfully: %s", destination)
            return destination

        candidates = sorted(destination.parent.glob(f"{destination.stem}.*"))
        if not candidates:
            raise ExternalProcessError(f"Downloaded file not found: {destination}")
        logger.info("Video downloaded successfully: %s", candidates[0])
        return candidates[0]
