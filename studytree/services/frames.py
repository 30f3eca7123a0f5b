import asyncio
import logging
from pathlib import Path

from studytree.config import settings
from studytree.errors import ExternalProcessError
from studytree.media import Transcoder
from studytree.models import Slide
from studytree.services.storage import StorageService

logger = logging.getLogger(__name__)


class FrameExtractor:
    """Capture one still per timestamp, concurrently, skipping failed captures."""

    def __init__(
        self,
        transcoder: Transcoder | None = None,
        concurrency: int | None = None,
        resolution: str | None = None,
    ) -> None:
        self.transcoder = transcoder or Transcoder()
        self.concurrency = concurrency or settings.frame_capture_concurrency
        self.resolution = resolution or settings.frame_resolution

    async def extract(
        self, video_path: Path, lecture_id: str, timestamps: list[int]
    ) -> list[Slide]:
        logger.info("Extracting %d frames...", len(timestamps))
        frames_dir = StorageService.frames_dir(lecture_id)
        frames_dir.mkdir(parents=True, exist_ok=True)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _capture(index: int, timestamp: int) -> Slide | None:
            filename = f"slide_{index + 1:03d}.png"
            async with semaphore:
                try:
                    await asyncio.to_thread(
                        self.transcoder.capture_frame,
                        video_path,
                        timestamp,
                        frames_dir / filename,
                        self.resolution,
                    )
                except (ExternalProcessError, OSError) as exc:
                    logger.error("Error at %ss: %s", timestamp, exc)
                    return None
            return Slide(
                timestamp=int(timestamp),
                image=StorageService.frame_web_path(lecture_id, filename),
            )

        results = await asyncio.gather(
            *(_capture(i, t) for i, t in enumerate(timestamps))
        )
        slides = sorted(
            (s for s in results if s is not None), key=lambda s: s.timestamp
        )
        logger.info("Extracted %d frames successfully", len(slides))
        return slides
