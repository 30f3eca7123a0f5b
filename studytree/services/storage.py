import logging
import re
import time
from pathlib import Path

from studytree.config import settings

logger = logging.getLogger(__name__)

WEB_PREFIX = "/uploads"


class StorageService:
    """Layout of media files under ``uploads_root``.

    ::

        uploads/
            1718000000000-lecture.mp4     # uploaded video (+ .wav while processing)
            <lecture id>-youtube.mp4      # downloaded video
            frames_<lecture id>/slide_001.png
    """

    @staticmethod
    def root() -> Path:
        return Path(settings.uploads_root)

    @staticmethod
    def ensure_root() -> None:
        StorageService.root().mkdir(parents=True, exist_ok=True)

    @staticmethod
    def upload_path(original_filename: str) -> Path:
        """Destination for an uploaded file, prefixed with the epoch in ms."""
        name = Path(original_filename).name or "upload"
        return StorageService.root() / f"{int(time.time() * 1000)}-{name}"

    @staticmethod
    def download_path(lecture_id: str) -> Path:
        return StorageService.root() / f"{lecture_id}-youtube.mp4"

    @staticmethod
    def frames_dir(lecture_id: str) -> Path:
        return StorageService.root() / f"frames_{lecture_id}"

    @staticmethod
    def frame_web_path(lecture_id: str, filename: str) -> str:
        return f"{WEB_PREFIX}/frames_{lecture_id}/{filename}"

    @staticmethod
    def resolve_web_path(web_path: str, root: Path | None = None) -> Path:
        """Map a ``/uploads/...`` web path back to a file under the uploads root."""
        relative = web_path
        if relative.startswith(WEB_PREFIX + "/"):
            relative = relative[len(WEB_PREFIX) + 1 :]
        return (root or StorageService.root()) / relative.lstrip("/")

    @staticmethod
    def remove(*paths: Path) -> None:
        """Delete files, ignoring ones that are already gone."""
        for path in paths:
            try:
                if path.is_file():
                    path.unlink()
                    logger.info("Deleted file: %s", path)
            except OSError as exc:
                logger.warning("Failed to clean up %s: %s", path, exc)


def safe_title(title: str, limit: int = 50) -> str:
    """Filesystem-friendly version of a lecture title."""
    cleaned = re.sub(r"[^a-z0-9\s-]", "", title, flags=re.IGNORECASE)
    return re.sub(r"\s+", "_", cleaned).lower()[:limit]
