import json
import logging
import subprocess
from pathlib import Path

from studytree.config import settings
from studytree.errors import ExternalProcessError

logger = logging.getLogger(__name__)


class Transcoder:
    """Thin wrapper over the ``ffmpeg`` / ``ffprobe`` command-line tools.

    All methods block; the pipeline calls them through ``asyncio.to_thread``.
    """

    def __init__(
        self, ffmpeg_binary: str | None = None, ffprobe_binary: str | None = None
    ) -> None:
        self.ffmpeg = ffmpeg_binary or settings.ffmpeg_binary
        self.ffprobe = ffprobe_binary or settings.ffprobe_binary

    def _run(self, cmd: list[str], what: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(cmd, capture_output=True, text=True, check=True)
        except FileNotFoundError as exc:
            raise ExternalProcessError(f"{cmd[0]} is not installed or not on PATH") from exc
        except subprocess.CalledProcessError as exc:
            logger.error("%s failed (exit %s): %s", what, exc.returncode, exc.stderr)
            raise ExternalProcessError(
                f"{what} failed with code {exc.returncode}"
            ) from exc

    def extract_audio(self, video_path: Path) -> Path:
        """Write a mono 16 kHz PCM WAV next to *video_path* and return its path."""
        audio_path = video_path.with_suffix(".wav")
        cmd = [
            self.ffmpeg,
            "-i", str(video_path),
            "-vn",
            "-acodec", "pcm_s16le",
            "-ar", "16000",
            "-ac", "1",
            "-y",
            str(audio_path),
        ]
        logger.info("Extracting audio from: %s", video_path)
        self._run(cmd, "Audio extraction")
        if not audio_path.exists():
            raise ExternalProcessError(f"Audio extraction produced no file: {audio_path}")
        return audio_path

    def probe_duration(self, video_path: Path) -> float:
        """Container duration in seconds, as reported by ffprobe."""
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(video_path),
        ]
        result = self._run(cmd, "Duration probe")
        try:
            return float(json.loads(result.stdout)["format"]["duration"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalProcessError(
                f"ffprobe returned no duration for {video_path}"
            ) from exc

    def capture_frame(
        self,
        video_path: Path,
        timestamp: float,
        out_path: Path,
        resolution: str | None = None,
    ) -> Path:
        """Grab exactly one frame at *timestamp* seconds, scaled to *resolution*."""
        width, height = (resolution or settings.frame_resolution).lower().split("x")
        cmd = [
            self.ffmpeg,
            "-ss", str(timestamp),
            "-i", str(video_path),
            "-frames:v", "1",
            "-vf", f"scale={width}:{height}",
            "-q:v", "2",
            "-y",
            str(out_path),
        ]
        self._run(cmd, f"Frame capture at {timestamp}s")
        if not out_path.exists():
            raise ExternalProcessError(f"No frame written at {timestamp}s")
        return out_path
