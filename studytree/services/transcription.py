import logging
import threading
from pathlib import Path

from faster_whisper import WhisperModel

from studytree.config import settings
from studytree.errors import ExternalProcessError

logger = logging.getLogger(__name__)


class WhisperService:
    """Lazy per-model cache around faster-whisper.

    A model is downloaded and loaded on the first transcription that asks
    for it, not at import time or server startup.
    """

    _models: dict[str, WhisperModel] = {}
    # transcriptions run in worker threads; one load per model name
    _models_lock = threading.Lock()

    @classmethod
    def _get_model(cls, name: str) -> WhisperModel:
        with cls._models_lock:
            if name not in cls._models:
                logger.info("Loading Whisper model: %s", name)
                cls._models[name] = WhisperModel(
                    name,
                    device=settings.whisper_device,
                    compute_type=settings.whisper_compute_type,
                )
            return cls._models[name]

    def transcribe(
        self,
        audio_path: Path,
        language: str | None = None,
        model: str | None = None,
    ) -> str:
        """Transcribe a WAV file to plain text.  Blocking, call from a worker thread.

        Raises :class:`ExternalProcessError` when the engine fails or hears nothing.
        """
        language = language or settings.transcription_language
        model_name = model or settings.whisper_model
        if not audio_path.exists():
            raise ExternalProcessError(f"Audio file not found: {audio_path}")

        logger.info("Transcribing with Whisper (%s, %s): %s", model_name, language, audio_path)
        try:
            segments, _info = self._get_model(model_name).transcribe(
                str(audio_path), language=language, beam_size=5
            )
            # segments is a lazy generator; joining forces evaluation
            text = " ".join(seg.text.strip() for seg in segments).strip()
        except Exception as exc:  # faster-whisper / ctranslate2 raise assorted errors
            logger.error("Whisper failed: %s", exc)
            raise ExternalProcessError(f"Whisper failed: {exc}") from exc

        if not text:
            raise ExternalProcessError("Whisper produced no transcript")
        logger.info("Transcription completed: %d characters", len(text))
        return text
