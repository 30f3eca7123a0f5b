from pathlib import Path

import pytest

from studytree.config import settings
from studytree.database import init_db
from studytree.errors import ExternalProcessError
from studytree.store import LectureStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


class ScriptedClient:
    """Stand-in for CompletionClient that replays canned responses.

    Each entry is returned in order; an exception instance is raised instead.
    Every call is recorded in ``calls`` as ``(messages, max_tokens)``.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple[list[dict], int]] = []

    @property
    def prompts(self) -> list[str]:
        return [messages[-1]["content"] for messages, _ in self.calls]

    async def complete(self, messages, max_tokens=1500, *, temperature=None):
        self.calls.append((messages, max_tokens))
        if not self.responses:
            raise AssertionError("ScriptedClient ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeTranscoder:
    """Transcoder double: writes tiny files instead of running ffmpeg."""

    def __init__(self, duration=300.0, failing_timestamps=(), fail_audio=False):
        self.duration = duration
        self.failing_timestamps = set(failing_timestamps)
        self.fail_audio = fail_audio
        self.captured: list[float] = []

    def extract_audio(self, video_path: Path) -> Path:
        if self.fail_audio:
            raise ExternalProcessError("Audio extraction failed with code 1")
        audio_path = video_path.with_suffix(".wav")
        audio_path.write_bytes(b"RIFF")
        return audio_path

    def probe_duration(self, video_path: Path) -> float:
        return self.duration

    def capture_frame(self, video_path, timestamp, out_path, resolution=None):
        self.captured.append(timestamp)
        if timestamp in self.failing_timestamps:
            raise ExternalProcessError(f"Frame capture at {timestamp}s failed with code 1")
        out_path.write_bytes(b"png")
        return out_path


class FakeTranscriber:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error

    def transcribe(self, audio_path, language=None, model=None):
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def uploads_root(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setattr(settings, "uploads_root", str(root))
    return root


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "completion_api_key", "test-key")


@pytest.fixture
async def store(tmp_path) -> LectureStore:
    db_path = str(tmp_path / "lectures.db")
    await init_db(db_path)
    return LectureStore(db_path)
