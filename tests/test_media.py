import subprocess
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yt_dlp

from studytree.errors import ExternalProcessError
from studytree.media import MediaFetcher, Transcoder
from studytree.services.transcription import WhisperService


# ---------------------------------------------------------------------------
# Transcoder
# ---------------------------------------------------------------------------


class TestTranscoder:
    def test_extract_audio_command(self, tmp_path):
        video = tmp_path / "talk.mp4"

        def fake_run(cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"RIFF")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with patch("studytree.media.transcoder.subprocess.run", side_effect=fake_run) as run:
            audio = Transcoder("ffmpeg", "ffprobe").extract_audio(video)

        assert audio == tmp_path / "talk.wav"
        cmd = run.call_args.args[0]
        assert cmd[:3] == ["ffmpeg", "-i", str(video)]
        assert "pcm_s16le" in cmd
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-ac") + 1] == "1"

    def test_nonzero_exit(self, tmp_path):
        error = subprocess.CalledProcessError(1, ["ffmpeg"], stderr="bad input")
        with patch("studytree.media.transcoder.subprocess.run", side_effect=error):
            with pytest.raises(ExternalProcessError, match="code 1"):
                Transcoder().extract_audio(tmp_path / "talk.mp4")

    def test_missing_binary(self, tmp_path):
        with patch(
            "studytree.media.transcoder.subprocess.run", side_effect=FileNotFoundError
        ):
            with pytest.raises(ExternalProcessError, match="not installed"):
                Transcoder("no-such-ffmpeg").extract_audio(tmp_path / "talk.mp4")

    def test_probe_duration(self, tmp_path):
        done = subprocess.CompletedProcess([], 0, '{"format": {"duration": "312.48"}}', "")
        with patch("studytree.media.transcoder.subprocess.run", return_value=done):
            assert Transcoder().probe_duration(tmp_path / "v.mp4") == 312.48

    def test_probe_without_duration(self, tmp_path):
        done = subprocess.CompletedProcess([], 0, '{"format": {}}', "")
        with patch("studytree.media.transcoder.subprocess.run", return_value=done):
            with pytest.raises(ExternalProcessError):
                Transcoder().probe_duration(tmp_path / "v.mp4")

    def test_capture_frame_command(self, tmp_path):
        out = tmp_path / "slide_001.png"

        def fake_run(cmd, **kwargs):
            out.write_bytes(b"png")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with patch("studytree.media.transcoder.subprocess.run", side_effect=fake_run) as run:
            Transcoder("ffmpeg").capture_frame(tmp_path / "v.mp4", 135, out, "640x360")

        cmd = run.call_args.args[0]
        assert cmd[1:3] == ["-ss", "135"]
        assert cmd[cmd.index("-frames:v") + 1] == "1"
        assert cmd[cmd.index("-vf") + 1] == "scale=640:360"

    def test_capture_frame_without_output(self, tmp_path):
        done = subprocess.CompletedProcess([], 0, "", "")
        with patch("studytree.media.transcoder.subprocess.run", return_value=done):
            with pytest.raises(ExternalProcessError):
                Transcoder().capture_frame(tmp_path / "v.mp4", 10, tmp_path / "x.png")


# ---------------------------------------------------------------------------
# MediaFetcher
# ---------------------------------------------------------------------------


class TestMediaFetcher:
    def _ydl(self, on_download):
        ydl = MagicMock()
        ydl.__enter__.return_value = ydl
        ydl.download.side_effect = on_download
        return ydl

    def test_downloads_to_destination(self, tmp_path):
        dest = tmp_path / "abc-youtube.mp4"
        ydl = self._ydl(lambda urls: dest.write_bytes(b"video"))

        with patch("studytree.media.fetcher.yt_dlp.YoutubeDL", return_value=ydl) as cls:
            assert MediaFetcher("best").fetch("https://youtu.be/abc", dest) == dest

        opts = cls.call_args.args[0]
        assert opts["outtmpl"] == str(dest)
        assert opts["format"] == "best"
        ydl.download.assert_called_once_with(["https://youtu.be/abc"])

    def test_other_extension_is_found(self, tmp_path):
        dest = tmp_path / "abc-youtube.mp4"
        actual = tmp_path / "abc-youtube.mkv"
        ydl = self._ydl(lambda urls: actual.write_bytes(b"video"))

        with patch("studytree.media.fetcher.yt_dlp.YoutubeDL", return_value=ydl):
            assert MediaFetcher().fetch("https://youtu.be/abc", dest) == actual

    def test_download_error(self, tmp_path):
        def fail(urls):
            raise yt_dlp.utils.DownloadError("Video unavailable")

        with patch("studytree.media.fetcher.yt_dlp.YoutubeDL", return_value=self._ydl(fail)):
            with pytest.raises(ExternalProcessError, match="Video unavailable"):
                MediaFetcher().fetch("https://youtu.be/gone", tmp_path / "x.mp4")

    def test_nothing_written(self, tmp_path):
        with patch(
            "studytree.media.fetcher.yt_dlp.YoutubeDL",
            return_value=self._ydl(lambda urls: None),
        ):
            with pytest.raises(ExternalProcessError, match="not found"):
                MediaFetcher().fetch("https://youtu.be/abc", tmp_path / "x.mp4")


# ---------------------------------------------------------------------------
# WhisperService
# ---------------------------------------------------------------------------


class TestWhisperService:
    @pytest.fixture(autouse=True)
    def _empty_cache(self, monkeypatch):
        monkeypatch.setattr(WhisperService, "_models", {})

    def _model(self, *texts):
        segments = [MagicMock(text=f" {t} ") for t in texts]
        model = MagicMock()
        model.transcribe.return_value = (iter(segments), MagicMock())
        return model

    def test_joins_segments(self, tmp_path):
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        model = self._model("Hello class.", "Today we talk.")

        with patch("studytree.services.transcription.WhisperModel", return_value=model) as cls:
            text = WhisperService().transcribe(audio, "en", "base")

        assert text == "Hello class. Today we talk."
        assert cls.call_args.args[0] == "base"
        assert model.transcribe.call_args.kwargs["language"] == "en"

    def test_model_loaded_once(self, tmp_path):
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        with patch("studytree.services.transcription.WhisperModel") as cls:
            cls.return_value.transcribe.side_effect = lambda *a, **k: (
                iter([MagicMock(text="words")]),
                None,
            )
            service = WhisperService()
            service.transcribe(audio, "en", "tiny")
            service.transcribe(audio, "en", "tiny")
        cls.assert_called_once()

    def test_concurrent_first_use_loads_once(self):
        barrier = threading.Barrier(4)

        def slow_load(*args, **kwargs):
            time.sleep(0.05)
            return MagicMock()

        def worker():
            barrier.wait()
            WhisperService._get_model("base")

        with patch(
            "studytree.services.transcription.WhisperModel", side_effect=slow_load
        ) as cls:
            threads = [threading.Thread(target=worker) for _ in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        cls.assert_called_once()

    def test_missing_audio(self, tmp_path):
        with pytest.raises(ExternalProcessError):
            WhisperService().transcribe(tmp_path / "none.wav")

    def test_empty_transcript(self, tmp_path):
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        with patch(
            "studytree.services.transcription.WhisperModel", return_value=self._model()
        ):
            with pytest.raises(ExternalProcessError, match="no transcript"):
                WhisperService().transcribe(audio, "en", "base")

    def test_engine_error(self, tmp_path):
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        model = MagicMock()
        model.transcribe.side_effect = RuntimeError("bad model")
        with patch("studytree.services.transcription.WhisperModel", return_value=model):
            with pytest.raises(ExternalProcessError, match="bad model"):
                WhisperService().transcribe(audio, "en", "base")
