from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Completion service (Groq / any OpenAI-compatible endpoint)
    completion_api_key: str = ""
    completion_base_url: str | None = None
    completion_model: str = "llama-3.3-70b-versatile"
    completion_temperature: float = 0.7

    # Whisper
    whisper_model: str = "base"
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"
    transcription_language: str = "en"

    # Media tooling
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    ytdlp_format: str = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/mp4/best"
    frame_resolution: str = "1280x720"

    # Concurrency
    frame_capture_concurrency: int = 4
    max_concurrent_jobs: int = 2

    # Storage
    uploads_root: str = "uploads"
    database_path: str = "study_tree.db"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
