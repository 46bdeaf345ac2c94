"""
Application configuration management.
Centralizes all configuration settings for the batch transcription service.
"""

import os
import sys
import shutil
from pathlib import Path
from pydantic_settings import BaseSettings


def get_app_data_dir() -> Path:
    """Get persistent application data directory."""
    if getattr(sys, 'frozen', False):
        # Production: %APPDATA%/BatchTranscriber (or ~/BatchTranscriber)
        app_data = Path(os.getenv('APPDATA', os.path.expanduser('~'))) / "BatchTranscriber"
        app_data.mkdir(parents=True, exist_ok=True)
        return app_data
    # Development: Project root
    return Path(__file__).parent

class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Batch Transcriber"
    debug: bool = False

    # Paths
    base_dir: Path = get_app_data_dir()
    upload_dir: Path = base_dir / "uploads"
    download_dir: Path = base_dir / "downloads"
    export_dir: Path = base_dir / "exports"
    database_url: str = f"sqlite:///{base_dir / 'history.db'}"

    ffmpeg_path: str = shutil.which("ffmpeg") or os.getenv("FFMPEG_PATH", "")

    # Transcription (faster-whisper)
    whisper_model: str = "distil-large-v3"
    default_language: str | None = None  # None = auto-detect
    preload_model_on_startup: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 8081
    cors_origins: list[str] = ["*"]

    # Ingestion
    max_upload_size_mb: int = 500
    allowed_extensions: set[str] = {
        ".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg",
        ".mp4", ".mov", ".m4v", ".webm", ".mkv",
    }
    # Host suffixes accepted for remote URLs
    supported_platforms: list[str] = [
        "youtube.com", "youtu.be", "vimeo.com", "twitter.com", "x.com",
        "tiktok.com", "instagram.com", "facebook.com", "twitch.tv",
        "soundcloud.com", "reddit.com",
    ]

    # Batch session defaults
    batch_mode: str = "sequential"  # sequential | parallel
    max_concurrent_jobs: int = 2
    auto_retry_failed: bool = True
    max_retry_attempts: int = 1
    retry_position: str = "original"  # original | end
    auto_save_enabled: bool = False
    auto_save_format: str = "txt"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Ensure directories exist
settings.upload_dir.mkdir(parents=True, exist_ok=True)
settings.download_dir.mkdir(parents=True, exist_ok=True)
settings.export_dir.mkdir(parents=True, exist_ok=True)

# Add FFmpeg to PATH for yt-dlp and faster-whisper
if settings.ffmpeg_path:
    ffmpeg_dir = str(Path(settings.ffmpeg_path).parent)
    if ffmpeg_dir not in os.environ.get("PATH", ""):
        os.environ["PATH"] = os.environ.get("PATH", "") + os.pathsep + ffmpeg_dir
