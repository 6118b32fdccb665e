from pydantic_settings import BaseSettings, SettingsConfigDict
import os

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    REDIS_URL: str = "redis://localhost:6379/0"
    RQ_QUEUE: str = "peaks"

    STORAGE_DIR: str = "./data"
    UPLOAD_DIR: str = "./data/uploads"

    FFMPEG_BIN: str = "ffmpeg"
    FFPROBE_BIN: str = "ffprobe"
    AUDIOWAVEFORM_BIN: str = "audiowaveform"

    # "pcm" (ffprobe + ffmpeg float32 decode) | "extrema" (audiowaveform min/max pairs)
    PEAKS_STRATEGY: str = "pcm"
    PEAKS_PER_SECOND: int = 100
    DECODE_SAMPLE_RATE: int = 8000
    PEAKS_EXTENSION: str = ".json"

    REENCODE_BITRATE_KBPS: int = 128
    REENCODE_SAMPLE_RATE: int = 44100

    TOOL_TIMEOUT_SECONDS: float = 120.0
    PROBE_MAX_OUTPUT: int = 1024 * 1024
    DECODE_MAX_OUTPUT: int = 50 * 1024 * 1024
    REENCODE_MAX_OUTPUT: int = 10 * 1024 * 1024

    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
    ALLOWED_UPLOAD_EXTENSIONS: list[str] = [".mp3"]

    REQUIRE_AUTH_FOR_PUBLIC_CONTENT: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
os.makedirs(settings.STORAGE_DIR, exist_ok=True)
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
