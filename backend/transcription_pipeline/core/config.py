from pydantic import BaseModel, ConfigDict
from functools import lru_cache
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    # Managed-service credentials come from the environment (.env is not committed).
    # Leaving one empty makes the matching adapter fail loudly on first use.
    app_env: str = os.getenv("APP_ENV", "development")
    app_version: str = "1.0.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./pipeline.db")
    storage_dir: str = os.getenv("STORAGE_DIR", "storage")
    max_upload_size_mb: int = int(os.getenv("MAX_UPLOAD_MB", "1024"))
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    whisper_model: str = os.getenv("WHISPER_MODEL", "base")

    elevenlabs_api_key: str = os.getenv("ELEVENLABS_API_KEY", "")
    elevenlabs_model: str = os.getenv("ELEVENLABS_MODEL", "eleven_multilingual_v2")
    default_voice: str = os.getenv("DEFAULT_VOICE", "alloy")
    tts_chunk_size: int = int(os.getenv("TTS_CHUNK_SIZE", "1500"))

    cf_account_id: str = os.getenv("CF_ACCOUNT_ID", "")
    cf_api_token: str = os.getenv("CF_API_TOKEN", "")
    stream_max_duration_seconds: int = int(os.getenv("STREAM_MAX_DURATION_SECONDS", "3600"))

    search_default_limit: int = int(os.getenv("SEARCH_DEFAULT_LIMIT", "50"))

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_development(self) -> bool:
        return self.app_env in ("development", "test")

@lru_cache
def get_settings() -> Settings:
    return Settings()
