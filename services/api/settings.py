# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List, Optional
from pathlib import Path

class Settings(BaseSettings):
    # Remote store settings
    # Default to local SQLite; point at a PostgREST/Supabase backend via .env (STORAGE_BACKEND=rest)
    storage_backend: str = "sqlite"
    db_url: str = "sqlite:///data/observations.db"

    # Blobs written by the sqlite backend land here and are served under public_blob_base_url
    blob_dir: str = "data/blobs"
    public_blob_base_url: str = "http://localhost:8000/blobs"

    # ===== REST backend (PostgREST tables + storage bucket) =====
    # Example:
    # REST_URL=https://<project>.supabase.co
    rest_url: str = ""
    rest_api_key: str = ""
    rest_bucket: str = "project-images"
    rest_timeout: float = 30.0
    # Attempts for idempotent calls on transport errors / 429 / 5xx gateway answers
    rest_retry_attempts: int = 3

    # ===== Local-first cache =====
    cache_dir: str = "data/cache"
    # Optimistic photo previews are kept here until the upload completes
    preview_dir: str = "data/previews"

    # ===== Project passwords =====
    # Optional password that unlocks every project (admin override)
    universal_password: Optional[str] = Field(
        default=None,
        description="Password accepted for every project; leave empty to disable",
    )
    bcrypt_rounds: int = 12

    # ===== Sync windows (seconds) =====
    # Quiet period after a remote load before auto-caching resumes
    load_quiet_period: float = 2.0
    # Window after a successful sync during which auto-caching stays off
    sync_cooldown: float = 5.0

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:5173,http://localhost:8080"

    # Report / generation limits
    # Max number of rows that will be included in a single export (PDF/Excel/CSV).
    max_rows_per_report: int = 500
    image_fetch_timeout: float = 15.0

    # Autocomplete suggestions are recomputed at most this often per project
    suggestions_cache_ttl: float = 60.0

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(Path(__file__).resolve().parent / ".env"),
        extra="ignore",
    )

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached instance so the next get_settings() re-reads the environment."""
    global _settings_instance
    _settings_instance = None
