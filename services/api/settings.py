# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List
from pathlib import Path

class Settings(BaseSettings):
    # Storage settings
    # json (local files) or sqlite; override via .env (STORAGE_BACKEND=sqlite)
    storage_backend: str = "json"
    data_dir: str = "data"
    db_url: str = "sqlite:///data/grading.db"

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    # Email settings (corrector assignment notifications)
    notifications_enabled: bool = Field(
        default=False,
        description="When false, notifications are only logged",
    )
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "no-reply@grading.local"
    smtp_from_name: str = "Grading Service"

    # Logging
    log_level: str = "INFO"

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
