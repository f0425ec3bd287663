from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    site_url: str = ""
    access_token: str = ""
    request_timeout: float = 30.0
    attachment_pacing_ms: int = 100

    data_dir: Path = BASE_DIR / "data"

    model_config = SettingsConfigDict(
        env_prefix="FORMSYNC_",
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def attachment_pacing_seconds(self) -> float:
        return max(self.attachment_pacing_ms, 0) / 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()
