import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()


@dataclass
class Settings:
    """Environment-driven configuration with development defaults."""

    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "data"))
    catalog_file: str = field(default_factory=lambda: os.getenv("CATALOG_FILE", "questionnaires.json"))
    reports_dir: str = field(default_factory=lambda: os.getenv("REPORTS_DIR", "outputs/reports"))
    secret_key: str = field(default_factory=lambda: os.getenv("SECRET_KEY", "clinical-tree-dev-key"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "5000")))
    session_ttl_seconds: int = field(
        default_factory=lambda: int(os.getenv("SESSION_TTL_SECONDS", "3600"))
    )

    @property
    def catalog_path(self) -> Path:
        return Path(self.data_dir) / self.catalog_file


@lru_cache
def get_settings() -> Settings:
    return Settings()
