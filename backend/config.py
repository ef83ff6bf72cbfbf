from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@dataclass(frozen=True)
class AppConfig:
    environment: str = os.getenv("APP_ENV", "development")
    session_secret: str = os.getenv("SESSION_SECRET", "chenpi-secret-change-in-production")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


DEFAULT_APP_CONFIG = AppConfig()
