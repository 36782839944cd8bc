import logging
import os
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class StudioSettings:
    api_url: str
    api_token: str
    port: int
    preview_max_width: int
    preview_max_height: int
    load_timeout: float
    cache_ttl: float
    mask_threshold: int
    default_font: str
    log_level: str
    session_ttl: float
    max_sessions: int

    @classmethod
    def from_env(cls) -> "StudioSettings":
        return cls(
            api_url=os.getenv("API_URL", "").rstrip("/"),
            api_token=os.getenv("API_TOKEN", ""),
            port=int(os.getenv("PORT", "5600")),
            preview_max_width=int(os.getenv("PREVIEW_MAX_WIDTH", "700")),
            preview_max_height=int(os.getenv("PREVIEW_MAX_HEIGHT", "450")),
            load_timeout=float(os.getenv("LOAD_TIMEOUT", "15.0")),
            cache_ttl=float(os.getenv("CACHE_TTL", "30")),
            mask_threshold=int(os.getenv("MASK_THRESHOLD", "10")),
            default_font=os.getenv("DEFAULT_FONT", "DejaVuSans-Bold.ttf"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            session_ttl=float(os.getenv("SESSION_TTL", "1800")),
            max_sessions=int(os.getenv("MAX_SESSIONS", "32")),
        )

    @property
    def preview_bounds(self) -> Tuple[int, int]:
        return self.preview_max_width, self.preview_max_height


SETTINGS = StudioSettings.from_env()


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=SETTINGS.log_level)
    return logging.getLogger("studio-engine")
