import os
from typing import Final, Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _camera_source(raw: str) -> int | str:
    return int(raw) if raw.isdigit() else raw


class Settings:
    """Gateway settings loaded from environment variables."""

    def __init__(self) -> None:
        # Acquisition
        self.camera_source: Final[int | str] = _camera_source(
            os.getenv("FIRE_WATCH_CAMERA_SOURCE", "0")
        )
        self.frames_dir: Final[str] = os.getenv("FIRE_WATCH_FRAMES_DIR", "")
        self.source_name: Final[str] = os.getenv("FIRE_WATCH_SOURCE_NAME", "camera")

        # Detection model, empty path means color heuristic only
        self.model_path: Final[str] = os.getenv("FIRE_WATCH_MODEL_PATH", "yolov8n.pt")

        # Backend notification
        self.api_base: Final[str] = os.getenv(
            "FIRE_WATCH_API_BASE", "http://localhost:3000"
        )
        self.api_token: Final[str] = os.getenv("FIRE_WATCH_API_TOKEN", "")

        # Sampling and incident policy
        self.refresh_hz: Final[float] = float(os.getenv("FIRE_WATCH_REFRESH_HZ", "60"))
        self.grace_sec: Final[float] = float(os.getenv("FIRE_WATCH_GRACE_SEC", "2.0"))
        self.confirmation_threshold: Final[int] = int(
            os.getenv("FIRE_WATCH_CONFIRMATION_THRESHOLD", "5")
        )
        self.debounce_sec: Final[float] = float(
            os.getenv("FIRE_WATCH_DEBOUNCE_SEC", "5.0")
        )
        self.retry_max_attempts: Final[int] = int(
            os.getenv("FIRE_WATCH_RETRY_MAX_ATTEMPTS", "1")
        )
        self.retry_backoff_sec: Final[float] = float(
            os.getenv("FIRE_WATCH_RETRY_BACKOFF_SEC", "2.0")
        )

        # Runtime
        self.autostart: Final[bool] = _env_bool("FIRE_WATCH_AUTOSTART", "1")
        self.overlay_enabled: Final[bool] = _env_bool("FIRE_WATCH_OVERLAY", "1")
        self.log_level: Final[str] = os.getenv("FIRE_WATCH_LOG_LEVEL", "INFO").upper()


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
