"""Process configuration read from the environment (optionally seeded from backend/.env)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel

from services.errors import ConfigError

REQUIRED_ENV_VARS = (
    "ZOOM_EMAIL",
    "ZOOM_PASSWORD",
    "GCS_BUCKET_NAME",
    "GCS_PROJECT_ID",
)

DEFAULT_PORT = 3000
DEFAULT_MEDIA_DIR = Path(__file__).resolve().parent.parent / "temp"
DEFAULT_TRANSCODE_TIMEOUT_SECONDS = 1800.0
DEFAULT_SETTLE_SECONDS = 1.5

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


class Settings(BaseModel):
    zoom_email: str
    zoom_password: str
    gcs_bucket_name: str
    gcs_project_id: str
    gcs_credentials_file: str | None = None
    api_port: int = DEFAULT_PORT
    media_dir: Path = DEFAULT_MEDIA_DIR
    media_base_url: str = f"http://localhost:{DEFAULT_PORT}"
    headless: bool = False
    ffmpeg_path: str = "ffmpeg"
    transcode_timeout_seconds: float = DEFAULT_TRANSCODE_TIMEOUT_SECONDS
    capture_audio: bool = True
    settle_seconds: float = DEFAULT_SETTLE_SECONDS

    def storage_options(self) -> dict[str, str | None]:
        """Keyword arguments for the services.gcs calls."""
        return {
            "bucket_name": self.gcs_bucket_name,
            "project": self.gcs_project_id,
            "credentials_file": self.gcs_credentials_file,
        }

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Raises ConfigError naming every missing required variable, so the
        process can refuse to start instead of failing per request.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name, "").strip()]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        try:
            port = int(env.get("API_PORT", "").strip() or DEFAULT_PORT)
            timeout = float(
                env.get("TRANSCODE_TIMEOUT_SECONDS", "").strip() or DEFAULT_TRANSCODE_TIMEOUT_SECONDS
            )
            settle = float(env.get("STREAM_SETTLE_SECONDS", "").strip() or DEFAULT_SETTLE_SECONDS)
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        media_dir = Path(env.get("MEDIA_DIR", "").strip() or DEFAULT_MEDIA_DIR).resolve()
        base_url = env.get("MEDIA_BASE_URL", "").strip() or f"http://localhost:{port}"

        return cls(
            zoom_email=env["ZOOM_EMAIL"].strip(),
            zoom_password=env["ZOOM_PASSWORD"],
            gcs_bucket_name=env["GCS_BUCKET_NAME"].strip(),
            gcs_project_id=env["GCS_PROJECT_ID"].strip(),
            gcs_credentials_file=env.get("GOOGLE_APPLICATION_CREDENTIALS", "").strip() or None,
            api_port=port,
            media_dir=media_dir,
            media_base_url=base_url.rstrip("/"),
            headless=_flag(env.get("HEADLESS"), False),
            ffmpeg_path=env.get("FFMPEG_PATH", "").strip() or "ffmpeg",
            transcode_timeout_seconds=timeout,
            capture_audio=_flag(env.get("STREAM_CAPTURE_AUDIO"), True),
            settle_seconds=settle,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """FastAPI dependency; tests replace it through app.dependency_overrides."""
    return Settings.from_env()
