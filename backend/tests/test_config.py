from pathlib import Path

import pytest

from app.config import DEFAULT_PORT, Settings
from services.errors import ConfigError

REQUIRED = {
    "ZOOM_EMAIL": "bot@example.com",
    "ZOOM_PASSWORD": "hunter2",
    "GCS_BUCKET_NAME": "loopcam-media",
    "GCS_PROJECT_ID": "loopcam-test",
}


def test_defaults_from_required_only() -> None:
    settings = Settings.from_env(REQUIRED)
    assert settings.api_port == DEFAULT_PORT
    assert settings.media_base_url == "http://localhost:3000"
    assert settings.headless is False
    assert settings.capture_audio is True
    assert settings.ffmpeg_path == "ffmpeg"
    assert settings.transcode_timeout_seconds == 1800
    assert settings.gcs_credentials_file is None


def test_missing_variables_are_all_named() -> None:
    env = {"ZOOM_EMAIL": "bot@example.com", "GCS_PROJECT_ID": "   "}
    with pytest.raises(ConfigError) as exc_info:
        Settings.from_env(env)
    message = str(exc_info.value)
    for name in ("ZOOM_PASSWORD", "GCS_BUCKET_NAME", "GCS_PROJECT_ID"):
        assert name in message
    assert "ZOOM_EMAIL" not in message


def test_overrides(tmp_path: Path) -> None:
    env = {
        **REQUIRED,
        "API_PORT": "8080",
        "MEDIA_DIR": str(tmp_path),
        "MEDIA_BASE_URL": "http://media.internal:8080/",
        "HEADLESS": "true",
        "STREAM_CAPTURE_AUDIO": "0",
        "FFMPEG_PATH": "/opt/ffmpeg/bin/ffmpeg",
        "TRANSCODE_TIMEOUT_SECONDS": "60",
        "GOOGLE_APPLICATION_CREDENTIALS": "/secrets/sa.json",
    }
    settings = Settings.from_env(env)
    assert settings.api_port == 8080
    assert settings.media_dir == tmp_path.resolve()
    assert settings.media_base_url == "http://media.internal:8080"
    assert settings.headless is True
    assert settings.capture_audio is False
    assert settings.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
    assert settings.transcode_timeout_seconds == 60
    assert settings.gcs_credentials_file == "/secrets/sa.json"


def test_base_url_follows_port() -> None:
    assert Settings.from_env({**REQUIRED, "API_PORT": "4000"}).media_base_url == "http://localhost:4000"


def test_invalid_number_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="Invalid numeric"):
        Settings.from_env({**REQUIRED, "API_PORT": "three thousand"})
