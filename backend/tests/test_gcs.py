"""Tests for staging videos from GCS: listing, metadata, download and error mapping."""

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gcs_exceptions
from google.auth import exceptions as auth_exceptions

from services.errors import AcquisitionFailure, NotFound, TransferFailure
from services.gcs import (
    download_video,
    get_bucket_name,
    get_video_metadata,
    list_videos,
    local_path_for,
)


def _mock_client(blob: MagicMock | None = None) -> MagicMock:
    mock_bucket = MagicMock()
    mock_bucket.blob.return_value = blob or MagicMock()
    mock_client = MagicMock()
    mock_client.bucket.return_value = mock_bucket
    return mock_client


def test_get_bucket_name_prefers_gcs_bucket_name() -> None:
    with patch.dict("os.environ", {"GCS_BUCKET_NAME": "  media  ", "GCS_BUCKET": "legacy"}, clear=False):
        assert get_bucket_name() == "media"


def test_get_bucket_name_falls_back_to_legacy_var() -> None:
    with patch.dict("os.environ", {"GCS_BUCKET_NAME": "", "GCS_BUCKET": "legacy"}, clear=False):
        assert get_bucket_name() == "legacy"


def test_local_path_flattens_nested_keys(tmp_path: Path) -> None:
    assert local_path_for("clip.mp4", tmp_path) == tmp_path / "clip.mp4"
    assert local_path_for("teams/a/clip.mp4", tmp_path) == tmp_path / "teams__a__clip.mp4"


@pytest.mark.parametrize("key", ["", "../etc/passwd", "a/../b.mp4", "/"])
def test_local_path_rejects_unsafe_keys(tmp_path: Path, key: str) -> None:
    with pytest.raises(TransferFailure):
        local_path_for(key, tmp_path)


def test_download_creates_directory_and_publishes_atomically(tmp_path: Path) -> None:
    staging = tmp_path / "nested" / "staging"
    blob = MagicMock()
    blob.download_to_filename.side_effect = lambda name: Path(name).write_bytes(b"video-bytes")
    client = _mock_client(blob)

    with patch("services.gcs._client", return_value=client):
        path = download_video("clip.mp4", staging_dir=staging, bucket_name="bucket")

    assert path == staging / "clip.mp4"
    assert path.read_bytes() == b"video-bytes"
    assert not (staging / "clip.mp4.part").exists()
    client.bucket.assert_called_once_with("bucket")
    client.bucket.return_value.blob.assert_called_once_with("clip.mp4")
    # Transfer writes to the temporary name, never straight to the served one.
    assert blob.download_to_filename.call_args[0][0].endswith("clip.mp4.part")


def test_download_overwrites_existing_file(tmp_path: Path) -> None:
    (tmp_path / "clip.mp4").write_bytes(b"old")
    blob = MagicMock()
    blob.download_to_filename.side_effect = lambda name: Path(name).write_bytes(b"new")

    with patch("services.gcs._client", return_value=_mock_client(blob)):
        path = download_video("clip.mp4", staging_dir=tmp_path, bucket_name="bucket")

    assert path.read_bytes() == b"new"


def test_download_missing_object_raises_not_found(tmp_path: Path) -> None:
    blob = MagicMock()
    blob.download_to_filename.side_effect = gcs_exceptions.NotFound("No such object")

    with patch("services.gcs._client", return_value=_mock_client(blob)):
        with pytest.raises(NotFound) as exc_info:
            download_video("missing.mp4", staging_dir=tmp_path, bucket_name="bucket")

    assert isinstance(exc_info.value, AcquisitionFailure)
    assert "missing.mp4" in str(exc_info.value)
    assert list(tmp_path.iterdir()) == []


def test_download_io_error_raises_transfer_failure_and_keeps_previous_copy(tmp_path: Path) -> None:
    (tmp_path / "clip.mp4").write_bytes(b"previous")

    def _partial_then_fail(name: str) -> None:
        Path(name).write_bytes(b"half")
        raise OSError("connection reset")

    blob = MagicMock()
    blob.download_to_filename.side_effect = _partial_then_fail

    with patch("services.gcs._client", return_value=_mock_client(blob)):
        with pytest.raises(TransferFailure):
            download_video("clip.mp4", staging_dir=tmp_path, bucket_name="bucket")

    assert (tmp_path / "clip.mp4").read_bytes() == b"previous"
    assert not (tmp_path / "clip.mp4.part").exists()


def test_list_videos_filters_to_known_extensions_in_store_order() -> None:
    names = ["b.MP4", "notes.txt", "a.webm", "dir/", "c.mov", "d.avi", "e.mkv", "thumb.jpg", "f.mp4.bak"]
    client = MagicMock()
    client.list_blobs.return_value = [SimpleNamespace(name=n) for n in names]

    with patch("services.gcs._client", return_value=client):
        videos = list_videos(bucket_name="bucket")

    assert videos == ["b.MP4", "a.webm", "c.mov", "d.avi", "e.mkv"]
    client.list_blobs.assert_called_once_with("bucket")


def test_get_video_metadata_maps_blob_fields() -> None:
    updated = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    blob = SimpleNamespace(name="clip.mp4", size=10_485_760, content_type="video/mp4", updated=updated)
    client = MagicMock()
    client.bucket.return_value.get_blob.return_value = blob

    with patch("services.gcs._client", return_value=client):
        info = get_video_metadata("clip.mp4", bucket_name="bucket")

    assert info.name == "clip.mp4"
    assert info.size == 10_485_760
    assert info.content_type == "video/mp4"
    assert info.updated_at == updated


def test_get_video_metadata_missing_object() -> None:
    client = MagicMock()
    client.bucket.return_value.get_blob.return_value = None

    with patch("services.gcs._client", return_value=client):
        with pytest.raises(NotFound):
            get_video_metadata("nope.mp4", bucket_name="bucket")


def test_missing_key_file_is_a_transfer_failure(tmp_path: Path) -> None:
    key_file = str(tmp_path / "missing.json")

    with pytest.raises(TransferFailure):
        list_videos(bucket_name="bucket", project="p", credentials_file=key_file)
    with pytest.raises(TransferFailure):
        get_video_metadata("clip.mp4", bucket_name="bucket", project="p", credentials_file=key_file)
    with pytest.raises(TransferFailure):
        download_video("clip.mp4", staging_dir=tmp_path, bucket_name="bucket", credentials_file=key_file)
    assert not (tmp_path / "clip.mp4.part").exists()


def test_no_default_credentials_is_a_transfer_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    no_creds = auth_exceptions.DefaultCredentialsError("Your default credentials were not found")

    with patch("google.cloud.storage.Client", side_effect=no_creds):
        with pytest.raises(TransferFailure):
            list_videos(bucket_name="bucket", project="p")
        with pytest.raises(TransferFailure):
            get_video_metadata("clip.mp4", bucket_name="bucket", project="p")
        with pytest.raises(TransferFailure):
            download_video("clip.mp4", staging_dir=tmp_path, bucket_name="bucket", project="p")


def test_explicit_project_and_key_file_win_over_env(monkeypatch) -> None:
    monkeypatch.setenv("GCS_PROJECT_ID", "env-project")
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "/env/sa.json")

    with patch("google.cloud.storage.Client") as client_cls:
        client_cls.from_service_account_json.return_value.list_blobs.return_value = []
        list_videos(bucket_name="bucket", project="settings-project", credentials_file="/settings/sa.json")

    client_cls.from_service_account_json.assert_called_once_with("/settings/sa.json", project="settings-project")


def test_env_fallback_without_key_file(monkeypatch) -> None:
    monkeypatch.setenv("GCS_PROJECT_ID", "env-project")
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)

    with patch("google.cloud.storage.Client") as client_cls:
        client_cls.return_value.list_blobs.return_value = []
        list_videos(bucket_name="bucket")

    client_cls.assert_called_once_with(project="env-project")
