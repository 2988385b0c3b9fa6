"""GCS client for listing, inspecting and staging source videos."""

import logging
import os
from pathlib import Path

from google.api_core import exceptions as gcs_exceptions
from google.auth import exceptions as auth_exceptions

from models.media import RemoteObjectInfo
from services.errors import NotFound, TransferFailure

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".webm")
PARTIAL_SUFFIX = ".part"

# Client construction (bad key file, no default credentials) and transport
# errors all surface as TransferFailure.
STORAGE_ERRORS = (gcs_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError)


def get_bucket_name() -> str:
    """Bucket name from GCS_BUCKET_NAME (or the older GCS_BUCKET) env var."""
    return (
        os.environ.get("GCS_BUCKET_NAME", "").strip()
        or os.environ.get("GCS_BUCKET", "").strip()
    )


def _client(project: str | None = None, credentials_file: str | None = None):
    """
    Storage client for a project. Arguments left out fall back to the
    GCS_PROJECT_ID / GOOGLE_APPLICATION_CREDENTIALS env vars.
    """
    from google.cloud import storage

    project = project or os.environ.get("GCS_PROJECT_ID", "").strip() or None
    credentials_file = credentials_file or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "").strip()
    if credentials_file:
        return storage.Client.from_service_account_json(credentials_file, project=project)
    return storage.Client(project=project)


def local_path_for(remote_key: str, staging_dir: Path) -> Path:
    """
    Deterministic staging path for a remote key.

    Nested keys are flattened ("a/b.mp4" -> "a__b.mp4") so two folders holding
    the same file name never collide in the staging directory.
    """
    parts = [p for p in remote_key.split("/") if p]
    if not parts or any(p in (".", "..") for p in parts):
        raise TransferFailure(f"Invalid object name: {remote_key!r}")
    return Path(staging_dir) / "__".join(parts)


def is_video_name(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in VIDEO_EXTENSIONS


def download_video(
    remote_key: str,
    *,
    staging_dir: Path,
    bucket_name: str | None = None,
    project: str | None = None,
    credentials_file: str | None = None,
) -> Path:
    """
    Download an object to the staging directory and return the local path.

    The object is streamed to "<name>.part" and renamed into place once the
    transfer completes, replacing any earlier copy. A failed transfer leaves
    the previous file (if any) untouched.

    :param remote_key: Object path in bucket, e.g. "clips/intro.mp4"
    :param staging_dir: Local directory, created if missing
    :param bucket_name: GCS bucket; default from GCS_BUCKET_NAME env
    :param project: GCS project; default from GCS_PROJECT_ID env
    :param credentials_file: service account JSON; default application credentials
    :raises NotFound: the object does not exist
    :raises TransferFailure: any other storage, credential or filesystem error
    """
    destination = local_path_for(remote_key, staging_dir)
    partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
    bucket_name = bucket_name or get_bucket_name()

    logger.info("[gcs] Downloading gs://%s/%s -> %s", bucket_name, remote_key, destination)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        client = _client(project, credentials_file)
        blob = client.bucket(bucket_name).blob(remote_key)
        blob.download_to_filename(str(partial))
        os.replace(partial, destination)
    except gcs_exceptions.NotFound as e:
        partial.unlink(missing_ok=True)
        raise NotFound(f"Object not found: gs://{bucket_name}/{remote_key}") from e
    except STORAGE_ERRORS as e:
        partial.unlink(missing_ok=True)
        raise TransferFailure(f"Download of {remote_key} failed: {e}") from e

    logger.info("[gcs] Downloaded %s (%d bytes)", destination.name, destination.stat().st_size)
    return destination


def list_videos(
    *,
    bucket_name: str | None = None,
    project: str | None = None,
    credentials_file: str | None = None,
) -> list[str]:
    """Object names with a known video extension, in the store's listing order."""
    bucket_name = bucket_name or get_bucket_name()
    try:
        blobs = _client(project, credentials_file).list_blobs(bucket_name)
        return [blob.name for blob in blobs if is_video_name(blob.name)]
    except STORAGE_ERRORS as e:
        raise TransferFailure(f"Listing gs://{bucket_name} failed: {e}") from e


def get_video_metadata(
    remote_key: str,
    *,
    bucket_name: str | None = None,
    project: str | None = None,
    credentials_file: str | None = None,
) -> RemoteObjectInfo:
    bucket_name = bucket_name or get_bucket_name()
    try:
        blob = _client(project, credentials_file).bucket(bucket_name).get_blob(remote_key)
    except STORAGE_ERRORS as e:
        raise TransferFailure(f"Metadata lookup for {remote_key} failed: {e}") from e
    if blob is None:
        raise NotFound(f"Object not found: gs://{bucket_name}/{remote_key}")
    return RemoteObjectInfo(
        name=blob.name,
        size=blob.size,
        content_type=blob.content_type,
        updated_at=blob.updated,
    )
