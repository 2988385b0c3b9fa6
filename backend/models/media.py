from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path


class AssetState(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    CONVERTING = "converting"
    CONVERTED = "converted"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    INVALID = "invalid"


@dataclass
class MediaInfo:
    duration_seconds: float
    width: int
    height: int
    fps: float
    has_audio: bool


@dataclass
class RemoteObjectInfo:
    name: str
    size: int | None
    content_type: str | None
    updated_at: datetime | None


@dataclass
class MediaAsset:
    remote_key: str                        # object name in the bucket
    local_path: Path | None = None         # staged download
    converted_path: Path | None = None     # normalized .webm
    state: AssetState = AssetState.PENDING
    info: MediaInfo | None = None          # last probe of converted_path

    @property
    def is_verified(self) -> bool:
        return self.state is AssetState.VERIFIED

    def can_be_verified(self) -> bool:
        """A verified asset needs a non-empty converted file with positive dimensions."""
        if self.converted_path is None or self.info is None:
            return False
        try:
            size = self.converted_path.stat().st_size
        except OSError:
            return False
        return size > 0 and self.info.width > 0 and self.info.height > 0
