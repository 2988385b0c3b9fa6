from datetime import datetime

from pydantic import BaseModel, Field

from models import AssetState, SessionState


class Envelope(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    code: str | None = None


class JoinRequest(BaseModel):
    meeting_id: str = Field(min_length=1)
    passcode: str | None = None


class PrepareMediaRequest(BaseModel):
    remote_key: str = Field(min_length=1)


class AssetSummary(BaseModel):
    remote_key: str
    state: AssetState
    file_name: str | None = None
    media_url: str | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    duration_seconds: float | None = None
    has_audio: bool | None = None


class SessionCreateResponse(Envelope):
    session_id: str
    state: SessionState


class SessionReadResponse(Envelope):
    session_id: str
    state: SessionState
    in_meeting: bool
    meeting_id: str | None = None
    active_asset: AssetSummary | None = None
    created_at: datetime
    ended_at: datetime | None = None


class MediaPreparedResponse(Envelope):
    asset: AssetSummary


class StreamResponse(Envelope):
    media_url: str
    audio: bool


class VideoListResponse(Envelope):
    videos: list[str]


class VideoMetadataResponse(Envelope):
    name: str
    size: int | None = None
    content_type: str | None = None
    updated_at: datetime | None = None
