from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .media import MediaAsset


class SessionState(str, Enum):
    IDLE = "idle"
    LAUNCHED = "launched"
    AUTHENTICATED = "authenticated"
    IN_MEETING = "in_meeting"
    STREAMING = "streaming"
    LEFT = "left"
    CLOSED = "closed"


@dataclass
class MeetingHandle:
    meeting_id: str
    passcode: str | None = None


@dataclass
class Credentials:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***')"


@dataclass
class BotSession:
    id: str
    state: SessionState = SessionState.IDLE
    active_asset: MediaAsset | None = None
    meeting_id: str | None = None           # passcode is never kept
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: datetime | None = None
