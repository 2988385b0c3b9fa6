from .media import AssetState, MediaAsset, MediaInfo, RemoteObjectInfo
from .session import BotSession, Credentials, MeetingHandle, SessionState

__all__ = [
    "AssetState",
    "MediaAsset",
    "MediaInfo",
    "RemoteObjectInfo",
    "BotSession",
    "Credentials",
    "MeetingHandle",
    "SessionState",
]
