"""Bot control REST API. Every operation addresses one session by ID."""

import asyncio
import logging
import secrets

from fastapi import APIRouter, Depends

from app.config import Settings, get_settings
from app.models import (
    AssetSummary,
    Envelope,
    JoinRequest,
    MediaPreparedResponse,
    PrepareMediaRequest,
    SessionCreateResponse,
    SessionReadResponse,
    StreamResponse,
    VideoListResponse,
    VideoMetadataResponse,
)
from models import Credentials, MediaAsset, MeetingHandle
from services import gcs, store
from services.meeting_bot import MeetingBot

router = APIRouter(tags=["sessions"])
logger = logging.getLogger(__name__)

# Avoid 0/O, 1/I/l in session IDs so they survive being read aloud or retyped.
_SESSION_ALPHABET = "23456789abcdefghjkmnpqrstuvwxyz"
_SESSION_ID_LENGTH = 12


def _generate_session_id() -> str:
    return "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(_SESSION_ID_LENGTH))


def create_bot(session_id: str, settings: Settings) -> MeetingBot:
    """Factory seam; tests replace it to avoid launching a browser."""
    return MeetingBot(session_id, settings)


def _asset_summary(bot: MeetingBot, asset: MediaAsset | None) -> AssetSummary | None:
    if asset is None:
        return None
    info = asset.info
    return AssetSummary(
        remote_key=asset.remote_key,
        state=asset.state,
        file_name=asset.converted_path.name if asset.converted_path else None,
        media_url=bot.media_url_for(asset) if asset.converted_path else None,
        width=info.width if info else None,
        height=info.height if info else None,
        fps=info.fps if info else None,
        duration_seconds=info.duration_seconds if info else None,
        has_audio=info.has_audio if info else None,
    )


@router.post("/sessions", response_model=SessionCreateResponse, status_code=201)
async def create_session(settings: Settings = Depends(get_settings)) -> SessionCreateResponse:
    """Create a session and launch its browser."""
    session_id = _generate_session_id()
    bot = create_bot(session_id, settings)
    logger.info("[sessions] Launching bot for session_id=%s", session_id)
    await bot.launch()
    store.register(bot)
    return SessionCreateResponse(
        success=True,
        message="Browser launched",
        session_id=session_id,
        state=bot.state,
    )


@router.get("/sessions/{session_id}", response_model=SessionReadResponse)
async def get_session(session_id: str) -> SessionReadResponse:
    bot = store.get_entry(session_id).bot
    session = bot.session
    return SessionReadResponse(
        success=True,
        session_id=session.id,
        state=session.state,
        in_meeting=bot.is_in_meeting(),
        meeting_id=session.meeting_id,
        active_asset=_asset_summary(bot, session.active_asset),
        created_at=session.created_at,
        ended_at=session.ended_at,
    )


@router.post("/sessions/{session_id}/login", response_model=Envelope)
async def login(session_id: str, settings: Settings = Depends(get_settings)) -> Envelope:
    credentials = Credentials(email=settings.zoom_email, password=settings.zoom_password)
    async with store.locked_bot(session_id) as bot:
        await bot.authenticate(credentials)
    return Envelope(success=True, message="Signed in")


@router.post("/sessions/{session_id}/join", response_model=Envelope)
async def join(session_id: str, body: JoinRequest) -> Envelope:
    async with store.locked_bot(session_id) as bot:
        await bot.join(MeetingHandle(meeting_id=body.meeting_id, passcode=body.passcode))
    return Envelope(success=True, message=f"Joined meeting {body.meeting_id}")


@router.post("/sessions/{session_id}/media", response_model=MediaPreparedResponse)
async def prepare_media(session_id: str, body: PrepareMediaRequest) -> MediaPreparedResponse:
    async with store.locked_bot(session_id) as bot:
        asset = await bot.prepare_media(body.remote_key)
        summary = _asset_summary(bot, asset)
    return MediaPreparedResponse(success=True, message="Media ready", asset=summary)


@router.post("/sessions/{session_id}/stream", response_model=StreamResponse)
async def activate_stream(session_id: str) -> StreamResponse:
    async with store.locked_bot(session_id) as bot:
        result = await bot.activate_stream()
        media_url = bot.media_url_for(bot.session.active_asset)
    return StreamResponse(success=True, message="Streaming", media_url=media_url, audio=result.audio)


@router.post("/sessions/{session_id}/leave", response_model=Envelope)
async def leave(session_id: str) -> Envelope:
    async with store.locked_bot(session_id) as bot:
        await bot.leave()
    return Envelope(success=True, message="Left meeting")


@router.delete("/sessions/{session_id}", response_model=Envelope)
async def terminate(session_id: str) -> Envelope:
    async with store.locked_bot(session_id) as bot:
        await bot.terminate()
    store.unregister(session_id)
    return Envelope(success=True, message="Session closed")


@router.get("/videos", response_model=VideoListResponse)
async def list_videos(settings: Settings = Depends(get_settings)) -> VideoListResponse:
    videos = await asyncio.to_thread(gcs.list_videos, **settings.storage_options())
    return VideoListResponse(success=True, videos=videos)


@router.get("/videos/{remote_key:path}", response_model=VideoMetadataResponse)
async def video_metadata(remote_key: str, settings: Settings = Depends(get_settings)) -> VideoMetadataResponse:
    info = await asyncio.to_thread(gcs.get_video_metadata, remote_key, **settings.storage_options())
    return VideoMetadataResponse(
        success=True,
        name=info.name,
        size=info.size,
        content_type=info.content_type,
        updated_at=info.updated_at,
    )
