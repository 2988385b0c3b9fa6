"""In-memory bot registry. Keyed by session ID; each entry owns its own browser."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from services.errors import SessionNotFound
from services.meeting_bot import MeetingBot


@dataclass
class SessionEntry:
    bot: MeetingBot
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


sessions: dict[str, SessionEntry] = {}


def register(bot: MeetingBot) -> SessionEntry:
    entry = SessionEntry(bot=bot)
    sessions[bot.session.id] = entry
    return entry


def get_entry(session_id: str) -> SessionEntry:
    entry = sessions.get(session_id)
    if entry is None:
        raise SessionNotFound(f"Session {session_id} not found")
    return entry


@asynccontextmanager
async def locked_bot(session_id: str) -> AsyncIterator[MeetingBot]:
    """Serialize operations against one bot; other sessions are unaffected."""
    entry = get_entry(session_id)
    async with entry.lock:
        yield entry.bot


def unregister(session_id: str) -> None:
    sessions.pop(session_id, None)
