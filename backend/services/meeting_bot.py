"""
Meeting bot: one Playwright browser driving one participant session.

Lifecycle:

  idle -(launch)-> launched -(authenticate)-> authenticated -(join)-> in_meeting
  in_meeting -(activate_stream)-> streaming
  in_meeting | streaming -(leave)-> left -(join)-> in_meeting
  any -(terminate)-> closed

Calls against one bot must be serialized by the caller (see services.store).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from models import AssetState, BotSession, Credentials, MediaAsset, MeetingHandle, SessionState
from services import gcs, transcoder
from services.errors import (
    AcquisitionFailure,
    AuthenticationRejected,
    AuthenticationTimeout,
    ConversionFailure,
    DriverUnavailable,
    InjectionFailure,
    JoinTimeout,
    MediaNotReady,
    NotInMeeting,
    PreconditionViolation,
    VerificationFailure,
)
from services.stream_injector import InjectionResult, StreamInjector

if TYPE_CHECKING:
    from app.config import Settings

logger = logging.getLogger(__name__)

LOGIN_TIMEOUT_MS = 30_000
JOIN_TIMEOUT_MS = 60_000
CONTROL_TIMEOUT_MS = 5_000

LAUNCH_ARGS = [
    "--use-fake-ui-for-media-stream",        # auto-accept camera/mic prompts
    "--use-fake-device-for-media-stream",
    "--autoplay-policy=no-user-gesture-required",
    "--disable-blink-features=AutomationControlled",
]
VIEWPORT = {"width": 1280, "height": 720}


@dataclass(frozen=True)
class ClientSelectors:
    """Zoom web client URLs and selectors. Override for other client builds."""

    signin_url: str = "https://zoom.us/signin"
    post_login_url: str = "**/myhome"
    join_url_template: str = "https://zoom.us/wc/join/{meeting_id}"
    email_input: str = 'input[type="text"]'
    email_next: str = "#signin_btn_next"
    password_input: str = 'input[type="password"]'
    login_submit: str = "#js_btn_login"
    login_error: str = "#error_msg, .zm-alert__content, [role='alert']"
    passcode_input: str = 'input[type="password"]'
    passcode_submit: str = 'button:has-text("Join")'
    in_meeting_marker: str = '[aria-label*="mute"]'
    mute_mic: str = 'button[aria-label="mute my microphone"]'
    stop_video: str = 'button[aria-label="stop my video"]'
    start_video: str = 'button[aria-label="start my video"]'
    leave: str = 'button[aria-label="Leave"]'
    leave_confirm: str = "button.leave-meeting-options__btn--danger"


class MeetingBot:
    def __init__(
        self,
        session_id: str,
        settings: Settings,
        *,
        selectors: ClientSelectors | None = None,
        injector: StreamInjector | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.session = BotSession(id=session_id)
        self.selectors = selectors or ClientSelectors()
        self._settings = settings
        self._injector = injector or StreamInjector(capture_audio=settings.capture_audio)
        self._playwright_factory = playwright_factory
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def page(self) -> Page | None:
        return self._page

    def is_in_meeting(self) -> bool:
        return self.state in (SessionState.IN_MEETING, SessionState.STREAMING)

    def _require(self, operation: str, *states: SessionState) -> Page:
        if self.state not in states:
            required = " or ".join(s.value for s in states)
            raise PreconditionViolation(
                f"{operation} requires session state {required} (current: {self.state.value})"
            )
        return self._active_page()

    def _active_page(self) -> Page:
        if self._page is None:
            raise DriverUnavailable(f"Browser for session {self.session.id} is not running")
        return self._page

    def _set_state(self, state: SessionState) -> None:
        logger.info("[meeting_bot] session=%s %s -> %s", self.session.id, self.state.value, state.value)
        self.session.state = state

    # ─── Lifecycle ───────────────────────────────────────────────

    async def launch(self) -> None:
        if self.state is not SessionState.IDLE:
            raise PreconditionViolation(f"launch requires session state idle (current: {self.state.value})")

        logger.info("[meeting_bot] Launching Chromium (headless=%s)", self._settings.headless)
        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._settings.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                permissions=["camera", "microphone"],
                viewport=VIEWPORT,
            )
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self._close_driver()
            raise DriverUnavailable(f"Browser failed to start: {e}") from e

        self._page.on("console", lambda msg: logger.debug("[browser] %s: %s", msg.type, msg.text))
        self._set_state(SessionState.LAUNCHED)

    async def authenticate(self, credentials: Credentials) -> None:
        page = self._require("authenticate", SessionState.LAUNCHED)
        sel = self.selectors
        logger.info("[meeting_bot] Signing in as %s", credentials.email)
        try:
            await page.goto(sel.signin_url)
            await page.wait_for_load_state("networkidle")
            await page.fill(sel.email_input, credentials.email)
            await page.click(sel.email_next)
            await page.fill(sel.password_input, credentials.password)
            await page.click(sel.login_submit)
            await page.wait_for_url(sel.post_login_url, timeout=LOGIN_TIMEOUT_MS)
        except PlaywrightTimeoutError as e:
            if await self._is_visible(sel.login_error):
                raise AuthenticationRejected("Sign-in was rejected by the client") from e
            raise AuthenticationTimeout(
                f"Sign-in did not complete within {LOGIN_TIMEOUT_MS // 1000}s"
            ) from e
        except PlaywrightError as e:
            raise DriverUnavailable(f"Browser error during sign-in: {e}") from e

        self._set_state(SessionState.AUTHENTICATED)

    async def join(self, handle: MeetingHandle) -> None:
        page = self._require("join", SessionState.AUTHENTICATED, SessionState.LEFT)
        sel = self.selectors
        meeting_id = handle.meeting_id.replace(" ", "")
        url = sel.join_url_template.format(meeting_id=quote(meeting_id, safe=""))
        logger.info("[meeting_bot] Joining meeting %s", meeting_id)
        try:
            await page.goto(url)
            await page.wait_for_load_state("networkidle")
            if handle.passcode and await self._is_visible(sel.passcode_input):
                await page.fill(sel.passcode_input, handle.passcode)
                await page.click(sel.passcode_submit)
            await page.wait_for_selector(sel.in_meeting_marker, timeout=JOIN_TIMEOUT_MS)
        except PlaywrightTimeoutError as e:
            raise JoinTimeout(
                f"Meeting {meeting_id} did not load within {JOIN_TIMEOUT_MS // 1000}s"
            ) from e
        except PlaywrightError as e:
            raise DriverUnavailable(f"Browser error while joining: {e}") from e

        # Client defaults differ per account; start silent and dark.
        await self._click_if_present(sel.mute_mic, "mute microphone")
        await self._click_if_present(sel.stop_video, "stop video")

        self.session.meeting_id = meeting_id
        self._set_state(SessionState.IN_MEETING)

    async def prepare_media(self, remote_key: str) -> MediaAsset:
        """
        Fetch, normalize and verify a remote video; make it the active asset.

        Does not need a meeting and never changes the session state. On
        failure the previous active asset (if any) is kept.
        """
        if self.state is SessionState.CLOSED:
            raise PreconditionViolation("prepare_media requires an open session (current: closed)")

        settings = self._settings
        asset = MediaAsset(remote_key=remote_key)
        try:
            asset.state = AssetState.DOWNLOADING
            asset.local_path = await asyncio.to_thread(
                gcs.download_video,
                remote_key,
                staging_dir=settings.media_dir,
                **settings.storage_options(),
            )
            asset.state = AssetState.DOWNLOADED

            asset.state = AssetState.CONVERTING
            asset.converted_path = await transcoder.normalize(
                asset.local_path,
                ffmpeg_path=settings.ffmpeg_path,
                timeout=settings.transcode_timeout_seconds,
            )
            asset.state = AssetState.CONVERTED

            asset.state = AssetState.VERIFYING
            if not await asyncio.to_thread(transcoder.verify, asset.converted_path):
                raise VerificationFailure(f"Converted file {asset.converted_path.name} is not a valid video")
            asset.info = await asyncio.to_thread(transcoder.probe, asset.converted_path)
            if not asset.can_be_verified():
                raise VerificationFailure(f"Converted file {asset.converted_path.name} has no usable frames")
        except (AcquisitionFailure, ConversionFailure, VerificationFailure):
            logger.warning("[meeting_bot] prepare_media(%s) failed at %s", remote_key, asset.state.value)
            asset.state = AssetState.INVALID
            raise

        asset.state = AssetState.VERIFIED
        self.session.active_asset = asset
        logger.info("[meeting_bot] Media ready: %s -> %s", remote_key, self.media_url_for(asset))
        return asset

    def media_url_for(self, asset: MediaAsset) -> str:
        if asset.converted_path is None:
            raise MediaNotReady(f"{asset.remote_key} has not been converted yet")
        return f"{self._settings.media_base_url}/media/{quote(asset.converted_path.name)}"

    async def activate_stream(self) -> InjectionResult:
        if self.state is not SessionState.IN_MEETING:
            raise NotInMeeting(f"activate_stream requires session state in_meeting (current: {self.state.value})")
        asset = self.session.active_asset
        if asset is None or not asset.is_verified:
            raise MediaNotReady("activate_stream requires a verified media asset; call prepare_media first")
        page = self._active_page()

        result = await self._injector.install(page, self.media_url_for(asset))
        if not result.success:
            # Leave the page with its real devices; nothing half-built may linger.
            await self._injector.teardown(page)
            raise InjectionFailure(
                f"Stream injection failed ({result.reason}): {result.error}",
                reason=result.reason,
            )

        # Let the canvas track produce frames before the client grabs it.
        await asyncio.sleep(self._settings.settle_seconds)
        if not await self._click_if_present(self.selectors.start_video, "start video"):
            logger.warning("[meeting_bot] Start video control not found; the client may not pick up the stream")

        self._set_state(SessionState.STREAMING)
        return result

    async def leave(self) -> None:
        page = self._require("leave", SessionState.IN_MEETING, SessionState.STREAMING)
        await self._injector.teardown(page)
        if not await self._click_if_present(self.selectors.leave, "leave"):
            logger.warning("[meeting_bot] Leave control not found")
        elif not await self._click_if_present(self.selectors.leave_confirm, "confirm leave"):
            logger.warning("[meeting_bot] Leave confirmation not found")
        self.session.meeting_id = None
        self._set_state(SessionState.LEFT)

    async def terminate(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        if self._page is not None:
            await self._injector.teardown(self._page)
        await self._close_driver()
        self.session.ended_at = datetime.now(timezone.utc)
        self._set_state(SessionState.CLOSED)

    # ─── Helpers ─────────────────────────────────────────────────

    async def _is_visible(self, selector: str) -> bool:
        try:
            return await self._active_page().locator(selector).first.is_visible()
        except PlaywrightError:
            return False

    async def _click_if_present(self, selector: str, label: str) -> bool:
        """Click a control if it shows up within CONTROL_TIMEOUT_MS. Never raises."""
        control = self._active_page().locator(selector).first
        try:
            await control.wait_for(state="visible", timeout=CONTROL_TIMEOUT_MS)
            await control.click()
        except PlaywrightError as e:
            logger.info("[meeting_bot] %s control unavailable: %s", label, e)
            return False
        logger.info("[meeting_bot] Clicked %s", label)
        return True

    async def _close_driver(self) -> None:
        for name, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except PlaywrightError as e:
                logger.warning("[meeting_bot] Closing %s failed: %s", name, e)
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
