from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import av
import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from app.config import Settings
from services.stream_injector import PROTOCOL_VERSION


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        zoom_email="bot@example.com",
        zoom_password="hunter2",
        gcs_bucket_name="loopcam-media",
        gcs_project_id="loopcam-test",
        media_dir=tmp_path,
        media_base_url="http://localhost:3000",
        settle_seconds=0,
    )


def write_webm(path: Path, *, width: int = 64, height: int = 48, frames: int = 5, fps: int = 15) -> Path:
    """Encode a few grey frames to a small VP8 WebM (no numpy)."""
    with av.open(str(path), "w", format="webm") as container:
        stream = container.add_stream("libvpx", rate=fps)
        stream.width = width
        stream.height = height
        stream.pix_fmt = "yuv420p"
        for index in range(frames):
            frame = av.VideoFrame(width, height, "rgb24")
            frame.planes[0].update(b"\x80" * frame.planes[0].buffer_size)
            frame = frame.reformat(format="yuv420p")
            frame.pts = index
            for packet in stream.encode(frame):
                container.mux(packet)
        for packet in stream.encode():
            container.mux(packet)
    return path


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self._page = page
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    async def is_visible(self) -> bool:
        return self.selector in self._page.visible

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        if self.selector not in self._page.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    async def click(self) -> None:
        self._page.clicked.append(self.selector)


class FakePage:
    """Records what the bot does; `visible` decides which selectors exist."""

    def __init__(self) -> None:
        self.visible: set[str] = set()
        self.clicked: list[str] = []
        self.filled: dict[str, str] = {}
        self.visited: list[str] = []
        self.evaluated: list[tuple[str, Any]] = []
        self.handlers: dict[str, Any] = {}
        self.login_succeeds = True
        self.install_result: Any = {"success": True, "protocol": PROTOCOL_VERSION, "audio": True}
        self.evaluate_error: Exception | None = None

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def goto(self, url: str) -> None:
        self.visited.append(url)

    async def wait_for_load_state(self, state: str | None = None) -> None:
        return None

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    async def click(self, selector: str) -> None:
        self.clicked.append(selector)

    async def wait_for_url(self, pattern: str, timeout: float | None = None) -> None:
        if not self.login_succeeds:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {pattern}")

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> None:
        if selector not in self.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append((script, arg))
        if self.evaluate_error is not None:
            raise self.evaluate_error
        if arg is not None:
            return self.install_result
        return True


class FakeDriver:
    """Stands in for async_playwright(): start() -> playwright -> chromium -> browser -> context -> page."""

    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.launch_error: Exception | None = None
        self.launch_kwargs: dict[str, Any] = {}
        self.context_kwargs: dict[str, Any] = {}
        self.context = SimpleNamespace(new_page=AsyncMock(return_value=page), close=AsyncMock())
        self.browser = SimpleNamespace(new_context=AsyncMock(side_effect=self._new_context), close=AsyncMock())
        self.playwright = SimpleNamespace(
            chromium=SimpleNamespace(launch=AsyncMock(side_effect=self._launch)),
            stop=AsyncMock(),
        )

    async def _launch(self, **kwargs: Any) -> SimpleNamespace:
        if self.launch_error is not None:
            raise self.launch_error
        self.launch_kwargs = kwargs
        return self.browser

    async def _new_context(self, **kwargs: Any) -> SimpleNamespace:
        self.context_kwargs = kwargs
        return self.context

    def __call__(self) -> SimpleNamespace:
        return SimpleNamespace(start=AsyncMock(return_value=self.playwright))


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fake_driver(fake_page: FakePage) -> FakeDriver:
    return FakeDriver(fake_page)
