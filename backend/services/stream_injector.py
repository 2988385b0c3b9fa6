"""
Stream injector: replaces the page camera and microphone with a looped file.

The protocol runs inside the automated page via page.evaluate():

  1. Create a hidden, looped <video> sourced from the media origin
  2. On canplay, start playback and a requestAnimationFrame draw loop
     copying frames into a 1280x720 canvas
  3. canvas.captureStream(30) provides the video track
  4. (optional) AudioContext routes the element's audio into a
     MediaStreamDestination (and the speakers, for monitoring)
  5. Both tracks are kept in window.__loopcamInjector
  6. navigator.mediaDevices.getUserMedia is overridden to hand out the
     synthetic tracks; kinds without a synthetic track go to the original

The script always resolves with {success, error?, reason?, protocol, audio}
so the controller can inspect failures without an unhandled rejection in the
page. Every failure runs stop() before resolving, and once the script has
resolved a late canplay is ignored. stop() cancels the draw loop, stops
tracks, closes the audio graph, removes the element and restores the
original getUserMedia.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "loopcam-injector/1"

CANVAS_WIDTH = 1280
CANVAS_HEIGHT = 720
CAPTURE_FPS = 30
LOAD_TIMEOUT_MS = 20_000

INSTALL_SCRIPT = r"""
(opts) => new Promise((resolve) => {
    const PROTOCOL = '__PROTOCOL__';
    const LOG = '[loopcam]';
    let settled = false;
    const finish = (result) => {
        if (settled) return;
        settled = true;
        resolve(Object.assign({ protocol: PROTOCOL, audio: false }, result));
    };

    const previous = window.__loopcamInjector;
    if (previous && typeof previous.stop === 'function') {
        try { previous.stop(); } catch (e) { console.warn(LOG, 'previous stop failed', e); }
    }

    const mediaDevices = navigator.mediaDevices;
    if (!mediaDevices || !mediaDevices.getUserMedia) {
        finish({ success: false, reason: 'graph_error', error: 'getUserMedia not available' });
        return;
    }
    const originalGetUserMedia = (previous && previous.originalGetUserMedia)
        || mediaDevices.getUserMedia.bind(mediaDevices);

    const state = {
        protocol: PROTOCOL,
        originalGetUserMedia,
        video: null,
        canvas: null,
        frameHandle: null,
        audioContext: null,
        videoTrack: null,
        audioTrack: null,
        stream: null,
        stopped: false,
        stop() {
            if (state.stopped) return true;
            state.stopped = true;
            if (state.frameHandle !== null) cancelAnimationFrame(state.frameHandle);
            state.frameHandle = null;
            if (state.stream) state.stream.getTracks().forEach((t) => t.stop());
            if (state.audioContext) state.audioContext.close().catch(() => {});
            if (state.video) {
                state.video.pause();
                state.video.removeAttribute('src');
                state.video.load();
                state.video.remove();
            }
            if (state.canvas) state.canvas.remove();
            state.stream = null;
            if (mediaDevices.getUserMedia === state.getUserMedia) {
                mediaDevices.getUserMedia = originalGetUserMedia;
            }
            if (window.__loopcamInjector === state) delete window.__loopcamInjector;
            console.log(LOG, 'synthetic stream stopped');
            return true;
        },
    };
    window.__loopcamInjector = state;

    // Every failure after this point releases what was built so far.
    const fail = (reason, error) => {
        if (settled) return;
        clearTimeout(timer);
        state.stop();
        finish({ success: false, reason, error });
    };

    const MEDIA_ERRORS = { 1: 'aborted', 2: 'network', 3: 'decode', 4: 'src_not_supported' };

    const video = document.createElement('video');
    state.video = video;
    video.src = opts.url;
    video.loop = true;
    video.autoplay = true;
    video.playsInline = true;
    video.crossOrigin = 'anonymous';
    video.muted = !opts.captureAudio;
    video.volume = 1.0;
    video.setAttribute('data-loopcam', 'source');
    Object.assign(video.style, {
        position: 'fixed', top: '-9999px', left: '-9999px',
        width: opts.width + 'px', height: opts.height + 'px',
    });
    document.body.appendChild(video);

    const timer = setTimeout(() => {
        fail('timeout', 'Timed out after ' + opts.timeoutMs + 'ms');
    }, opts.timeoutMs);

    video.onerror = () => {
        const err = video.error;
        const kind = err ? (MEDIA_ERRORS[err.code] || 'unknown') : 'unknown';
        const detail = err ? 'Error ' + err.code + ' (' + kind + '): ' + (err.message || '') : 'Unknown media error';
        fail('load_error', detail);
    };

    const buildGraph = () => {
        const canvas = document.createElement('canvas');
        canvas.width = opts.width;
        canvas.height = opts.height;
        canvas.setAttribute('data-loopcam', 'canvas');
        state.canvas = canvas;
        const ctx = canvas.getContext('2d', { alpha: false });
        if (!ctx) throw new Error('2d canvas context unavailable');

        const draw = () => {
            if (state.stopped) return;
            if (video.readyState >= 2) ctx.drawImage(video, 0, 0, canvas.width, canvas.height);
            state.frameHandle = requestAnimationFrame(draw);
        };
        draw();

        const videoTrack = canvas.captureStream(opts.fps).getVideoTracks()[0];
        if (!videoTrack) throw new Error('canvas produced no video track');
        state.videoTrack = videoTrack;

        const tracks = [videoTrack];
        if (opts.captureAudio) {
            const audioContext = new AudioContext();
            state.audioContext = audioContext;
            const source = audioContext.createMediaElementSource(video);
            const destination = audioContext.createMediaStreamDestination();
            source.connect(destination);
            source.connect(audioContext.destination);
            state.audioTrack = destination.stream.getAudioTracks()[0] || null;
            if (state.audioTrack) tracks.push(state.audioTrack);
        }
        state.stream = new MediaStream(tracks);

        state.getUserMedia = async function (constraints) {
            const wantVideo = !!(constraints && constraints.video);
            const wantAudio = !!(constraints && constraints.audio);
            if (!state.stream || state.stopped || (!wantVideo && !wantAudio)) {
                return originalGetUserMedia(constraints);
            }
            const out = [];
            if (wantVideo) out.push(state.videoTrack);
            if (wantAudio) {
                if (state.audioTrack) {
                    out.push(state.audioTrack);
                } else {
                    const real = await originalGetUserMedia({ audio: constraints.audio });
                    real.getAudioTracks().forEach((t) => out.push(t));
                }
            }
            console.log(LOG, 'getUserMedia served synthetic tracks', constraints);
            return new MediaStream(out);
        };
        mediaDevices.getUserMedia = state.getUserMedia;
    };

    video.oncanplay = () => {
        video.oncanplay = null;
        if (settled) return;
        video.play()
            .then(() => {
                if (settled) return;
                clearTimeout(timer);
                try {
                    buildGraph();
                    finish({ success: true, audio: !!state.audioTrack });
                } catch (e) {
                    fail('graph_error', String(e && e.message || e));
                }
            })
            .catch((e) => {
                fail('playback_rejected', String(e && e.message || e));
            });
    };

    video.load();
})
""".replace("__PROTOCOL__", PROTOCOL_VERSION)

TEARDOWN_SCRIPT = r"""
() => {
    const state = window.__loopcamInjector;
    if (!state || typeof state.stop !== 'function') return false;
    return state.stop();
}
"""


@dataclass
class InjectionResult:
    success: bool
    error: str | None = None
    reason: str | None = None
    protocol: str | None = None
    audio: bool = False

    @classmethod
    def from_page(cls, payload: Any) -> "InjectionResult":
        if not isinstance(payload, dict):
            return cls(success=False, reason="protocol_mismatch", error=f"Unexpected result: {payload!r}")
        result = cls(
            success=bool(payload.get("success")),
            error=payload.get("error"),
            reason=payload.get("reason"),
            protocol=payload.get("protocol"),
            audio=bool(payload.get("audio")),
        )
        if result.protocol != PROTOCOL_VERSION:
            return cls(
                success=False,
                reason="protocol_mismatch",
                error=f"Injector acknowledged {result.protocol!r}, expected {PROTOCOL_VERSION!r}",
                protocol=result.protocol,
            )
        return result


class StreamInjector:
    """Installs and tears down the synthetic camera inside a Playwright page."""

    def __init__(
        self,
        *,
        capture_audio: bool = True,
        width: int = CANVAS_WIDTH,
        height: int = CANVAS_HEIGHT,
        fps: int = CAPTURE_FPS,
        timeout_ms: int = LOAD_TIMEOUT_MS,
    ) -> None:
        self.capture_audio = capture_audio
        self._width = width
        self._height = height
        self._fps = fps
        self._timeout_ms = timeout_ms

    async def install(self, page: Page, media_url: str) -> InjectionResult:
        logger.info("[stream_injector] Installing synthetic camera from %s (audio=%s)", media_url, self.capture_audio)
        options = {
            "url": media_url,
            "width": self._width,
            "height": self._height,
            "fps": self._fps,
            "captureAudio": self.capture_audio,
            "timeoutMs": self._timeout_ms,
        }
        try:
            payload = await page.evaluate(INSTALL_SCRIPT, options)
        except PlaywrightError as e:
            return InjectionResult(success=False, reason="graph_error", error=str(e))
        result = InjectionResult.from_page(payload)
        if result.success:
            logger.info("[stream_injector] Installed (%s, audio=%s)", result.protocol, result.audio)
        else:
            logger.warning("[stream_injector] Install failed: %s (%s)", result.error, result.reason)
        return result

    async def teardown(self, page: Page) -> bool:
        """Stop the draw loop and release tracks. False if nothing was installed."""
        try:
            stopped = bool(await page.evaluate(TEARDOWN_SCRIPT))
        except PlaywrightError as e:
            logger.warning("[stream_injector] Teardown skipped: %s", e)
            return False
        if stopped:
            logger.info("[stream_injector] Synthetic camera torn down")
        return stopped
