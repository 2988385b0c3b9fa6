"""Normalize source videos into browser-safe WebM and inspect the result."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress
from fractions import Fraction
from pathlib import Path

import av
from av.error import FFmpegError

from models.media import MediaInfo
from services.errors import ConversionFailure

logger = logging.getLogger(__name__)

TARGET_WIDTH = 1280
TARGET_HEIGHT = 720
TARGET_FPS = 30
AUDIO_SAMPLE_RATE = 48000
DEFAULT_FPS = 30.0
CONVERTED_SUFFIX = "_converted.webm"
STDERR_TAIL_CHARS = 2000


def converted_path_for(input_path: Path) -> Path:
    """clip.mp4 -> clip_converted.webm, in the same directory."""
    input_path = Path(input_path)
    return input_path.with_name(input_path.stem + CONVERTED_SUFFIX)


def build_ffmpeg_command(ffmpeg_path: str, input_path: Path, output_path: Path) -> list[str]:
    # Letterbox into a fixed canvas so the page-side canvas never stretches frames.
    video_filter = (
        f"scale={TARGET_WIDTH}:{TARGET_HEIGHT}:force_original_aspect_ratio=decrease,"
        f"pad={TARGET_WIDTH}:{TARGET_HEIGHT}:(ow-iw)/2:(oh-ih)/2:black"
    )
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", str(input_path),
        "-c:v", "libvpx",
        "-b:v", "2M",
        "-crf", "10",
        "-quality", "realtime",
        "-c:a", "libvorbis",
        "-b:a", "128k",
        "-ar", str(AUDIO_SAMPLE_RATE),
        "-vf", video_filter,
        "-r", str(TARGET_FPS),
        "-f", "webm",
        str(output_path),
    ]


async def normalize(
    input_path: Path,
    output_path: Path | None = None,
    *,
    ffmpeg_path: str = "ffmpeg",
    timeout: float | None = None,
) -> Path:
    """
    Transcode input_path to 1280x720 / 30 fps VP8 + Vorbis (48 kHz) WebM.

    ffmpeg writes to a temporary sibling which is renamed onto output_path
    only after a clean exit, so a failed run never leaves a servable file.

    :raises ConversionFailure: ffmpeg missing, non-zero exit, or timeout
    """
    input_path = Path(input_path)
    output_path = Path(output_path) if output_path else converted_path_for(input_path)
    partial = output_path.with_name(output_path.name + ".part")
    cmd = build_ffmpeg_command(ffmpeg_path, input_path, partial)
    logger.info("[transcoder] %s -> %s", input_path.name, output_path.name)
    logger.debug("[transcoder] command: %s", " ".join(cmd))

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ConversionFailure(f"Could not start ffmpeg ({ffmpeg_path}): {e}") from e

    try:
        _, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        with suppress(ProcessLookupError):
            proc.kill()
            await proc.wait()
        partial.unlink(missing_ok=True)
        raise ConversionFailure(f"ffmpeg timed out after {timeout}s on {input_path.name}") from e

    stderr = stderr_bytes.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:]
    if proc.returncode != 0:
        partial.unlink(missing_ok=True)
        logger.error("[transcoder] ffmpeg exited %s: %s", proc.returncode, stderr)
        raise ConversionFailure(
            f"ffmpeg exited with code {proc.returncode} for {input_path.name}: {stderr.strip()[-300:]}",
            stderr=stderr,
        )
    if not partial.exists() or partial.stat().st_size == 0:
        partial.unlink(missing_ok=True)
        raise ConversionFailure(f"ffmpeg produced no output for {input_path.name}", stderr=stderr)

    os.replace(partial, output_path)
    logger.info("[transcoder] Converted %s (%d bytes)", output_path.name, output_path.stat().st_size)
    return output_path


def parse_frame_rate(value: object, default: float = DEFAULT_FPS) -> float:
    """
    Parse a frame rate such as "30000/1001", "25" or "29.97".

    Anything empty, malformed, zero-denominator or non-positive yields default.
    """
    if value is None:
        return default
    text = str(value).strip()
    if not text:
        return default
    try:
        rate = Fraction(text)
    except (ValueError, ZeroDivisionError):
        return default
    if rate <= 0:
        return default
    return float(rate)


def probe(path: Path) -> MediaInfo:
    """Read stream metadata (no frame decoding). Raises FFmpegError / OSError."""
    with av.open(str(path)) as container:
        video = container.streams.video[0] if container.streams.video else None
        has_audio = bool(container.streams.audio)

        if container.duration is not None:
            duration = float(container.duration) / av.time_base
        elif video is not None and video.duration is not None and video.time_base is not None:
            duration = float(video.duration * video.time_base)
        else:
            duration = 0.0

        if video is None:
            return MediaInfo(duration_seconds=duration, width=0, height=0, fps=DEFAULT_FPS, has_audio=has_audio)

        rate = video.average_rate or video.guessed_rate or video.base_rate
        return MediaInfo(
            duration_seconds=duration,
            width=video.codec_context.width or 0,
            height=video.codec_context.height or 0,
            fps=parse_frame_rate(rate),
            has_audio=has_audio,
        )


def verify(path: Path) -> bool:
    """True iff the file probes and reports positive width and height."""
    try:
        info = probe(path)
    except (FFmpegError, OSError, IndexError) as e:
        logger.warning("[transcoder] Probe failed for %s: %s", path, e)
        return False
    logger.info(
        "[transcoder] %s: %.2fs %dx%d %.2ffps audio=%s",
        Path(path).name,
        info.duration_seconds,
        info.width,
        info.height,
        info.fps,
        info.has_audio,
    )
    return info.width > 0 and info.height > 0
