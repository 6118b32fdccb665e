from __future__ import annotations

import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from app.core.config import settings
from app.core.errors import DecodeError
from app.core.logging import logger
from app.services.audio.tools import ToolError, run_tool


@dataclass
class DecodedAudio:
    """Decoder output: duration plus either PCM samples or extrema pairs."""
    duration: float
    samples: np.ndarray | None = None          # mono float32, raw-PCM strategy
    extrema: list[int] = field(default_factory=list)  # interleaved (min, max), extrema strategy
    points_per_second: int | None = None


def _parse_duration(value: Any) -> float:
    try:
        duration = float(value)
    except (TypeError, ValueError):
        raise DecodeError(f"Could not determine audio duration (got {value!r})")
    if not math.isfinite(duration) or duration <= 0:
        raise DecodeError(f"Could not determine audio duration (got {value!r})")
    return duration


class AudioDecoder(ABC):
    """Turns one audio file into a DecodedAudio by shelling out to a tool."""

    @abstractmethod
    async def decode(self, path: str) -> DecodedAudio:
        ...


class FfmpegPcmDecoder(AudioDecoder):
    """ffprobe for the duration, ffmpeg for mono float32 PCM at a reduced rate."""

    def __init__(
        self,
        ffmpeg_bin: str | None = None,
        ffprobe_bin: str | None = None,
        sample_rate: int | None = None,
    ):
        self.ffmpeg_bin = ffmpeg_bin or settings.FFMPEG_BIN
        self.ffprobe_bin = ffprobe_bin or settings.FFPROBE_BIN
        self.sample_rate = int(sample_rate or settings.DECODE_SAMPLE_RATE)

    async def probe_duration(self, path: str) -> float:
        cmd = [self.ffprobe_bin, "-v", "quiet", "-print_format", "json", "-show_format", path]
        try:
            res = await run_tool(cmd, max_output=settings.PROBE_MAX_OUTPUT)
        except ToolError as e:
            raise DecodeError(f"ffprobe failed: {e}") from e
        try:
            data = json.loads(res.stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Failed to parse ffprobe output: {e}") from e
        fmt = data.get("format") if isinstance(data, dict) else None
        return _parse_duration((fmt or {}).get("duration"))

    async def decode_pcm(self, path: str) -> np.ndarray:
        cmd = [
            self.ffmpeg_bin,
            "-i", path,
            "-ac", "1",                      # downmix to mono
            "-ar", str(self.sample_rate),
            "-f", "f32le",
            "-acodec", "pcm_f32le",
            "pipe:1",
        ]
        try:
            res = await run_tool(cmd, max_output=settings.DECODE_MAX_OUTPUT)
        except ToolError as e:
            raise DecodeError(f"ffmpeg decode failed: {e}") from e
        raw = res.stdout
        # a truncated trailing sample is ignored
        usable = len(raw) - (len(raw) % 4)
        return np.frombuffer(raw[:usable], dtype="<f4")

    async def decode(self, path: str) -> DecodedAudio:
        duration = await self.probe_duration(path)
        samples = await self.decode_pcm(path)
        logger.debug(f"[decoder] pcm path='{path}' dur={duration:.3f}s samples={samples.size}")
        return DecodedAudio(duration=duration, samples=samples)


class AudiowaveformDecoder(AudioDecoder):
    """audiowaveform emitting 8-bit (min, max) pairs at a fixed points-per-second."""

    def __init__(self, bin_path: str | None = None, points_per_second: int | None = None):
        self.bin_path = bin_path or settings.AUDIOWAVEFORM_BIN
        self.points_per_second = int(points_per_second or settings.PEAKS_PER_SECOND)

    async def decode(self, path: str) -> DecodedAudio:
        cmd = [
            self.bin_path,
            "-i", path,
            "--output-format", "json",
            "--pixels-per-second", str(self.points_per_second),
            "--bits", "8",
            "-o", "-",
        ]
        try:
            res = await run_tool(cmd, max_output=settings.DECODE_MAX_OUTPUT)
        except ToolError as e:
            raise DecodeError(f"audiowaveform failed: {e}") from e

        try:
            payload = json.loads(res.stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Failed to parse audiowaveform output: {e}") from e
        if not isinstance(payload, dict):
            raise DecodeError("audiowaveform output is not an object")

        data = payload.get("data")
        if not isinstance(data, list) or not data:
            raise DecodeError("audiowaveform output has no data")

        duration = self._duration(payload)
        logger.debug(f"[decoder] extrema path='{path}' dur={duration:.3f}s values={len(data)}")
        return DecodedAudio(
            duration=duration,
            extrema=data,
            points_per_second=self.points_per_second,
        )

    def _duration(self, payload: dict) -> float:
        try:
            length = int(payload.get("length"))
            sample_rate = int(payload.get("sample_rate"))
        except (TypeError, ValueError):
            raise DecodeError("audiowaveform output lacks length/sample_rate")
        if length <= 0 or sample_rate <= 0:
            raise DecodeError(f"audiowaveform reported length={length} sample_rate={sample_rate}")

        spp = payload.get("samples_per_pixel")
        if isinstance(spp, (int, float)) and spp > 0:
            return _parse_duration(length * spp / sample_rate)
        return _parse_duration(length / self.points_per_second)
