from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from app.core.config import settings
from app.core.errors import DecodeError
from app.schemas.peaks import PeaksArtifact
from app.services.audio.decoder import AudioDecoder, AudiowaveformDecoder, FfmpegPcmDecoder

# Fixed-rate bucket-max peaks for fast waveform rendering.
# 4 decimals roughly halves the JSON size and is invisible in the UI.
ROUND_DECIMALS = 4
EXTREMA_ZERO = 128.0


def _finish(values: np.ndarray) -> list[float]:
    values = np.nan_to_num(values, nan=0.0, posinf=1.0, neginf=0.0)
    values = np.round(np.clip(values, 0.0, 1.0), ROUND_DECIMALS)
    return values.astype(float).tolist()


def peaks_from_pcm(samples: np.ndarray, duration: float, peaks_per_second: int) -> list[float]:
    """Max |sample| per bucket, exactly ceil(duration * peaks_per_second) buckets.

    Trailing buckets that get no samples (integer-division remainder, or
    fewer samples than buckets) are 0.
    """
    total = math.ceil(duration * peaks_per_second)
    if total <= 0:
        return []
    samples = np.asarray(samples, dtype=np.float32)
    n = int(samples.size)
    spb = max(1, n // total)

    out = np.zeros(total, dtype=np.float64)
    full = min(total, n // spb)
    if full > 0:
        window = np.abs(samples[: full * spb].astype(np.float64)).reshape(full, spb)
        out[:full] = np.nan_to_num(window, nan=0.0, posinf=1.0).max(axis=1)
    return _finish(out)


def peaks_from_extrema(data: Sequence[float]) -> list[float]:
    """max(|min|, |max|) / 128 per complete pair; an odd trailing value is dropped."""
    pairs = len(data) // 2
    if pairs == 0:
        return []
    try:
        arr = np.asarray(data[: pairs * 2], dtype=np.float64).reshape(pairs, 2)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Malformed extrema data: {e}") from e
    return _finish(np.abs(arr).max(axis=1) / EXTREMA_ZERO)


class PeakExtractor(ABC):
    """extract(path) -> PeaksArtifact, one implementation per decode strategy."""

    def __init__(self, decoder: AudioDecoder, peaks_per_second: int | None = None):
        self.decoder = decoder
        self.peaks_per_second = int(peaks_per_second or settings.PEAKS_PER_SECOND)

    @abstractmethod
    async def extract(self, path: str) -> PeaksArtifact:
        ...


class PcmPeakExtractor(PeakExtractor):
    async def extract(self, path: str) -> PeaksArtifact:
        decoded = await self.decoder.decode(path)
        if decoded.samples is None:
            raise DecodeError("decoder returned no PCM samples")
        peaks = peaks_from_pcm(decoded.samples, decoded.duration, self.peaks_per_second)
        return PeaksArtifact.build(peaks, decoded.duration, self.peaks_per_second)


class ExtremaPeakExtractor(PeakExtractor):
    async def extract(self, path: str) -> PeaksArtifact:
        decoded = await self.decoder.decode(path)
        peaks = peaks_from_extrema(decoded.extrema)
        if not peaks:
            raise DecodeError("decoder returned no complete extrema pair")
        rate = decoded.points_per_second or self.peaks_per_second
        return PeaksArtifact.build(peaks, decoded.duration, rate)


def get_peak_extractor(strategy: str | None = None) -> PeakExtractor:
    strategy = (strategy or settings.PEAKS_STRATEGY).lower()
    if strategy == "pcm":
        return PcmPeakExtractor(FfmpegPcmDecoder())
    if strategy == "extrema":
        return ExtremaPeakExtractor(AudiowaveformDecoder())
    raise ValueError(f"Unknown PEAKS_STRATEGY: {strategy!r}")
