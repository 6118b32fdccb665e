import math

import numpy as np
import pytest

from app.core.errors import DecodeError
from app.services.audio.decoder import AudioDecoder, DecodedAudio
from app.services.audio.peaks import (
    ExtremaPeakExtractor,
    PcmPeakExtractor,
    get_peak_extractor,
    peaks_from_extrema,
    peaks_from_pcm,
)


class StubDecoder(AudioDecoder):
    def __init__(self, decoded):
        self.decoded = decoded

    async def decode(self, path):
        return self.decoded


@pytest.mark.parametrize("duration", [0.01, 0.37, 1.0, 2.5, 10.0, 61.23])
def test_pcm_bucket_count_is_ceil_of_duration_times_rate(duration):
    samples = np.random.default_rng(1).uniform(-1, 1, int(duration * 8000)).astype(np.float32)
    peaks = peaks_from_pcm(samples, duration, 100)
    assert len(peaks) == math.ceil(duration * 100)


def test_ten_second_file_at_100_per_second():
    samples = np.sin(np.linspace(0, 2000 * np.pi, 80000)).astype(np.float32)
    peaks = peaks_from_pcm(samples, 10.0, 100)
    assert len(peaks) == 1000
    assert all(0.0 <= p <= 1.0 for p in peaks)


def test_bucket_takes_max_absolute_value():
    samples = np.array([0.1, -0.9, 0.2, 0.3, -0.05, 0.4], dtype=np.float32)
    # 3 buckets of 2 samples
    assert peaks_from_pcm(samples, 3.0, 1) == [0.9, 0.3, 0.4]


def test_values_rounded_to_four_decimals():
    samples = np.array([0.123456, 0.987654], dtype=np.float32)
    assert peaks_from_pcm(samples, 2.0, 1) == [0.1235, 0.9877]


def test_out_of_range_and_non_finite_samples_stay_in_unit_interval():
    samples = np.array([1.7, -3.0, np.nan, np.inf, 0.5, -0.25], dtype=np.float32)
    peaks = peaks_from_pcm(samples, 6.0, 1)
    assert all(0.0 <= p <= 1.0 for p in peaks)
    assert peaks[0] == 1.0 and peaks[2] == 0.0


def test_silence_yields_zero_buckets():
    samples = np.zeros(16000, dtype=np.float32)
    assert peaks_from_pcm(samples, 2.0, 100) == [0.0] * 200


def test_no_samples_yields_zero_buckets_of_expected_shape():
    peaks = peaks_from_pcm(np.array([], dtype=np.float32), 1.5, 100)
    assert peaks == [0.0] * 150


def test_fewer_samples_than_buckets_pads_trailing_with_zero():
    samples = np.array([0.5, -0.25], dtype=np.float32)
    assert peaks_from_pcm(samples, 4.0, 1) == [0.5, 0.25, 0.0, 0.0]


def test_pcm_extraction_is_deterministic():
    samples = np.random.default_rng(7).normal(0, 0.3, 44100).astype(np.float32)
    assert peaks_from_pcm(samples, 5.5, 100) == peaks_from_pcm(samples.copy(), 5.5, 100)


def test_extrema_pairs_map_to_unit_interval():
    assert peaks_from_extrema([-128, 127, -64, 32, 0, 0]) == [1.0, 0.5, 0.0]


def test_extrema_odd_length_drops_trailing_value():
    peaks = peaks_from_extrema([-10, 20, -30, 5, 99])
    assert len(peaks) == 2
    assert peaks == [round(20 / 128, 4), round(30 / 128, 4)]


def test_extrema_malformed_values_raise_decode_error():
    with pytest.raises(DecodeError):
        peaks_from_extrema(["a", "b"])


@pytest.mark.asyncio
async def test_pcm_extractor_builds_consistent_artifact():
    samples = np.full(8000, 0.25, dtype=np.float32)
    extractor = PcmPeakExtractor(StubDecoder(DecodedAudio(duration=1.0, samples=samples)), peaks_per_second=100)
    artifact = await extractor.extract("/x.mp3")
    assert artifact.length == len(artifact.peaks) == 100
    assert artifact.sampleRate == 100
    assert artifact.duration == 1.0
    assert set(artifact.peaks) == {0.25}


@pytest.mark.asyncio
async def test_extrema_extractor_uses_tool_rate():
    decoded = DecodedAudio(duration=0.02, extrema=[-64, 64, -128, 0, 7], points_per_second=100)
    artifact = await ExtremaPeakExtractor(StubDecoder(decoded)).extract("/x.mp3")
    assert artifact.peaks == [0.5, 1.0]
    assert artifact.sampleRate == 100
    assert artifact.length == 2


@pytest.mark.asyncio
async def test_extrema_extractor_without_complete_pair_fails():
    decoded = DecodedAudio(duration=1.0, extrema=[5], points_per_second=100)
    with pytest.raises(DecodeError):
        await ExtremaPeakExtractor(StubDecoder(decoded)).extract("/x.mp3")


def test_factory_selects_strategy():
    assert isinstance(get_peak_extractor("pcm"), PcmPeakExtractor)
    assert isinstance(get_peak_extractor("EXTREMA"), ExtremaPeakExtractor)
    with pytest.raises(ValueError):
        get_peak_extractor("rms")
