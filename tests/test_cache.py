import asyncio
import json
import os

import pytest

from app.core.errors import DecodeError, GenerationFailed, NotFoundError
from app.schemas.peaks import PeaksArtifact
from app.services.audio.cache import PeaksCache, generate_and_save_peaks
from app.services.audio.peaks import PeakExtractor
from app.services.audio.storage import delete_audio_files, peaks_path_for

from conftest import FakeExtractor


class SlowExtractor(PeakExtractor):
    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()

    async def extract(self, path):
        self.calls += 1
        await self.release.wait()
        return PeaksArtifact.build([0.5, 0.25], 0.02, 100)


def test_peaks_path_is_json_sibling():
    assert peaks_path_for("/data/uploads/abc.mp3") == "/data/uploads/abc.json"


@pytest.mark.asyncio
async def test_generate_and_save_writes_artifact(tmp_path):
    audio = tmp_path / "abc.mp3"
    audio.write_bytes(b"mp3")
    out = await generate_and_save_peaks(str(audio), FakeExtractor(duration=1.0, rate=100))

    assert out == str(tmp_path / "abc.json")
    data = json.loads((tmp_path / "abc.json").read_text())
    assert set(data) == {"peaks", "duration", "sampleRate", "length"}
    assert data["length"] == len(data["peaks"]) == 100
    assert data["sampleRate"] == 100
    assert [p for p in os.listdir(tmp_path) if ".tmp" in p] == []


@pytest.mark.asyncio
async def test_miss_generates_then_hit_serves_same_bytes(tmp_path):
    audio = tmp_path / "abc.mp3"
    audio.write_bytes(b"mp3")
    fake = FakeExtractor()
    cache = PeaksCache(fake)

    first = await cache.get_bytes(str(audio))
    second = await cache.get_bytes(str(audio))

    assert first == second == (tmp_path / "abc.json").read_bytes()
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_existing_artifact_returned_verbatim(tmp_path):
    audio = tmp_path / "abc.mp3"
    audio.write_bytes(b"mp3")
    (tmp_path / "abc.json").write_bytes(b'{"peaks":[0.1],"duration":0.01,"sampleRate":100,"length":1}')
    fake = FakeExtractor()

    body = await PeaksCache(fake).get_bytes(str(audio))
    assert body == b'{"peaks":[0.1],"duration":0.01,"sampleRate":100,"length":1}'
    assert fake.calls == []


@pytest.mark.asyncio
async def test_missing_audio_file_is_not_found(tmp_path):
    with pytest.raises(NotFoundError):
        await PeaksCache(FakeExtractor()).get_bytes(str(tmp_path / "gone.mp3"))


@pytest.mark.asyncio
async def test_decode_failure_becomes_generation_failed(tmp_path):
    audio = tmp_path / "abc.mp3"
    audio.write_bytes(b"mp3")
    cache = PeaksCache(FakeExtractor(error=DecodeError("ffmpeg decode failed: bad header")))
    with pytest.raises(GenerationFailed):
        await cache.get_bytes(str(audio))
    assert not (tmp_path / "abc.json").exists()


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_generation(tmp_path):
    audio = tmp_path / "abc.mp3"
    audio.write_bytes(b"mp3")
    slow = SlowExtractor()
    cache = PeaksCache(slow)

    waiters = [asyncio.ensure_future(cache.get_bytes(str(audio))) for _ in range(5)]
    await asyncio.sleep(0.05)
    slow.release.set()
    results = await asyncio.gather(*waiters)

    assert slow.calls == 1
    assert len(set(results)) == 1
    assert cache._inflight == {}


@pytest.mark.asyncio
async def test_different_audios_generate_independently(tmp_path):
    for name in ("a", "b"):
        (tmp_path / f"{name}.mp3").write_bytes(b"mp3")
    fake = FakeExtractor()
    cache = PeaksCache(fake)
    await asyncio.gather(
        cache.get_bytes(str(tmp_path / "a.mp3")),
        cache.get_bytes(str(tmp_path / "b.mp3")),
    )
    assert sorted(os.path.basename(p) for p in fake.calls) == ["a.mp3", "b.mp3"]


def test_delete_audio_files_removes_artifact_too(tmp_path, monkeypatch):
    from app.core.config import settings
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    (tmp_path / "abc.mp3").write_bytes(b"mp3")
    (tmp_path / "abc.json").write_bytes(b"{}")

    removed = delete_audio_files("abc.mp3")
    assert len(removed) == 2
    assert os.listdir(tmp_path) == []
