from __future__ import annotations

import dataclasses
import os
from typing import Optional, Tuple

import httpx

from app.client.offline_cache import OfflineCacheConfig, OfflineCacheTransport
from app.client.storage import CacheStorage
from app.schemas.peaks import PeaksArtifact


class AudioMarkerClient:
    """Async client for the audio endpoints, optionally behind the offline cache."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self._transport = transport
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
            timeout=timeout,
        )

    @classmethod
    async def with_offline_cache(
        cls,
        base_url: str,
        cache_dir: str,
        *,
        production: bool,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        static_assets: Optional[Tuple[str, ...]] = None,
    ) -> "AudioMarkerClient":
        config = OfflineCacheConfig(origin=base_url, production=production)
        if static_assets is not None:
            config = dataclasses.replace(config, static_assets=tuple(static_assets))
        cache = OfflineCacheTransport(
            config,
            CacheStorage(cache_dir),
            transport=transport,
        )
        await cache.start()
        return cls(base_url, token=token, transport=cache)

    @property
    def offline_cache(self) -> Optional[OfflineCacheTransport]:
        t = self._transport
        return t if isinstance(t, OfflineCacheTransport) else None

    async def get_peaks(self, audio_id: str) -> PeaksArtifact:
        r = await self._http.get(f"/api/audio/{audio_id}/peaks")
        r.raise_for_status()
        return PeaksArtifact.model_validate_json(r.content)

    async def get_audio(self, audio_id: str) -> bytes:
        r = await self._http.get(f"/api/audio/{audio_id}/file", headers={"Accept": "audio/mpeg"})
        r.raise_for_status()
        return r.content

    async def upload(self, name: str, path: str, description: Optional[str] = None) -> str:
        data = {"name": name}
        if description:
            data["description"] = description
        with open(path, "rb") as f:
            files = {"file": (os.path.basename(path), f, "audio/mpeg")}
            r = await self._http.post("/api/upload", data=data, files=files)
        r.raise_for_status()
        return r.json()["id"]

    async def delete(self, audio_id: str) -> None:
        r = await self._http.delete(f"/api/audio/{audio_id}")
        r.raise_for_status()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "AudioMarkerClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
