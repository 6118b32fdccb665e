from __future__ import annotations

import asyncio
import enum
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from app.client.storage import CacheEntry, CachePartition, CacheStorage
from app.core.logging import logger

AUDIO_API_REGEX = re.compile(r"^/api/audio/[^/]+/file$")
AUDIO_EXTENSIONS = (".mp3", ".wav", ".ogg", ".m4a", ".aac", ".flac", ".webm")
STATIC_EXTENSIONS = (".css", ".js", ".png", ".jpg", ".jpeg", ".svg", ".ico", ".woff", ".woff2", ".ttf")
AUTH_PREFIX = "/api/auth/"
API_PREFIX = "/api/"

SKIP_WAITING = "SKIP_WAITING"
CLEAR_CACHE = "CLEAR_CACHE"


@dataclass(frozen=True)
class OfflineCacheConfig:
    origin: str
    # caching is only active in production; in development every request goes live
    production: bool = False
    cache_name: str = "audio-marker-v1"
    audio_cache_name: str = "audio-marker-audio-v1"
    static_cache_name: str = "audio-marker-static-v1"
    static_assets: Tuple[str, ...] = ("/", "/favicon.ico", "/audio-marker-logo.svg", "/manifest.json")

    @property
    def known_caches(self) -> Tuple[str, ...]:
        return (self.cache_name, self.audio_cache_name, self.static_cache_name)


class RequestClass(str, enum.Enum):
    passthrough = "passthrough"
    auth = "auth"
    audio = "audio"
    static = "static"
    api = "api"
    default = "default"


class LifecycleState(str, enum.Enum):
    parsed = "parsed"
    installed = "installed"
    activated = "activated"


class OfflineCacheError(Exception):
    pass


def is_auth_request(request: httpx.Request) -> bool:
    return request.url.path.startswith(AUTH_PREFIX)


def is_audio_request(request: httpx.Request) -> bool:
    pathname = request.url.path.lower()
    if AUDIO_API_REGEX.match(pathname):
        return True
    if pathname.endswith(AUDIO_EXTENSIONS):
        return True
    return "audio/" in request.headers.get("accept", "")


def is_static_asset(request: httpx.Request) -> bool:
    return request.url.path.lower().endswith(STATIC_EXTENSIONS)


def is_api_request(request: httpx.Request) -> bool:
    path = request.url.path
    if AUDIO_API_REGEX.match(path) or path.startswith(AUTH_PREFIX):
        return False
    return path.startswith(API_PREFIX)


def classify(request: httpx.Request) -> RequestClass:
    if request.method != "GET" or request.url.scheme not in ("http", "https"):
        return RequestClass.passthrough
    if is_auth_request(request):
        return RequestClass.auth
    if is_audio_request(request):
        return RequestClass.audio
    if is_static_asset(request):
        return RequestClass.static
    if is_api_request(request):
        return RequestClass.api
    return RequestClass.default


# the body is stored decoded, so these no longer describe it
_HOP_HEADERS = ("content-encoding", "content-length", "transfer-encoding")


def _stored_headers(response: httpx.Response) -> list:
    return [(k, v) for k, v in response.headers.multi_items() if k.lower() not in _HOP_HEADERS]


async def _read_body(response: httpx.Response) -> bytes:
    try:
        return await response.aread()
    finally:
        await response.aclose()


def _rebuild(response: httpx.Response, body: bytes, request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        status_code=response.status_code,
        headers=_stored_headers(response),
        content=body,
        request=request,
        extensions=response.extensions,
    )


def _from_entry(entry: CacheEntry, request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        status_code=entry.status_code,
        headers=entry.headers,
        content=entry.body,
        request=request,
    )


class OfflineCacheTransport(httpx.AsyncBaseTransport):
    """Request-intercepting cache in front of another httpx transport.

    Audio bytes and static assets are served cache-first; API and other
    requests go network-first and fall back to the last good copy. Auth
    requests and anything that is not a plain http(s) GET always go live.
    """

    def __init__(
        self,
        config: OfflineCacheConfig,
        storage: CacheStorage,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.storage = storage
        self.transport = transport or httpx.AsyncHTTPTransport()
        self.state = LifecycleState.parsed

    # ---- lifecycle ------------------------------------------------------

    async def install(self) -> None:
        mode = "Production Mode" if self.config.production else "Development Mode"
        logger.info(f"[offline-cache] installing ({mode})")
        if self.config.production:
            await self._precache_static()
        else:
            logger.info("[offline-cache] development mode - skipping cache")
        self.state = LifecycleState.installed

    async def _precache_static(self) -> None:
        # all-or-nothing, nothing is stored unless every asset fetched cleanly
        entries = []
        for asset in self.config.static_assets:
            request = httpx.Request("GET", self.config.origin.rstrip("/") + asset)
            response = await self.transport.handle_async_request(request)
            body = await _read_body(response)
            if response.status_code != 200:
                raise OfflineCacheError(f"precache of {asset} failed with {response.status_code}")
            entries.append(CacheEntry(
                method="GET",
                url=str(request.url),
                status_code=response.status_code,
                headers=_stored_headers(response),
                body=body,
            ))
        partition = self.storage.open(self.config.static_cache_name)
        for entry in entries:
            await asyncio.to_thread(partition.put, entry)
        logger.info(f"[offline-cache] cached {len(entries)} static assets")

    async def activate(self) -> None:
        logger.info("[offline-cache] activating")
        known = set(self.config.known_caches)
        for name in self.storage.keys():
            if name not in known:
                logger.info(f"[offline-cache] deleting old cache: {name}")
                await asyncio.to_thread(self.storage.delete, name)
        self.state = LifecycleState.activated

    async def start(self) -> None:
        await self.install()
        await self.activate()

    async def clear_all(self) -> None:
        for name in self.storage.keys():
            logger.info(f"[offline-cache] clearing cache: {name}")
            await asyncio.to_thread(self.storage.delete, name)

    async def handle_message(self, message: dict) -> None:
        kind = message.get("type") if isinstance(message, dict) else None
        if kind == SKIP_WAITING:
            if self.state is not LifecycleState.activated:
                await self.activate()
        elif kind == CLEAR_CACHE:
            await self.clear_all()
        else:
            logger.debug(f"[offline-cache] ignoring message {message!r}")

    # ---- request handling ----------------------------------------------

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        kind = classify(request)
        if (
            kind in (RequestClass.passthrough, RequestClass.auth)
            or not self.config.production
            or self.state is not LifecycleState.activated
        ):
            return await self.transport.handle_async_request(request)

        if kind is RequestClass.audio:
            return await self._cache_first(request, self.config.audio_cache_name)
        if kind is RequestClass.static:
            return await self._cache_first(request, self.config.static_cache_name, any_partition=True)
        return await self._network_first(request, self.config.cache_name)

    async def _store(self, partition: CachePartition, request: httpx.Request,
                     response: httpx.Response, body: bytes) -> None:
        entry = CacheEntry(
            method=request.method,
            url=str(request.url),
            status_code=response.status_code,
            headers=_stored_headers(response),
            body=body,
        )
        try:
            await asyncio.to_thread(partition.put, entry)
        except OSError as e:
            logger.warning(f"[offline-cache] could not store {request.url.path}: {e}")

    async def _cache_first(self, request: httpx.Request, cache_name: str,
                           any_partition: bool = False) -> httpx.Response:
        # static lookups search every partition, audio only its own
        lookup = self.storage if any_partition else self.storage.open(cache_name)
        entry = await asyncio.to_thread(lookup.match, request.method, str(request.url))
        if entry is not None:
            logger.debug(f"[offline-cache] serving from cache: {request.url.path}")
            return _from_entry(entry, request)

        response = await self.transport.handle_async_request(request)
        if response.status_code != 200:
            return response
        body = await _read_body(response)
        await self._store(self.storage.open(cache_name), request, response, body)
        return _rebuild(response, body, request)

    async def _network_first(self, request: httpx.Request, cache_name: str) -> httpx.Response:
        try:
            response = await self.transport.handle_async_request(request)
            if response.status_code != 200:
                return response
            body = await _read_body(response)
        except httpx.TransportError as e:
            logger.info(f"[offline-cache] network failed for {request.url.path}: {e}")
            entry = await asyncio.to_thread(self.storage.match, request.method, str(request.url))
            if entry is not None:
                return _from_entry(entry, request)
            return httpx.Response(503, text="Network error", request=request)

        await self._store(self.storage.open(cache_name), request, response, body)
        return _rebuild(response, body, request)

    async def aclose(self) -> None:
        await self.transport.aclose()
