from __future__ import annotations

import asyncio
import os
import time
from typing import Dict, Optional

from app.core.errors import AudioPipelineError, GenerationFailed, NotFoundError
from app.core.logging import logger
from app.services.audio.peaks import PeakExtractor, get_peak_extractor
from app.services.audio.storage import peaks_path_for, write_atomic


async def generate_and_save_peaks(audio_file: str, extractor: Optional[PeakExtractor] = None) -> str:
    """Extract peaks for ``audio_file`` and write the sibling artifact. Returns its path."""
    extractor = extractor or get_peak_extractor()
    artifact = await extractor.extract(audio_file)
    out_path = peaks_path_for(audio_file)
    await asyncio.to_thread(write_atomic, out_path, artifact.model_dump_json().encode("utf-8"))
    logger.info(f"[peaks] saved '{out_path}' peaks={artifact.length} dur={artifact.duration:.2f}s")
    return out_path


class PeaksCache:
    """Serves persisted peaks artifacts and generates them on a miss.

    Concurrent misses for the same artifact share a single generation task.
    """

    def __init__(self, extractor: Optional[PeakExtractor] = None):
        self._extractor = extractor
        self._inflight: Dict[str, asyncio.Task] = {}

    @property
    def extractor(self) -> PeakExtractor:
        if self._extractor is None:
            self._extractor = get_peak_extractor()
        return self._extractor

    async def get_bytes(self, audio_file: str) -> bytes:
        """Artifact bytes for ``audio_file``, verbatim as stored on disk.

        Raises NotFoundError if the audio file itself is missing and
        GenerationFailed if extraction fails.
        """
        peaks_file = peaks_path_for(audio_file)
        data = await asyncio.to_thread(_read_if_exists, peaks_file)
        if data is not None:
            return data

        if not os.path.exists(audio_file):
            raise NotFoundError(f"Audio file not found on disk: {audio_file}")

        await self._generate_once(audio_file, peaks_file)
        data = await asyncio.to_thread(_read_if_exists, peaks_file)
        if data is None:
            raise GenerationFailed(f"Peaks artifact missing after generation: {peaks_file}")
        return data

    async def _generate_once(self, audio_file: str, key: str) -> None:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._generate(audio_file))
            self._inflight[key] = task
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        else:
            logger.info(f"[peaks] joining in-flight generation for '{audio_file}'")
        # a cancelled waiter must not cancel generation for the others
        await asyncio.shield(task)

    async def _generate(self, audio_file: str) -> None:
        s = time.time()
        logger.info(f"[peaks] cache miss, generating for '{audio_file}'")
        try:
            await generate_and_save_peaks(audio_file, self.extractor)
        except AudioPipelineError as e:
            logger.error(f"[peaks] on-demand generation failed for '{audio_file}': {e}")
            raise GenerationFailed(str(e)) from e
        except (OSError, ValueError) as e:
            logger.exception(f"[peaks] on-demand generation failed for '{audio_file}': {e}")
            raise GenerationFailed(str(e)) from e
        logger.info(f"[peaks] generated '{audio_file}' dt={time.time()-s:.2f}s")


def _read_if_exists(path: str) -> Optional[bytes]:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        return None


peaks_cache = PeaksCache()
