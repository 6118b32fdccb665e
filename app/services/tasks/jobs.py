from __future__ import annotations

import asyncio
import os
import time
from typing import List

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from app.core.logging import logger
from app.db.config import DatabaseSettings

# 동기 엔진/세션 (워커 전용, 반드시 pymysql)
_settings = DatabaseSettings()
_engine = create_engine(_settings.sync_url, pool_pre_ping=True, pool_recycle=28000)
_Session = sessionmaker(bind=_engine, autoflush=False, autocommit=False)

from app.services.audio.cache import generate_and_save_peaks   # async
from app.services.audio.reencode import replace_with_cbr_mp3   # async
from app.services.audio.storage import audio_path, peaks_path_for

from app.db.models.audio import Audio


def _resolve_file(audio_id: str) -> str | None:
    db = _Session()
    try:
        a = db.get(Audio, audio_id)
        return audio_path(a.file_path) if a else None
    finally:
        db.close()


def list_audio_ids() -> List[str]:
    db = _Session()
    try:
        return list(db.execute(select(Audio.id).order_by(Audio.created_at)).scalars())
    finally:
        db.close()


def regenerate_peaks_job(audio_id: str, force: bool = False) -> str | None:
    """
    Build the peaks artifact for one audio outside the request path.
    With force=False an existing artifact is left alone.
    """
    t0 = time.time()
    logger.info(f"[jobs] peaks audio={audio_id} START force={force}")

    path = _resolve_file(audio_id)
    if path is None:
        logger.error(f"[jobs] Audio {audio_id} not found — ABORT")
        return None
    if not os.path.exists(path):
        logger.error(f"[jobs] file missing for audio={audio_id} path='{path}' — ABORT")
        return None

    out = peaks_path_for(path)
    if not force and os.path.exists(out):
        logger.info(f"[jobs] peaks already present '{out}' — SKIP")
        return out

    try:
        out = asyncio.run(generate_and_save_peaks(path))
    except Exception as e:
        logger.exception(f"[jobs] peaks FAILED audio={audio_id}: {e} total={time.time()-t0:.2f}s")
        raise
    logger.info(f"[jobs] peaks audio={audio_id} DONE total={time.time()-t0:.2f}s")
    return out


def reencode_audio_job(audio_id: str) -> str | None:
    """
    Re-encode one stored audio to CBR, then rebuild its peaks artifact
    wholesale since the decoded samples may shift.
    """
    t0 = time.time()
    logger.info(f"[jobs] reencode audio={audio_id} START")

    path = _resolve_file(audio_id)
    if path is None or not os.path.exists(path):
        logger.error(f"[jobs] nothing to re-encode for audio={audio_id} — ABORT")
        return None

    try:
        asyncio.run(replace_with_cbr_mp3(path))
    except Exception as e:
        logger.exception(f"[jobs] reencode FAILED audio={audio_id}: {e} total={time.time()-t0:.2f}s")
        raise
    logger.info(f"[jobs] reencode DONE dt={time.time()-t0:.2f}s")

    return regenerate_peaks_job(audio_id, force=True)
