from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession
import asyncio, os

from app.api.deps import get_current_user_id
from app.core.errors import (
    AuthRequiredError,
    ForbiddenError,
    GenerationFailed,
    NotFoundError,
)
from app.core.logging import logger
from app.db.models.audio import Audio
from app.db.session import get_db
from app.schemas.audio import DeleteOut
from app.services.audio.access import check_audio_access, check_owner
from app.services.audio.cache import peaks_cache
from app.services.audio.storage import audio_path, delete_audio_files

router = APIRouter()

# a given audio's artifact never changes once generated
PEAKS_CACHE_CONTROL = "public, max-age=31536000, immutable"


async def _load_readable(db: AsyncSession, audio_id: str, user_id: Optional[str]) -> Audio:
    audio = await db.get(Audio, audio_id)
    if not audio:
        raise HTTPException(404, "Audio not found")
    try:
        check_audio_access(audio, user_id)
    except AuthRequiredError:
        raise HTTPException(401, "Authentication required")
    except ForbiddenError:
        raise HTTPException(403, "Forbidden")
    return audio


@router.get("/{audio_id}/peaks")
async def get_peaks(
    audio_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
):
    audio = await _load_readable(db, audio_id, user_id)
    try:
        body = await peaks_cache.get_bytes(audio_path(audio.file_path))
    except NotFoundError:
        raise HTTPException(404, "Audio file not found on disk")
    except GenerationFailed:
        raise HTTPException(500, "Peak generation failed")
    except Exception as e:
        logger.exception(f"[peaks] error serving peaks for audio={audio_id}: {e}")
        raise HTTPException(500, "Internal Server Error")

    return Response(
        content=body,
        media_type="application/json",
        headers={"Cache-Control": PEAKS_CACHE_CONTROL},
    )


@router.get("/{audio_id}/file")
async def get_audio_file(
    audio_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
):
    audio = await _load_readable(db, audio_id, user_id)
    path = audio_path(audio.file_path)
    if not await asyncio.to_thread(os.path.exists, path):
        raise HTTPException(404, "Audio file not found on disk")
    return FileResponse(path, media_type="audio/mpeg", filename=audio.original_file_name)


@router.delete("/{audio_id}", response_model=DeleteOut)
async def delete_audio(
    audio_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
):
    audio = await db.get(Audio, audio_id)
    if not audio:
        raise HTTPException(404, "Audio not found")
    try:
        check_owner(audio, user_id)
    except AuthRequiredError:
        raise HTTPException(401, "Authentication required")
    except ForbiddenError:
        raise HTTPException(403, "Forbidden")

    stored_name = audio.file_path
    await db.delete(audio)
    await db.commit()
    # peaks artifact goes with the audio so nothing is left orphaned
    await asyncio.to_thread(delete_audio_files, stored_name)
    return {"success": True, "id": audio_id}
