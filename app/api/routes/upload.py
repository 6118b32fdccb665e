from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession
import asyncio, os, uuid

from app.api.deps import get_current_user_id
from app.core.config import settings
from app.core.errors import AudioPipelineError
from app.core.logging import logger
from app.db.models.audio import Audio
from app.db.session import get_db
from app.schemas.audio import UploadOut
from app.services.audio.cache import generate_and_save_peaks, peaks_cache
from app.services.audio.reencode import replace_with_cbr_mp3
from app.services.audio.storage import audio_path, delete_audio_files

router = APIRouter()

_COPY_CHUNK = 1024 * 1024


class UploadTooLarge(Exception):
    pass


def _save_capped(src, dest_path: str, max_bytes: int) -> int:
    written = 0
    try:
        with open(dest_path, "wb") as f:
            while True:
                chunk = src.read(_COPY_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLarge()
                f.write(chunk)
    except BaseException:
        if os.path.exists(dest_path):
            os.remove(dest_path)
        raise
    return written


async def _postprocess(file_path: str) -> None:
    """Normalize, then extract peaks. Both are optional; failures are logged only."""
    try:
        await replace_with_cbr_mp3(file_path)
    except AudioPipelineError as e:
        logger.warning(f"[upload] CBR re-encode failed (non-fatal), keeping original: {e}")
    except Exception as e:
        logger.exception(f"[upload] CBR re-encode crashed (non-fatal), keeping original: {e}")

    try:
        await generate_and_save_peaks(file_path, peaks_cache.extractor)
    except AudioPipelineError as e:
        logger.warning(f"[upload] peak generation failed (non-fatal): {e}")
    except Exception as e:
        logger.exception(f"[upload] peak generation crashed (non-fatal): {e}")


# ------- endpoint -------
@router.post("/upload", response_model=UploadOut)
async def upload_audio(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
):
    if user_id is None:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    if not name or file is None or not file.filename:
        return JSONResponse({"error": "Name and file are required"}, status_code=400)

    ext = os.path.splitext(file.filename)[1].lower()
    if ext not in settings.ALLOWED_UPLOAD_EXTENSIONS:
        allowed = ", ".join(settings.ALLOWED_UPLOAD_EXTENSIONS)
        return JSONResponse({"error": f"Only {allowed} files are allowed"}, status_code=400)

    audio_id = str(uuid.uuid4())
    stored_name = f"{audio_id}{ext}"
    final_path = audio_path(stored_name)

    try:
        size = await asyncio.to_thread(_save_capped, file.file, final_path, settings.MAX_UPLOAD_BYTES)
    except UploadTooLarge:
        limit_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
        return JSONResponse({"error": f"File size must be less than {limit_mb}MB"}, status_code=400)
    except OSError as e:
        logger.exception(f"[upload] could not store upload: {e}")
        return JSONResponse({"error": "Upload failed"}, status_code=500)

    logger.info(f"[upload] stored '{stored_name}' size={size}B user={user_id}")

    await _postprocess(final_path)

    try:
        await db.execute(
            insert(Audio).values(
                id=audio_id,
                name=name,
                description=description,
                original_file_name=file.filename,
                file_path=stored_name,
                created_by_id=user_id,
            )
        )
        await db.commit()
    except Exception as e:
        logger.exception(f"[upload] upload failed for '{stored_name}': {e}")
        await db.rollback()
        # no record points at these files any more
        await asyncio.to_thread(delete_audio_files, stored_name)
        return JSONResponse({"error": "Upload failed"}, status_code=500)

    return {"success": True, "id": audio_id}
