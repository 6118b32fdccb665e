from __future__ import annotations

import os
from pathlib import Path

from app.core.config import settings
from app.core.logging import logger


def upload_dir() -> str:
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    return settings.UPLOAD_DIR


def audio_path(stored_name: str) -> str:
    # stored names are generated by us, never client-supplied paths
    return os.path.join(upload_dir(), os.path.basename(stored_name))


def peaks_path_for(audio_file: str) -> str:
    """Sibling of the audio file: same base name, peaks extension."""
    p = Path(audio_file)
    return str(p.with_name(p.stem + settings.PEAKS_EXTENSION))


def write_atomic(path: str, data: bytes) -> None:
    tmp_path = f"{path}.tmp-{os.getpid()}"
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def delete_audio_files(stored_name: str) -> list[str]:
    """Remove an audio file and its peaks artifact. Returns the paths removed."""
    removed = []
    src = audio_path(stored_name)
    for path in (src, peaks_path_for(src)):
        try:
            os.remove(path)
            removed.append(path)
        except FileNotFoundError:
            continue
    logger.info(f"[storage] deleted {removed}")
    return removed
