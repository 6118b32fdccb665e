from __future__ import annotations

import os
from pathlib import Path

from app.core.config import settings
from app.core.errors import ReencodeError
from app.core.logging import logger
from app.services.audio.tools import ToolError, run_tool


def cbr_temp_path(file_path: str) -> str:
    p = Path(file_path)
    return str(p.with_name(f"{p.stem}-cbr{p.suffix}"))


async def reencode_to_cbr(
    input_path: str,
    output_path: str,
    bitrate_kbps: int | None = None,
    sample_rate: int | None = None,
) -> None:
    """Re-encode to constant-bitrate MP3 at a fixed sample rate (channels kept)."""
    bitrate_kbps = int(bitrate_kbps or settings.REENCODE_BITRATE_KBPS)
    sample_rate = int(sample_rate or settings.REENCODE_SAMPLE_RATE)
    cmd = [
        settings.FFMPEG_BIN,
        "-y",
        "-i", input_path,
        "-ar", str(sample_rate),
        "-b:a", f"{bitrate_kbps}k",
        "-codec:a", "libmp3lame",
        output_path,
    ]
    try:
        await run_tool(cmd, max_output=settings.REENCODE_MAX_OUTPUT)
    except ToolError as e:
        raise ReencodeError(f"ffmpeg re-encode failed: {e}") from e
    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise ReencodeError(f"ffmpeg re-encode produced no output at '{output_path}'")


async def replace_with_cbr_mp3(
    file_path: str,
    bitrate_kbps: int | None = None,
    sample_rate: int | None = None,
) -> None:
    """Re-encode ``file_path`` in place.

    The encoder writes a sibling ``<stem>-cbr<ext>`` which is then renamed
    over the original, so a crash at any point leaves either the old or the
    new file, never neither. On failure the temp file is removed and the
    original is untouched.
    """
    if not os.path.exists(file_path):
        raise ReencodeError(f"Input audio not found: {file_path}")

    tmp_path = cbr_temp_path(file_path)
    try:
        await reencode_to_cbr(file_path, tmp_path, bitrate_kbps, sample_rate)
        os.replace(tmp_path, file_path)
    except OSError as e:
        _discard(tmp_path)
        raise ReencodeError(f"Could not replace '{file_path}': {e}") from e
    except BaseException:
        _discard(tmp_path)
        raise
    logger.info(f"[reencode] '{file_path}' -> CBR {bitrate_kbps or settings.REENCODE_BITRATE_KBPS}k")


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[reencode] could not remove temp file '{path}': {e}")
