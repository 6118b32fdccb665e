import os

import pytest

from app.core.errors import ReencodeError
from app.services.audio import reencode as reencode_mod
from app.services.audio.reencode import cbr_temp_path, replace_with_cbr_mp3
from app.services.audio.tools import ToolError, ToolResult


def test_temp_path_is_sibling():
    assert cbr_temp_path("/data/uploads/abc.mp3") == "/data/uploads/abc-cbr.mp3"


@pytest.mark.asyncio
async def test_replace_swaps_in_encoded_file(tmp_path, monkeypatch):
    src = tmp_path / "abc.mp3"
    src.write_bytes(b"vbr-original")
    seen = []

    async def fake_run_tool(cmd, *, max_output, timeout=None):
        seen.append(list(cmd))
        with open(cmd[-1], "wb") as f:
            f.write(b"cbr-encoded")
        return ToolResult(0, b"", b"")

    monkeypatch.setattr(reencode_mod, "run_tool", fake_run_tool)
    await replace_with_cbr_mp3(str(src), bitrate_kbps=96, sample_rate=22050)

    assert src.read_bytes() == b"cbr-encoded"
    assert not (tmp_path / "abc-cbr.mp3").exists()
    cmd = seen[0]
    assert cmd[cmd.index("-b:a") + 1] == "96k"
    assert cmd[cmd.index("-ar") + 1] == "22050"
    assert cmd[cmd.index("-codec:a") + 1] == "libmp3lame"
    assert "-ac" not in cmd


@pytest.mark.asyncio
async def test_failure_keeps_original_and_removes_temp(tmp_path, monkeypatch):
    src = tmp_path / "abc.mp3"
    src.write_bytes(b"vbr-original")

    async def failing_run_tool(cmd, *, max_output, timeout=None):
        with open(cmd[-1], "wb") as f:
            f.write(b"half-written")
        raise ToolError("ffmpeg exited with status 1: Unknown encoder 'libmp3lame'")

    monkeypatch.setattr(reencode_mod, "run_tool", failing_run_tool)
    with pytest.raises(ReencodeError, match="libmp3lame"):
        await replace_with_cbr_mp3(str(src))

    assert src.read_bytes() == b"vbr-original"
    assert sorted(os.listdir(tmp_path)) == ["abc.mp3"]


@pytest.mark.asyncio
async def test_empty_encoder_output_is_an_error(tmp_path, monkeypatch):
    src = tmp_path / "abc.mp3"
    src.write_bytes(b"vbr-original")

    async def silent_run_tool(cmd, *, max_output, timeout=None):
        open(cmd[-1], "wb").close()
        return ToolResult(0, b"", b"")

    monkeypatch.setattr(reencode_mod, "run_tool", silent_run_tool)
    with pytest.raises(ReencodeError):
        await replace_with_cbr_mp3(str(src))
    assert src.read_bytes() == b"vbr-original"
    assert not (tmp_path / "abc-cbr.mp3").exists()


@pytest.mark.asyncio
async def test_missing_input(tmp_path):
    with pytest.raises(ReencodeError):
        await replace_with_cbr_mp3(str(tmp_path / "nope.mp3"))
