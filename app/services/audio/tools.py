from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from app.core.config import settings
from app.core.errors import tool_error_text
from app.core.logging import logger

# stderr is only kept for diagnostics
STDERR_MAX_OUTPUT = 256 * 1024
_CHUNK = 64 * 1024


class ToolError(Exception):
    """Raised by run_tool. Callers re-wrap it into their own error type."""


@dataclass
class ToolResult:
    returncode: int
    stdout: bytes
    stderr: bytes


async def _read_capped(stream: asyncio.StreamReader, limit: int, name: str, *, strict: bool) -> bytes:
    buf = bytearray()
    while True:
        chunk = await stream.read(_CHUNK)
        if not chunk:
            return bytes(buf)
        if len(buf) + len(chunk) > limit:
            if strict:
                raise ToolError(f"{name} exceeded {limit} bytes")
            # keep draining so the child never blocks on a full pipe
            buf.extend(chunk[: max(0, limit - len(buf))])
            continue
        buf.extend(chunk)


async def run_tool(
    cmd: Sequence[str],
    *,
    max_output: int,
    timeout: float | None = None,
) -> ToolResult:
    """Run an external tool once, capturing at most ``max_output`` bytes of stdout.

    The process is killed when stdout grows past the cap or the wall-clock
    timeout expires. A non-zero exit status is reported as ``ToolError`` with
    the tool's stderr embedded.
    """
    timeout = settings.TOOL_TIMEOUT_SECONDS if timeout is None else timeout
    tool = cmd[0]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ToolError(f"{tool} is not invocable: {e}") from e

    async def _collect() -> tuple[bytes, bytes]:
        out, err = await asyncio.gather(
            _read_capped(proc.stdout, max_output, "stdout", strict=True),
            _read_capped(proc.stderr, STDERR_MAX_OUTPUT, "stderr", strict=False),
        )
        await proc.wait()
        return out, err

    try:
        stdout, stderr = await asyncio.wait_for(_collect(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        raise ToolError(f"{tool} timed out after {timeout:.0f}s")
    except ToolError as e:
        await _kill(proc)
        raise ToolError(f"{tool} output too large: {e}") from e
    except BaseException:
        # cancelled request: do not leave the child running
        await _kill(proc)
        raise

    if proc.returncode != 0:
        raise ToolError(f"{tool} exited with status {proc.returncode}: {tool_error_text(stderr)}")

    logger.debug(f"[tools] {tool} ok stdout={len(stdout)}B")
    return ToolResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
