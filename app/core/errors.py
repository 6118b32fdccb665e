"""Error taxonomy of the waveform pipeline.

Tool failures carry the tool's own stderr text in the message so operators
can diagnose them from the logs. Routes never forward these messages to
clients; they answer with a generic detail string instead.
"""

STDERR_LIMIT = 2000


class AudioPipelineError(Exception):
    """Base class for every error raised by the audio services."""


class DecodeError(AudioPipelineError):
    """Probe/decode/analysis tool missing, failed, or produced unusable output."""


class ReencodeError(AudioPipelineError):
    """Encoder failure. Always non-fatal: the original file is retained."""


class NotFoundError(AudioPipelineError):
    """Audio record or its backing file is absent."""


class ForbiddenError(AudioPipelineError):
    """Requester is known but not allowed to read this audio."""


class AuthRequiredError(AudioPipelineError):
    """Policy requires an authenticated requester and there is none."""


class GenerationFailed(AudioPipelineError):
    """Peak extraction for a cache miss could not produce an artifact."""


def tool_error_text(stderr: bytes | None) -> str:
    if not stderr:
        return "no error output"
    text = stderr.decode("utf-8", errors="replace").strip()
    if len(text) > STDERR_LIMIT:
        text = "..." + text[-STDERR_LIMIT:]
    return text or "no error output"
