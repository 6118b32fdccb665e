from app.core.config import settings
from app.core.errors import AuthRequiredError, ForbiddenError
from app.db.models.audio import Audio


def check_audio_access(audio: Audio, user_id: str | None, *, require_auth: bool | None = None) -> None:
    """Public audio, or the owner. Optionally deny anonymous callers outright."""
    if require_auth is None:
        require_auth = settings.REQUIRE_AUTH_FOR_PUBLIC_CONTENT

    if require_auth and user_id is None:
        raise AuthRequiredError("Authentication required")

    is_owner = user_id is not None and user_id == audio.created_by_id
    if not (audio.is_public or is_owner):
        raise ForbiddenError("Forbidden")


def check_owner(audio: Audio, user_id: str | None) -> None:
    if user_id is None:
        raise AuthRequiredError("Authentication required")
    if user_id != audio.created_by_id:
        raise ForbiddenError("Forbidden")
