from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user import UserSession
from app.db.session import get_db


async def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Optional[str]:
    """Resolve ``Authorization: Bearer <token>`` to a user id; anonymous -> None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    session = await db.get(UserSession, token.strip())
    if session is None or session.expires_at <= datetime.now(timezone.utc).replace(tzinfo=None):
        return None
    return session.user_id
