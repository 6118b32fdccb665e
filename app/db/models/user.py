from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func
from app.db.base import Base

class User(Base):
    __tablename__ = "user"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True)
    name = Column(String(255))
    created_at = Column(DateTime, server_default=func.now())


class UserSession(Base):
    __tablename__ = "user_session"

    token = Column(String(255), primary_key=True)
    user_id = Column(String(36), ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
