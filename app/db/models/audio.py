from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.sql import func
from app.db.base import Base

class Audio(Base):
    __tablename__ = "audio"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    original_file_name = Column(String(512), nullable=False)
    # stored file name only ("<id>.mp3"), resolved against UPLOAD_DIR
    file_path = Column(String(512), nullable=False)
    is_public = Column(Boolean, nullable=False, default=False)
    created_by_id = Column(String(36), ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
