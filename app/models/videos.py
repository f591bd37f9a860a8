import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.database import Base


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        CheckConstraint("duration > 0 AND duration <= 5000", name="ck_videos_duration"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    filename = Column(String, nullable=False, unique=True)
    original_name = Column(String, nullable=False)

    # milliseconds
    duration = Column(Integer, nullable=False)
    size = Column(Integer, nullable=False)

    skill_category = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
