import datetime as dt
import uuid
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String, Text, UniqueConstraint

from .db import Base

DEFAULT_FOLDER_COLOR = "#6366f1"


def _uuid() -> str:
    return str(uuid.uuid4())


def _timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class Folder(Base):
    __tablename__ = "folders"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_folders_user_name"),)

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=False, default=DEFAULT_FOLDER_COLOR)
    created_at = Column(String, nullable=False, default=_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "color": self.color,
            "created_at": self.created_at,
        }


class Channel(Base):
    __tablename__ = "channels"
    __table_args__ = (UniqueConstraint("user_id", "channel_id", name="uq_channels_user_channel"),)

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    channel_id = Column(String, nullable=False)
    channel_name = Column(String, nullable=False)
    channel_url = Column(String, nullable=False)
    custom_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    subscriber_count = Column(Integer, nullable=False, default=0)
    video_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)
    country = Column(String, nullable=True)
    published_at = Column(String, nullable=True)
    keywords = Column(JSON, nullable=True)
    topic_categories = Column(JSON, nullable=True)
    source = Column(String, nullable=False, default="manual")
    is_monetized = Column(Boolean, nullable=True)
    monetization_checked_at = Column(String, nullable=True)
    monetization_confidence = Column(String, nullable=True)
    monetization_reason = Column(Text, nullable=True)
    folder_id = Column(String, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(String, nullable=False, default=_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}
