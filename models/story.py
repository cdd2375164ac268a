from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from models.database import Base, utcnow


class Story(Base):
    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    image_url = Column(Text, nullable=False)
    summary = Column(Text, nullable=False)
    voiceover_url = Column(Text, nullable=True)
    language = Column(String(20), nullable=False, default="english")
    category = Column(String(30), nullable=False, default="educational")
    story_type = Column(String(30), nullable=False, default="lesson")
    status = Column(String(20), index=True, nullable=False, default="draft")
    approved_by = Column(String(128), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    reviewed_at = Column(DateTime, nullable=True)


class Bookmark(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (UniqueConstraint("user_id", "story_id", name="uq_bookmark_user_story"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    story_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
