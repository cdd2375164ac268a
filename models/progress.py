from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from models.database import Base, utcnow


class Checkpoint(Base):
    """A reading goal set by the parent (stories_read / reading_minutes / reading_days)"""
    __tablename__ = "checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    goal_type = Column(String(30), nullable=False)
    goal_target = Column(Integer, nullable=False)
    reward_title = Column(Text, nullable=False)
    reward_description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class CheckpointProgress(Base):
    __tablename__ = "checkpoint_progress"
    __table_args__ = (UniqueConstraint("checkpoint_id", "user_id", name="uq_progress_checkpoint_user"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    checkpoint_id = Column(Integer, ForeignKey("checkpoints.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(128), index=True, nullable=False)
    current_progress = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ReadingSession(Base):
    __tablename__ = "reading_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    story_id = Column(Integer, nullable=False)
    reading_date = Column(DateTime, nullable=False, default=utcnow)
    duration_minutes = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ReadingDay(Base):
    """Marks the first reading session of a (user, day); the unique key makes it count once"""
    __tablename__ = "reading_days"
    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_reading_day_user_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False)
    day = Column(Date, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
