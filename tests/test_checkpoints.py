"""
Reading Checkpoint Tests

Goal progress from tracked stories and reading sessions. Reading days are
counted once per (user, UTC day) via the per-day marker row.
"""

from datetime import datetime, timedelta

import pytest

from core import reading_progress
from models.progress import ReadingDay, ReadingSession
from subscription.errors import NotFound, ValidationFailed

DAY_ONE = datetime(2024, 4, 10, 8, 0)


def goal(goal_type: str, target: int, title: str = "Goal") -> dict:
    return {
        "title": title,
        "description": None,
        "goal_type": goal_type,
        "goal_target": target,
        "reward_title": "Ice cream",
        "reward_description": None,
    }


def progress_of(db, user_id: str, checkpoint_id: int) -> dict:
    db.expire_all()
    for item in reading_progress.list_with_progress(db, user_id):
        if item["id"] == checkpoint_id:
            return item
    raise AssertionError(f"checkpoint {checkpoint_id} not listed")


class TestCheckpoints:
    """Creation, listing and archiving"""

    def test_invalid_goal_type(self, db):
        with pytest.raises(ValidationFailed):
            reading_progress.create_checkpoint(db, "u1", goal("pages_read", 3))

    def test_new_checkpoint_has_zero_progress(self, db):
        checkpoint = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 3))

        item = progress_of(db, "u1", checkpoint.id)
        assert item["currentProgress"] == 0
        assert item["isCompleted"] is False
        assert item["completedAt"] is None

    def test_archive_hides_checkpoint(self, db):
        checkpoint = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 3))

        reading_progress.archive_checkpoint(db, "u1", checkpoint.id)

        assert reading_progress.list_checkpoints(db, "u1") == []

    def test_progress_rows_skip_archived(self, db):
        active = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 2))
        archived = reading_progress.create_checkpoint(db, "u1", goal("reading_days", 2))
        reading_progress.archive_checkpoint(db, "u1", archived.id)
        reading_progress.track_story(db, "u1", DAY_ONE)

        rows = reading_progress.list_progress(db, "u1")

        assert [r["checkpointId"] for r in rows] == [active.id]
        assert rows[0]["currentProgress"] == 1
        assert rows[0]["checkpoint"]["goalType"] == "stories_read"
        assert reading_progress.list_progress(db, "u2") == []

    def test_archive_other_users_checkpoint(self, db):
        checkpoint = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 3))
        with pytest.raises(NotFound):
            reading_progress.archive_checkpoint(db, "u2", checkpoint.id)


class TestTrackStory:
    """stories_read goals"""

    def test_completes_at_target(self, db):
        checkpoint = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 2))

        assert reading_progress.track_story(db, "u1", DAY_ONE) == []
        completed = reading_progress.track_story(db, "u1", DAY_ONE + timedelta(minutes=5))

        assert [c["id"] for c in completed] == [checkpoint.id]
        assert completed[0]["isCompleted"] is True
        item = progress_of(db, "u1", checkpoint.id)
        assert item["currentProgress"] == 2
        assert item["completedAt"] == "2024-04-10T08:05:00Z"

    def test_completion_is_sticky(self, db):
        checkpoint = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 1))
        reading_progress.track_story(db, "u1", DAY_ONE)

        assert reading_progress.track_story(db, "u1", DAY_ONE + timedelta(days=1)) == []

        item = progress_of(db, "u1", checkpoint.id)
        assert item["currentProgress"] == 1
        assert item["completedAt"] == "2024-04-10T08:00:00Z"

    def test_other_goal_types_untouched(self, db):
        minutes = reading_progress.create_checkpoint(db, "u1", goal("reading_minutes", 30))
        reading_progress.track_story(db, "u1", DAY_ONE)
        assert progress_of(db, "u1", minutes.id)["currentProgress"] == 0


class TestReadingSessions:
    """Sessions advance every goal type"""

    def test_session_advances_goals(self, db):
        stories_goal = reading_progress.create_checkpoint(db, "u1", goal("stories_read", 5))
        minutes_goal = reading_progress.create_checkpoint(db, "u1", goal("reading_minutes", 30))
        days_goal = reading_progress.create_checkpoint(db, "u1", goal("reading_days", 3))

        session = reading_progress.record_session(db, "u1", story_id=1, duration_minutes=12, now=DAY_ONE)

        assert session.id is not None
        assert progress_of(db, "u1", stories_goal.id)["currentProgress"] == 1
        assert progress_of(db, "u1", minutes_goal.id)["currentProgress"] == 12
        assert progress_of(db, "u1", days_goal.id)["currentProgress"] == 1

    def test_reading_day_counted_once(self, db):
        days_goal = reading_progress.create_checkpoint(db, "u1", goal("reading_days", 3))

        reading_progress.record_session(db, "u1", 1, 5, now=DAY_ONE)
        reading_progress.record_session(db, "u1", 2, 5, now=DAY_ONE + timedelta(hours=6))
        assert progress_of(db, "u1", days_goal.id)["currentProgress"] == 1

        reading_progress.record_session(db, "u1", 3, 5, now=DAY_ONE + timedelta(days=1))
        assert progress_of(db, "u1", days_goal.id)["currentProgress"] == 2

        assert db.query(ReadingDay).filter(ReadingDay.user_id == "u1").count() == 2
        assert db.query(ReadingSession).filter(ReadingSession.user_id == "u1").count() == 3

    def test_minutes_goal_completes(self, db):
        minutes_goal = reading_progress.create_checkpoint(db, "u1", goal("reading_minutes", 20))

        reading_progress.record_session(db, "u1", 1, 15, now=DAY_ONE)
        reading_progress.record_session(db, "u1", 2, 10, now=DAY_ONE + timedelta(minutes=20))

        item = progress_of(db, "u1", minutes_goal.id)
        assert item["isCompleted"] is True
        assert item["currentProgress"] == 25

    def test_negative_duration(self, db):
        with pytest.raises(ValidationFailed):
            reading_progress.record_session(db, "u1", 1, -5, now=DAY_ONE)

    def test_session_dict(self, db):
        session = reading_progress.record_session(db, "u1", 7, 3, now=DAY_ONE)
        data = reading_progress.session_to_dict(session)
        assert data["storyId"] == 7
        assert data["durationMinutes"] == 3
        assert data["readingDate"] == "2024-04-10T08:00:00Z"
