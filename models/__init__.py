"""SQLAlchemy tables for StoryTime"""
