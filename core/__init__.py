"""Core logic for StoryTime: stories, review and reading progress"""
