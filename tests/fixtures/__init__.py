"""Shared test doubles for JobForge tests."""

from tests.fixtures.doubles import ENGLISH_TEXT, FakeClock, FailingStage, RecordingNotifier

__all__ = ["ENGLISH_TEXT", "FakeClock", "FailingStage", "RecordingNotifier"]
