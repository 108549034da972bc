"""
Test suite for cal-sync.

This package contains:
- Unit tests for the time window, cache, throttle, matcher and queue
- Engine tests against the in-memory FakeStore
- EventKit adapter tests with mocked PyObjC objects
- CLI dispatch tests
"""
