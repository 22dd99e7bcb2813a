"""
Tests for the payments app.

Provider adapters are never called for real: the fake_provider fixture
stands in for whichever adapter the registry would return.
"""
