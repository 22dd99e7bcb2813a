"""
Tests for users, roles and pro profiles.
"""
