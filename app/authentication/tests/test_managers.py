"""
Tests for UserManager.

Related files:
    - managers.py: Implementation under test
"""

import pytest

from authentication.models import User, UserRole


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user() method."""

    def test_creates_user_with_email_and_password(self, db):
        user = User.objects.create_user(email="mgr@example.com", password="SecurePass123!")

        assert user.pk is not None
        assert user.check_password("SecurePass123!") is True
        assert user.role == UserRole.CLIENT

    def test_normalizes_email_domain_to_lowercase(self, db):
        user = User.objects.create_user(email="Someone@EXAMPLE.COM", password="x")

        assert user.email == "Someone@example.com"

    def test_without_password_sets_unusable_password(self, db):
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_requires_email(self, db):
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email="", password="x")

    def test_accepts_role(self, db):
        user = User.objects.create_user(email="pro@example.com", role=UserRole.PRO)

        assert user.role == UserRole.PRO


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser() method."""

    def test_superuser_is_marketplace_admin(self, db):
        admin = User.objects.create_superuser(email="root@example.com", password="x")

        assert admin.is_staff is True
        assert admin.is_superuser is True
        assert admin.role == UserRole.ADMIN

    def test_rejects_non_staff_superuser(self, db):
        with pytest.raises(ValueError, match="is_staff"):
            User.objects.create_superuser(email="root@example.com", password="x", is_staff=False)
