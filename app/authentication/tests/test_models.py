"""
Tests for authentication models.
"""

import pytest

from authentication.models import UserRole
from authentication.tests.factories import AdminFactory, ProProfileFactory, UserFactory
from lifecycle import ActorRole


@pytest.mark.django_db
class TestUserActorRole:
    def test_client_acts_as_client(self):
        assert UserFactory().actor_role == ActorRole.CLIENT

    def test_pro_acts_as_pro(self):
        assert UserFactory(role=UserRole.PRO).actor_role == ActorRole.PRO

    def test_admin_role_acts_as_admin(self):
        admin = AdminFactory()
        assert admin.actor_role == ActorRole.ADMIN
        assert admin.is_marketplace_admin

    def test_superuser_acts_as_admin_regardless_of_role(self):
        user = UserFactory(is_superuser=True, is_staff=True)
        assert user.actor_role == ActorRole.ADMIN


@pytest.mark.django_db
class TestProProfile:
    def test_factory_creates_pro_user(self):
        profile = ProProfileFactory()

        assert profile.user.role == UserRole.PRO
        assert profile.user.pro_profile == profile
        assert str(profile) == profile.display_name
