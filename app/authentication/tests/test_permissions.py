"""
Tests for the role permission classes.
"""

import pytest
from django.contrib.auth.models import AnonymousUser
from rest_framework.test import APIRequestFactory

from authentication.models import UserRole
from authentication.permissions import IsClient, IsMarketplaceAdmin, IsPro
from authentication.tests.factories import UserFactory


def request_as(user):
    request = APIRequestFactory().get("/")
    request.user = user
    return request


@pytest.mark.django_db
class TestRolePermissions:
    def test_client(self, client_user):
        request = request_as(client_user)

        assert IsClient().has_permission(request, None) is True
        assert IsPro().has_permission(request, None) is False
        assert IsMarketplaceAdmin().has_permission(request, None) is False

    def test_pro_with_profile(self, pro_user):
        request = request_as(pro_user)

        assert IsPro().has_permission(request, None) is True
        assert IsClient().has_permission(request, None) is False

    def test_pro_without_profile(self):
        assert IsPro().has_permission(request_as(UserFactory(role=UserRole.PRO)), None) is False

    def test_admin_passes_every_check(self, admin_user):
        request = request_as(admin_user)

        assert IsClient().has_permission(request, None) is True
        assert IsPro().has_permission(request, None) is True
        assert IsMarketplaceAdmin().has_permission(request, None) is True

    def test_superuser_counts_as_admin(self):
        superuser = UserFactory(is_superuser=True, is_staff=True)

        assert IsMarketplaceAdmin().has_permission(request_as(superuser), None) is True

    def test_anonymous(self):
        request = request_as(AnonymousUser())

        assert IsClient().has_permission(request, None) is False
        assert IsMarketplaceAdmin().has_permission(request, None) is False
