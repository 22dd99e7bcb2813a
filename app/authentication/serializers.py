"""
Serializers for authentication models.

This module provides DRF serializers for:
- User model (read operations)
- ProProfile model (read operations)

Related files:
    - models.py: User and ProProfile models
    - orders/serializers.py, payments/serializers.py: Nest these
"""

from rest_framework import serializers

from authentication.models import ProProfile, User


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (read operations)."""

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "role",
            "date_joined",
        ]
        read_only_fields = fields


class ProProfileSerializer(serializers.ModelSerializer):
    """
    Public professional profile.

    hourly_rate is in minor units of `currency`.
    """

    class Meta:
        model = ProProfile
        fields = [
            "id",
            "display_name",
            "hourly_rate",
            "currency",
            "is_active",
        ]
        read_only_fields = fields
