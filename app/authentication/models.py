"""
Authentication models.

This module defines the marketplace's identity models:
- User: Custom user model with email-based authentication and a marketplace role
- ProProfile: Public professional profile that orders and bookings point at

Related files:
    - managers.py: Custom user manager for email-based creation

Security:
    - User passwords hashed with Django's PBKDF2
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.conf import settings
from django.db import models

from core.models import BaseModel
from authentication.managers import UserManager
from lifecycle import ActorRole


class UserRole(models.TextChoices):
    """Marketplace roles a human account can hold."""

    CLIENT = "client", "Client"
    PRO = "pro", "Professional"
    ADMIN = "admin", "Admin"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        role: Marketplace role (client, pro or admin)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        client = User.objects.create_user(email="ana@example.com", password="...")
        pro = User.objects.create_user(email="leo@example.com", role=UserRole.PRO)
    """

    # Primary identifier (replaces username)
    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    role = models.CharField(
        max_length=16,
        choices=UserRole.choices,
        default=UserRole.CLIENT,
        db_index=True,
        help_text="Marketplace role used to gate order and payout actions",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    @property
    def actor_role(self) -> str:
        """The lifecycle ActorRole this account acts as."""
        if self.role == UserRole.ADMIN or self.is_superuser:
            return ActorRole.ADMIN
        if self.role == UserRole.PRO:
            return ActorRole.PRO
        return ActorRole.CLIENT

    @property
    def is_marketplace_admin(self) -> bool:
        return self.actor_role == ActorRole.ADMIN


class ProProfile(BaseModel):
    """
    A professional offering services on the marketplace.

    Fields:
        user: Owning account (role=pro)
        display_name: Name shown to clients
        hourly_rate: Default hourly rate in minor units
        currency: ISO 4217 code of hourly_rate
        is_active: Whether the pro accepts new work
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="pro_profile",
        help_text="Account that owns this professional profile",
    )
    display_name = models.CharField(
        max_length=120,
        help_text="Name shown to clients",
    )
    hourly_rate = models.PositiveBigIntegerField(
        default=0,
        help_text="Default hourly rate in minor currency units",
    )
    currency = models.CharField(
        max_length=3,
        default="UYU",
        help_text="ISO 4217 currency code (uppercase)",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this pro accepts new orders",
    )

    class Meta:
        ordering = ["display_name"]
        verbose_name = "pro profile"
        verbose_name_plural = "pro profiles"

    def __str__(self):
        return self.display_name
