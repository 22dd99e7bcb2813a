"""
User manager for email-based accounts with a marketplace role.
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Creates clients, pros and admins.

    Usage:
        client = User.objects.create_user("ana@example.com", "secret")
        pro = User.objects.create_user("leo@example.com", "secret", role="pro")
        admin = User.objects.create_superuser("ops@example.com", "secret")
    """

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("Email is required for every account")

        extra_fields.setdefault("is_staff", extra_fields.get("role") == "admin")
        extra_fields.setdefault("is_superuser", False)

        user = self.model(email=self.normalize_email(email), **extra_fields)
        # Accounts created without a password (seeded pros) cannot log in
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Superusers are always marketplace admins."""
        extra_fields["role"] = "admin"
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if not (extra_fields["is_staff"] and extra_fields["is_superuser"]):
            raise ValueError("Superusers need is_staff and is_superuser")

        return self.create_user(email, password, **extra_fields)
