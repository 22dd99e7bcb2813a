"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps (orders, payments).

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Version counter incremented on each save

Money (import from core.money):
    - Money: Integer minor units plus currency
    - sum_money: Currency-checked sum

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, NotFoundError, PermissionDeniedError,
      ConflictError, RateLimitError, ExternalServiceError

Protocols (import from core.protocols):
    - Notifier: Notification delivery interface

Throttling (import from core.throttling):
    - SettingsRateThrottle: DRF throttle with its rate read from settings
    - OrderCreateRateThrottle: Order creation limit

Note:
    - Django models and model mixins are NOT imported here to avoid
      AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)

# Value types
from .money import Money

# Protocols (no Django dependencies)
from .protocols import Notifier

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "RateLimitError",
    "ExternalServiceError",
    # Money
    "Money",
    # Protocols
    "Notifier",
]
