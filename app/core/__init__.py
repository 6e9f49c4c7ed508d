"""
Core application: infrastructure shared by the pos and refunds apps.

    core.models      BaseModel, UUIDPrimaryKeyMixin (import directly;
                     importing models here would trip AppRegistryNotReady)
    core.services    BaseService, ServiceResult
    core.exceptions  BaseApplicationError and its ValidationError,
                     NotFoundError and ConflictError subclasses
    core.logging     correlation_context, CorrelationIdFilter
    core.helpers     generate_token, validate_uuid
    core.views       health_check
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .helpers import generate_token, validate_uuid
from .services import BaseService, ServiceResult

__all__ = [
    "BaseApplicationError",
    "BaseService",
    "ConflictError",
    "NotFoundError",
    "ServiceResult",
    "ValidationError",
    "generate_token",
    "validate_uuid",
]
