"""Common module — shared utilities for LaborHub attendance."""

from laborhub.common.audit import AuditTrail, create_audit_entry
from laborhub.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TIMEZONE,
    ActorRole,
    CreatorType,
    RecordOrigin,
    ShiftLabel,
)
from laborhub.common.exceptions import (
    AlreadyOpenError,
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    PartialBatchError,
    ValidationException,
    register_exception_handlers,
)
from laborhub.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ActorRole",
    "CreatorType",
    "RecordOrigin",
    "ShiftLabel",
    "TIMEZONE",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AlreadyOpenError",
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "PartialBatchError",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
