"""
Custom Exception Classes for the tenancy core

Every error raised by provisioning or request-time tenant resolution derives
from TenancyError so handlers can render a consistent response and the job
runner can tell caller errors from step failures.
"""

import enum
from typing import Any

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned in error responses."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    TENANT_INACTIVE = "TENANT_INACTIVE"
    TENANT_INVALID_TRANSITION = "TENANT_INVALID_TRANSITION"
    TENANT_CROSS_DOMAIN_ACCESS = "TENANT_CROSS_DOMAIN_ACCESS"
    TENANT_CONFIGURATION = "TENANT_CONFIGURATION"

    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    PROVISIONING_DATABASE = "PROVISIONING_DATABASE"
    PROVISIONING_MIGRATION = "PROVISIONING_MIGRATION"
    PROVISIONING_SEEDING = "PROVISIONING_SEEDING"
    PROVISIONING_ADMIN = "PROVISIONING_ADMIN"
    PROVISIONING_SEARCH = "PROVISIONING_SEARCH"


class TenancyError(Exception):
    """Base exception class for all tenancy-related exceptions"""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


class TenancyConfigurationError(TenancyError):
    """Raised when required tenancy configuration is missing or invalid"""

    error_code = ErrorCode.TENANT_CONFIGURATION

    def __init__(self, message: str):
        super().__init__(message=message)


# ============================================================================
# Tenant lifecycle
# ============================================================================


class InvalidStatusTransitionError(TenancyError):
    """Raised when a tenant is moved along a transition the state machine forbids"""

    error_code = ErrorCode.TENANT_INVALID_TRANSITION

    def __init__(self, current_status: str, target_status: str, tenant_id: Any | None = None):
        super().__init__(
            message=f"Cannot transition tenant from '{current_status}' to '{target_status}'",
            status_code=status.HTTP_409_CONFLICT,
            details={"tenant_id": tenant_id, "current_status": current_status, "target_status": target_status},
        )
        self.current_status = current_status
        self.target_status = target_status


class InvalidSubdomainError(TenancyError):
    """Raised when a subdomain is not a valid DNS label"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, subdomain: str):
        super().__init__(
            message=f"'{subdomain}' is not a valid subdomain",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"subdomain": subdomain},
        )


class InvalidDomainError(TenancyError):
    """Raised when a custom domain is malformed or is one of the central domains"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, domain: str, reason: str = "is not a valid domain name"):
        super().__init__(
            message=f"'{domain}' {reason}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"domain": domain},
        )


class DuplicateTenantError(TenancyError):
    """Raised when a subdomain or domain is already taken"""

    error_code = ErrorCode.DUPLICATE_RESOURCE

    def __init__(self, field: str, value: Any):
        super().__init__(
            message=f"Tenant with {field} '{value}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"field": field, "value": value},
        )


# ============================================================================
# Provisioning step failures
# ============================================================================


class ProvisioningError(TenancyError):
    """Raised when a provisioning step fails; the job runner may retry"""

    error_code = ErrorCode.PROVISIONING_FAILED

    def __init__(self, message: str, step: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if step:
            error_details["step"] = step
        super().__init__(message=message, details=error_details)
        self.step = step


class DatabaseProvisioningError(ProvisioningError):
    error_code = ErrorCode.PROVISIONING_DATABASE

    def __init__(self, message: str, database: str | None = None):
        super().__init__(message, step="database", details={"database": database} if database else None)


class MigrationError(ProvisioningError):
    error_code = ErrorCode.PROVISIONING_MIGRATION

    def __init__(self, message: str, exit_status: int = 1, output: str = ""):
        super().__init__(message, step="migrations", details={"exit_status": exit_status})
        self.exit_status = exit_status
        self.output = output


class SeedingError(ProvisioningError):
    error_code = ErrorCode.PROVISIONING_SEEDING

    def __init__(self, message: str, seeder: str):
        super().__init__(message, step="seed", details={"seeder": seeder})
        self.seeder = seeder


class AdminProvisioningError(ProvisioningError):
    error_code = ErrorCode.PROVISIONING_ADMIN

    def __init__(self, message: str, email: str | None = None):
        super().__init__(message, step="admin", details={"email": email} if email else None)


class SearchIndexError(ProvisioningError):
    error_code = ErrorCode.PROVISIONING_SEARCH

    def __init__(self, message: str, index: str | None = None):
        super().__init__(message, step="search", details={"index": index} if index else None)


# ============================================================================
# Request-time resolution
# ============================================================================


class TenantNotFoundError(TenancyError):
    """Raised when a host matches neither a central domain nor a tenant"""

    error_code = ErrorCode.TENANT_NOT_FOUND

    def __init__(self, domain: str):
        super().__init__(
            message=f"No organization is configured for '{domain}'",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"domain": domain},
        )
        self.domain = domain


INACTIVE_MESSAGES = {
    "pending": "This organization is being set up. Please try again shortly.",
    "provisioning": "This organization is being set up. Please try again shortly.",
    "failed": "This organization could not be set up. Please contact support.",
    "suspended": "This organization has been suspended.",
}


class TenantInactiveError(TenancyError):
    """Raised when a host resolves to a tenant that cannot serve requests yet"""

    error_code = ErrorCode.TENANT_INACTIVE

    def __init__(self, tenant_id: Any, tenant_status: str):
        super().__init__(
            message=INACTIVE_MESSAGES.get(tenant_status, "This organization is not available."),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"tenant_id": tenant_id, "status": tenant_status},
        )
        self.tenant_id = tenant_id
        self.tenant_status = tenant_status

    @property
    def retryable(self) -> bool:
        return self.tenant_status in ("pending", "provisioning")


class CrossDomainAccessError(TenancyError):
    """Raised when a tenant-only route is requested on a central domain"""

    error_code = ErrorCode.TENANT_CROSS_DOMAIN_ACCESS

    def __init__(self, path: str, host: str):
        super().__init__(
            message="Not Found",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"path": path, "host": host},
        )
