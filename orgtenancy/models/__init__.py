from .reference import Category, Currency, Page, PaymentGateway, SocialMediaLink
from .tenant import Domain, ProvisioningStatus, Tenant
from .user import Permission, Role, RoleEnum, User, role_permissions, user_roles

__all__ = [
    # Central
    "Tenant",
    "Domain",
    "ProvisioningStatus",
    # Tenant-scoped
    "User",
    "Role",
    "RoleEnum",
    "Permission",
    "role_permissions",
    "user_roles",
    "PaymentGateway",
    "Category",
    "Currency",
    "Page",
    "SocialMediaLink",
]
