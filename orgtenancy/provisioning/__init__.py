from .admin import AdminProvisioner, AdminResult, AdminSeed
from .database_manager import DatabaseCredentials, TenantDatabaseManager
from .migrator import MigrationResult, SchemaMigrator
from .progress import ProvisioningProgress
from .search import TenantSearchIndexManager
from .seeders import ReferenceDataSeeder, SeedContext, SeederStep
from .workflow import ProvisioningResult, TenantProvisioningWorkflow

__all__ = [
    "AdminProvisioner",
    "AdminResult",
    "AdminSeed",
    "DatabaseCredentials",
    "TenantDatabaseManager",
    "MigrationResult",
    "SchemaMigrator",
    "ProvisioningProgress",
    "TenantSearchIndexManager",
    "ReferenceDataSeeder",
    "SeedContext",
    "SeederStep",
    "ProvisioningResult",
    "TenantProvisioningWorkflow",
]
