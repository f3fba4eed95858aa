from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Organization Tenancy"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Central database settings
    database_url: str
    default_connection: str = "central"

    # Tenant databases live on this server; the database name and credentials
    # are filled in per tenant. Falls back to database_url when empty.
    tenant_database_url: str = ""
    tenant_connection: str = "tenant"
    tenant_database_prefix: str = "tenant_"
    tenant_database_suffix: str = ""
    # Engines kept open at once; the least recently used one is disposed beyond this.
    tenant_engine_cache_size: int = 32
    tenant_pool_size: int = 2
    tenant_max_overflow: int = 3

    # Host routing
    central_domains: list[str] = ["localhost"]
    resolution_strategy: str = "domain"  # "domain" | "subdomain"
    central_only_paths: list[str] = ["/admin", "/organizations"]
    tenant_only_paths: list[str] = ["/dashboard", "/campaigns", "/donations"]

    # Security settings
    secret_key: str
    credential_encryption_key: str = ""
    admin_api_token: str = ""
    session_cookie: str = "orgtenancy_session"

    # Provisioning queue
    redis_url: str = "redis://localhost:6379/0"
    provisioning_queue: str = "tenant-provisioning"
    provisioning_max_tries: int = 3
    provisioning_timeout_seconds: int = 600
    provisioning_retry_backoff_seconds: int = 30

    # Search
    meilisearch_host: str = "http://localhost:7700"
    meilisearch_key: str = ""

    # Seeding defaults
    default_locale: str = "en"
    default_timezone: str = "UTC"
    default_currency: str = "EUR"
    enabled_seeders: list[str] = [
        "roles_and_permissions",
        "panel_permissions",
        "payment_gateways",
        "categories",
        "currencies",
        "pages",
        "social_media",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("central_domains")
    @classmethod
    def _normalize_domains(cls, v: list[str]) -> list[str]:
        return [d.strip().lower().rstrip(".") for d in v if d.strip()]

    @field_validator("resolution_strategy")
    @classmethod
    def _check_strategy(cls, v: str) -> str:
        v = v.lower()
        if v not in {"domain", "subdomain"}:
            raise ValueError("resolution_strategy must be 'domain' or 'subdomain'")
        return v

    @property
    def primary_central_domain(self) -> str | None:
        return self.central_domains[0] if self.central_domains else None


settings = Settings()
