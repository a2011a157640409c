class OilgasError(Exception): ...


class ConfigurationError(OilgasError): ...


class MalformedConnectionString(ConfigurationError): ...


class InvalidIdentifier(OilgasError):
    """Raised when a tenant id fails syntax validation (before any database contact)."""

    def __init__(self, tenant_id: str, reason: str):
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Invalid tenant id {tenant_id!r}: {reason}")


class TenantNotFound(OilgasError): ...


class ProvisioningError(OilgasError):
    """Raised when creating, connecting to, migrating or seeding a tenant database fails."""

    def __init__(self, tenant_id: str, stage: str, cause: Exception):
        self.tenant_id = tenant_id
        self.stage = stage
        self.cause = cause
        super().__init__(f"Provisioning tenant {tenant_id} failed during {stage}: {cause}")


class ValidationError(OilgasError):
    """Raised when a rollout statement cannot be validated; no tenant has been touched."""

    def __init__(self, message: str, tenant_id: str | None = None, cause: Exception | None = None):
        self.tenant_id = tenant_id
        self.cause = cause
        super().__init__(message)


class PerTenantExecutionError(OilgasError):
    """Failure of one tenant's rollout transaction. Collected, never escalated."""

    def __init__(self, tenant_id: str, cause: Exception):
        self.tenant_id = tenant_id
        self.cause = cause
        super().__init__(f"{type(cause).__name__}: {cause}")


class ConsistencyDriftError(OilgasError):
    """Raised when tenants disagree on the latest applied schema version."""

    def __init__(self, groups: dict[str, list[str]]):
        self.groups = groups
        summary = ", ".join(f"{version}={len(tenants)}" for version, tenants in groups.items())
        super().__init__(f"Schema drift detected across tenants ({summary})")
