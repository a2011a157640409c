# Physical database naming
TENANT_DB_PREFIX = "oilgas_"

# Tenant identifier rules
TENANT_ID_MIN_LENGTH = 2
TENANT_ID_MAX_LENGTH = 20

# Rollout
DEFAULT_ROLLOUT_CONCURRENCY = 5

# Schema version tracker
TRACKER_SCHEMA = "migrations"
TRACKER_TABLE = "schema_migrations"
NO_VERSION = "none"

# Sentinel used when a best-effort row count could not be computed
COUNT_UNAVAILABLE = -1
