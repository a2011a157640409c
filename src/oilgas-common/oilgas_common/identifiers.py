"""
Tenant identifier rules and physical database naming.
"""

import re

from oilgas_common.constants import TENANT_DB_PREFIX, TENANT_ID_MAX_LENGTH, TENANT_ID_MIN_LENGTH
from oilgas_common.exceptions import InvalidIdentifier

_TENANT_ID_RE = re.compile(r"^[a-z0-9_]+$")


def validate_tenant_id(tenant_id: str) -> str:
    """
    Check a tenant id against the naming rules and return it unchanged.

    This is the only gate in front of database-name interpolation, so every
    code path that touches a tenant database calls it first.
    """
    if not isinstance(tenant_id, str):
        raise InvalidIdentifier(str(tenant_id), "must be a string")
    if not TENANT_ID_MIN_LENGTH <= len(tenant_id) <= TENANT_ID_MAX_LENGTH:
        raise InvalidIdentifier(
            tenant_id,
            f"length must be between {TENANT_ID_MIN_LENGTH} and {TENANT_ID_MAX_LENGTH} characters",
        )
    # isascii() rules out unicode digits/letters that \w-style classes would allow
    if not tenant_id.isascii() or not _TENANT_ID_RE.match(tenant_id):
        raise InvalidIdentifier(
            tenant_id, "only lowercase letters, digits and underscores are allowed"
        )
    return tenant_id


def is_valid_tenant_id(tenant_id: str) -> bool:
    try:
        validate_tenant_id(tenant_id)
    except InvalidIdentifier:
        return False
    return True


def tenant_database_name(tenant_id: str) -> str:
    """Physical database name for a tenant, e.g. longbeach -> oilgas_longbeach."""
    return f"{TENANT_DB_PREFIX}{validate_tenant_id(tenant_id)}"


def tenant_id_from_database(database_name: str) -> str | None:
    """Strip the tenant prefix; None when the name does not follow the convention."""
    if not database_name.startswith(TENANT_DB_PREFIX):
        return None
    tenant_id = database_name[len(TENANT_DB_PREFIX):]
    return tenant_id if is_valid_tenant_id(tenant_id) else None
