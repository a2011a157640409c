"""Unit tests for oilgas_common.identifiers."""

import pytest

from oilgas_common.exceptions import InvalidIdentifier
from oilgas_common.identifiers import (
    is_valid_tenant_id,
    tenant_database_name,
    tenant_id_from_database,
    validate_tenant_id,
)


@pytest.mark.parametrize("tenant_id", ["ab", "tenant_1", "longbeach", "a" * 20, "__", "99"])
def test_valid_tenant_ids(tenant_id):
    assert validate_tenant_id(tenant_id) == tenant_id
    assert is_valid_tenant_id(tenant_id)


@pytest.mark.parametrize(
    "tenant_id",
    [
        "a",
        "",
        "a" * 21,
        "Tenant1",
        "bad-id",
        "has space",
        "semi;colon",
        'quo"te',
        "drop table",
        "café",
        "٣٤",  # arabic-indic digits
    ],
)
def test_invalid_tenant_ids(tenant_id):
    with pytest.raises(InvalidIdentifier):
        validate_tenant_id(tenant_id)
    assert not is_valid_tenant_id(tenant_id)


def test_invalid_identifier_carries_reason():
    with pytest.raises(InvalidIdentifier) as exc_info:
        validate_tenant_id("a")
    assert exc_info.value.tenant_id == "a"
    assert "length" in exc_info.value.reason


def test_non_string_rejected():
    with pytest.raises(InvalidIdentifier):
        validate_tenant_id(None)


def test_tenant_database_name():
    assert tenant_database_name("longbeach") == "oilgas_longbeach"


def test_tenant_database_name_validates():
    with pytest.raises(InvalidIdentifier):
        tenant_database_name("Long-Beach")


def test_tenant_id_from_database():
    assert tenant_id_from_database("oilgas_longbeach") == "longbeach"
    assert tenant_id_from_database("oilgas_tenant_1") == "tenant_1"
    assert tenant_id_from_database("postgres") is None
    assert tenant_id_from_database("oilgas_X") is None
    assert tenant_id_from_database("oilgas_") is None
