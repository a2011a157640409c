"""
Reference data seeded into every new tenant database.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

GRADES = (
    ("J55", "Standard grade steel casing - most common"),
    ("JZ55", "Enhanced J55 grade with improved properties"),
    ("L80", "Higher strength grade for moderate environments"),
    ("N80", "Medium strength grade for standard applications"),
    ("P105", "High performance grade for demanding conditions"),
    ("P110", "Premium performance grade for extreme environments"),
    ("Q125", "Ultra-high strength grade for specialized applications"),
    ("C75", "Carbon steel grade for basic applications"),
    ("C95", "Higher carbon steel grade"),
    ("T95", "Tough grade for harsh environments"),
)

SIZES = (
    ('4 1/2"', "4.5 inch diameter - small casing"),
    ('5"', "5 inch diameter - intermediate casing"),
    ('5 1/2"', "5.5 inch diameter - common production casing"),
    ('7"', "7 inch diameter - intermediate casing"),
    ('8 5/8"', "8.625 inch diameter - surface casing"),
    ('9 5/8"', "9.625 inch diameter - surface casing"),
    ('10 3/4"', "10.75 inch diameter - surface casing"),
    ('13 3/8"', "13.375 inch diameter - surface casing"),
    ('16"', "16 inch diameter - conductor casing"),
    ('18 5/8"', "18.625 inch diameter - conductor casing"),
    ('20"', "20 inch diameter - large conductor casing"),
    ('24"', "24 inch diameter - extra large conductor"),
    ('30"', "30 inch diameter - structural casing"),
)

_INSERT_GRADE = text(
    "INSERT INTO store.grade (grade, description) VALUES (:code, :description) "
    "ON CONFLICT (grade) DO NOTHING"
)
_INSERT_SIZE = text(
    "INSERT INTO store.sizes (size, description) VALUES (:code, :description) "
    "ON CONFLICT (size) DO NOTHING"
)


async def seed_reference_data(conn: AsyncConnection) -> None:
    """Insert standard grades and pipe sizes; rows already present are left alone."""
    await conn.execute(_INSERT_GRADE, [{"code": c, "description": d} for c, d in GRADES])
    await conn.execute(_INSERT_SIZE, [{"code": c, "description": d} for c, d in SIZES])
