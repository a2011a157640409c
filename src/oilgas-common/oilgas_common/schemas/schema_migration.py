"""
Schema version tracker ORM.

One row per applied migration step, present in the central database and in
every tenant database. version is the primary key, so a step can only ever be
recorded once.
"""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from oilgas_common.constants import TRACKER_SCHEMA, TRACKER_TABLE
from oilgas_common.schemas import Base


class SchemaMigration(Base):
    __tablename__ = TRACKER_TABLE
    __table_args__ = {"schema": TRACKER_SCHEMA}

    version = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    applied_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
