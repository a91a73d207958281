from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Matches the constraint names used by the Alembic migrations
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    Declarative base for users, audit_logs and catalog_entries.

    No engine/session imports here, so Alembic and the seed script can import
    the metadata without pulling in async drivers.
    """
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
