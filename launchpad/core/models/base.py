from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, declared_attr

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseClass:
    @declared_attr
    def __tablename__(cls) -> str:
        """Convert CamelCase class name to snake_case table name"""
        import re
        name = re.sub('([A-Z])', r'_\1', cls.__name__).lower().lstrip('_')
        return name

    # Primary key for all tables
    id = Column(Integer, primary_key=True, index=True)
    
    # Audit timestamps
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

# Create the declarative base
Base = declarative_base(cls=BaseClass)
BaseModel = Base


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: datetime):
    value = ensure_utc(value)
    return value.isoformat() if value else None
