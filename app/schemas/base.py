"""Base Classes to Use as MixIns Elsewhere in App"""

from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, the storage convention for every table."""
    return datetime.now(UTC)


class AwareDateTime(TypeDecorator):
    """``TIMESTAMP WITH TIME ZONE`` that always hands back aware UTC values.

    SQLite drops the offset on storage, so naive values read back are
    tagged as UTC; naive values written are assumed to be UTC already.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def timestamp_field(**kwargs):
    """``Field`` for a non-null creation/update timestamp."""
    return Field(default_factory=utcnow, sa_type=AwareDateTime, **kwargs)


class ObservedMixin(SQLModel):
    first_observed_at: datetime = timestamp_field()
    last_observed_at: datetime = timestamp_field()
