"""Column helpers shared by the pipeline models."""

from datetime import datetime, timezone
import enum

from sqlalchemy import Enum as SQLEnum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def enum_column_type(enum_cls: type[enum.Enum]) -> SQLEnum:
    """Persist enum *values* (``"pending"``), not member names."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )
