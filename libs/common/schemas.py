"""Pydantic helpers shared by service schemas."""

from datetime import datetime

from pydantic import field_serializer


class TimestampSerializerMixin:
    """
    Serialize a ``timestamp`` field as ISO 8601 with a ``Z`` suffix.

    Usage:
        class ErrorResponse(TimestampSerializerMixin, BaseModel):
            timestamp: datetime

    Note: list the mixin BEFORE BaseModel.
    """

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat().replace("+00:00", "Z")
