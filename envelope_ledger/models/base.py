"""
Base model shared by every persisted ledger entity.

Each entity has an opaque UUID id and an owner reference. Uniqueness
constraints are declared per model in `unique_together` and enforced by
the storage layer at commit time.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class LedgerModel(BaseModel):
    """Common fields and configuration for stored rows."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    # Each entry is a tuple of field names that must be unique together
    unique_together: ClassVar[tuple[tuple[str, ...], ...]] = ()

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique row identifier"
    )
    owner_id: UUID = Field(
        ...,
        description="Owner of this row (resolved by the caller's auth layer)"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the row was created (UTC)"
    )

    def unique_keys(self) -> list[tuple[tuple[str, ...], tuple]]:
        """
        Return (field_names, values) for every declared uniqueness constraint.

        A key holding None constrains nothing, like a partial unique index.
        """
        keys = []
        for fields in self.unique_together:
            values = tuple(getattr(self, name) for name in fields)
            if None not in values:
                keys.append((fields, values))
        return keys
