"""
slideai/models/entitlement.py

Entitlement record model.

One record per user decides whether that user may generate a presentation:
paid users always may, free users only until their first successful generation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# Reserved id for the in-memory record synthesized when the store is unreachable
FALLBACK_RECORD_ID = "fallback"


class SubscriptionStatus(str, Enum):
    FREE = "free"
    PAID = "paid"


class EntitlementRecord(BaseModel):
    """
    Per-user subscription row as held by the record store.

    Instances are immutable; state transitions produce copies via
    `model_copy(update=...)`.
    """
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str
    user_id: str
    status: SubscriptionStatus = SubscriptionStatus.FREE
    free_trial_used: bool = False
    presentations_generated: int = Field(default=0, ge=0)
    is_active: bool = True
    payment_reference: Optional[str] = None
    amount: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_fallback(self) -> bool:
        return self.id == FALLBACK_RECORD_ID

    @property
    def is_paid(self) -> bool:
        return self.status == SubscriptionStatus.PAID

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EntitlementRecord":
        """Build a record from a store row, ignoring unknown columns."""
        data = {k: v for k, v in row.items() if k in cls.model_fields}
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return cls(**data)


def default_record_fields() -> Dict[str, Any]:
    """Column values for a newly created record."""
    return {
        "status": SubscriptionStatus.FREE.value,
        "free_trial_used": False,
        "presentations_generated": 0,
        "is_active": True,
    }


def fallback_record(user_id: str) -> EntitlementRecord:
    """Non-persisted free-tier record used while the store is unreachable."""
    now = datetime.now(timezone.utc)
    return EntitlementRecord(
        id=FALLBACK_RECORD_ID,
        user_id=user_id,
        status=SubscriptionStatus.FREE,
        free_trial_used=False,
        presentations_generated=0,
        is_active=True,
        created_at=now,
        updated_at=now,
    )


def most_recent(records) -> Optional[EntitlementRecord]:
    """Pick the most recently created record; ties resolve arbitrarily."""
    epoch = datetime.min.replace(tzinfo=timezone.utc)

    def _key(record: EntitlementRecord) -> datetime:
        created = record.created_at
        if created is None:
            return epoch
        if created.tzinfo is None:
            return created.replace(tzinfo=timezone.utc)
        return created

    records = list(records)
    if not records:
        return None
    return max(records, key=_key)


def can_create_presentation(record: Optional[EntitlementRecord]) -> bool:
    """Entitlement predicate: paid, or free with no generation consumed yet."""
    if record is None:
        return False
    return record.status == SubscriptionStatus.PAID or record.presentations_generated == 0
