"""
SQL-backed entitlement record store.

Uses SQLAlchemy Core against the `subscriptions` table. Each call runs its
synchronous session work in a worker thread, so a slow database suspends
only the calling coroutine.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import select, insert, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from slideai.core.database import get_db_session, subscriptions
from slideai.features.entitlements.store import EntitlementStoreError, RecordConflictError, record_from_row
from slideai.models.entitlement import EntitlementRecord, default_record_fields

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "status",
    "free_trial_used",
    "presentations_generated",
    "is_active",
    "payment_reference",
    "amount",
    "expires_at",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlEntitlementStore:
    """SQLAlchemy implementation of EntitlementStore."""

    def __init__(self, engine: Engine):
        self.engine = engine

    # --- Blocking bodies (run in a worker thread) ---

    def _select_rows(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            with get_db_session(self.engine) as session:
                rows = session.execute(
                    select(subscriptions)
                    .where(subscriptions.c.user_id == user_id)
                    .order_by(subscriptions.c.created_at.desc())
                ).mappings().all()
        except SQLAlchemyError as e:
            raise EntitlementStoreError(f"Failed to fetch subscription: {e}") from e
        return [dict(row) for row in rows]

    def _insert_row(self, user_id: str) -> Dict[str, Any]:
        now = _utcnow()
        values = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "created_at": now,
            "updated_at": now,
            **default_record_fields(),
        }
        try:
            with get_db_session(self.engine) as session:
                session.execute(insert(subscriptions).values(**values))
        except IntegrityError as e:
            raise RecordConflictError(f"Subscription already exists for user {user_id}") from e
        except SQLAlchemyError as e:
            raise EntitlementStoreError(f"Failed to create subscription: {e}") from e
        return values

    def _update_row(self, user_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with get_db_session(self.engine) as session:
                result = session.execute(
                    update(subscriptions)
                    .where(subscriptions.c.user_id == user_id)
                    .values(**values)
                )
                if result.rowcount == 0:
                    raise EntitlementStoreError(f"No subscription found for user {user_id}")
                row = session.execute(
                    select(subscriptions).where(subscriptions.c.user_id == user_id)
                ).mappings().first()
        except SQLAlchemyError as e:
            raise EntitlementStoreError(f"Failed to update subscription: {e}") from e
        return dict(row)

    # --- EntitlementStore ---

    async def select_by_user(self, user_id: str) -> List[EntitlementRecord]:
        rows = await asyncio.to_thread(self._select_rows, user_id)
        return [record_from_row(row) for row in rows]

    async def insert_default(self, user_id: str) -> EntitlementRecord:
        return record_from_row(await asyncio.to_thread(self._insert_row, user_id))

    async def update_by_user(self, user_id: str, fields: Dict[str, Any]) -> EntitlementRecord:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")

        values = {k: getattr(v, "value", v) for k, v in fields.items()}
        values["updated_at"] = _utcnow()
        return record_from_row(await asyncio.to_thread(self._update_row, user_id, values))
