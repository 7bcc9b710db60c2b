"""
Entitlement record store protocol.

Defines the interface for the durable per-user subscription rows.
This allows swapping the backing service (SQL database, Supabase REST)
without changing the entitlement manager.
"""
from typing import Protocol, Dict, Any, List, Mapping

from pydantic import ValidationError

from slideai.models.entitlement import EntitlementRecord


class EntitlementStore(Protocol):
    """
    Protocol for entitlement record stores.

    All methods are coroutines; every call is fallible.
    Implementations must enforce a unique constraint on user_id.
    """

    async def select_by_user(self, user_id: str) -> List[EntitlementRecord]:
        """
        Return all records for the user, newest first.

        Raises:
            EntitlementStoreError: If the store cannot be read
        """
        ...

    async def insert_default(self, user_id: str) -> EntitlementRecord:
        """
        Insert the default free-tier record for the user.

        Raises:
            RecordConflictError: If a record for the user already exists
            EntitlementStoreError: For any other store failure
        """
        ...

    async def update_by_user(self, user_id: str, fields: Dict[str, Any]) -> EntitlementRecord:
        """
        Update fields on the user's record and return the stored row.

        Raises:
            EntitlementStoreError: If the update fails or no row matches
        """
        ...


class EntitlementStoreError(Exception):
    """Base exception for entitlement store errors."""
    pass


class RecordConflictError(EntitlementStoreError):
    """Insert violated the one-record-per-user constraint."""
    pass


def record_from_row(row: Mapping[str, Any]) -> EntitlementRecord:
    """
    Parse a store row.

    Raises:
        EntitlementStoreError: If the row does not describe a valid record
    """
    try:
        return EntitlementRecord.from_row(dict(row))
    except ValidationError as e:
        raise EntitlementStoreError(f"Malformed subscription row: {e.error_count()} invalid field(s)") from e
