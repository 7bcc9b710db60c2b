"""
slideai/features/entitlements/manager.py

Entitlement manager: the single source of truth for one session's subscription.

Handles:
- Fetch-or-create of the user's record whenever the identity changes
- Compare-and-create against concurrent sessions for the same user
- Degraded fallback record when the store is unreachable
- Two state-transition strategies: optimistic (usage counter) and
  confirmed (paid status)

Every load and update captures an epoch; results that resolve after the
identity has changed are discarded instead of committed.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from slideai.features.entitlements.notifications import Notifier
from slideai.features.entitlements.store import (
    EntitlementStore,
    EntitlementStoreError,
    RecordConflictError,
)
from slideai.models.entitlement import (
    EntitlementRecord,
    SubscriptionStatus,
    can_create_presentation,
    fallback_record,
    most_recent,
)
from slideai.models.identity import Identity


logger = logging.getLogger(__name__)

FETCH_ERROR_MESSAGE = "Failed to load subscription data. Some features may be limited."
PAID_SUCCESS_MESSAGE = "Subscription activated! You now have unlimited presentations."
PAID_ERROR_MESSAGE = "Failed to update subscription status. Please contact support."

# Fields taken from the server response after an optimistic increment
INCREMENT_RECONCILED_FIELDS = ("presentations_generated", "free_trial_used", "updated_at")


class UpdateStrategy(str, Enum):
    """How a state transition reaches the cached record."""
    OPTIMISTIC = "optimistic"  # apply locally, persist, reconcile; never roll back
    CONFIRMED = "confirmed"  # persist first, commit locally only on success


class EntitlementManager:
    """
    Per-session entitlement state.

    Public state: `identity`, `subscription`, `loading`.
    Public operations: `set_identity`, `refresh`, `can_create_presentation`,
    `increment_presentation_count`, `set_paid_status`.
    """

    def __init__(self, store: EntitlementStore, notifier: Notifier, *, session_id: Optional[str] = None):
        self._store = store
        self._notifier = notifier
        self.session_id = session_id

        self.identity: Optional[Identity] = None
        self.subscription: Optional[EntitlementRecord] = None
        self.loading = False

        self._epoch = 0
        self._pending_loads = 0
        self._error_shown = False
        self._fetch_attempted = False
        self._established = False
        self._creating: Optional[asyncio.Future] = None
        self._loaded = asyncio.Event()
        self._loaded.set()

    # --- Identity lifecycle ---

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    @property
    def fetch_attempted(self) -> bool:
        return self._fetch_attempted

    def _is_current(self, epoch: int, user_id: Optional[str]) -> bool:
        return epoch == self._epoch and self.user_id == user_id

    def _log_extra(self, user_id: Optional[str], **fields: Any) -> Dict[str, Any]:
        extra = {"user_id": user_id, "session_id": self.session_id}
        extra.update(fields)
        return extra

    async def set_identity(self, identity: Optional[Identity]) -> None:
        """
        Re-synchronize with the identity provider.

        A different user id (including logging out) supersedes any in-flight
        load and resets the per-session error/fetch flags. The same user id
        only refreshes the held token.
        """
        new_user_id = identity.user_id if identity else None
        if new_user_id == self.user_id:
            self.identity = identity
            return

        self._epoch += 1
        self.identity = identity
        self.subscription = None
        self._pending_loads = 0
        self._error_shown = False
        self._fetch_attempted = False
        self._established = False
        self._creating = None

        if identity is None:
            self.loading = False
            self._loaded.set()
            logger.info("[entitlements] identity cleared", extra=self._log_extra(None))
            return

        await self._load(self._epoch, identity.user_id)

    async def refresh(self) -> None:
        """Re-run the load for the current identity (no-op when logged out)."""
        if self.identity is None:
            return
        await self._load(self._epoch, self.identity.user_id)

    async def wait_until_loaded(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for any in-flight load to settle.

        Returns True when a user is present and a record is cached.
        """
        try:
            await asyncio.wait_for(self._loaded.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.identity is not None and self.subscription is not None

    # --- Loading ---

    async def _load(self, epoch: int, user_id: str) -> None:
        self._pending_loads += 1
        self.loading = True
        self._loaded.clear()
        self._fetch_attempted = True
        try:
            record = await self._fetch_or_create(epoch, user_id)
        except EntitlementStoreError as e:
            if self._is_current(epoch, user_id):
                self._handle_fetch_failure(user_id, e)
        else:
            if not self._is_current(epoch, user_id):
                logger.info("[entitlements] discarded stale load", extra=self._log_extra(user_id))
            elif record is not None:
                self.subscription = record
                self._established = True
                logger.info(
                    "[entitlements] loaded",
                    extra=self._log_extra(
                        user_id,
                        status=record.status.value,
                        presentations_generated=record.presentations_generated,
                    ),
                )
        finally:
            if self._is_current(epoch, user_id):
                self._pending_loads = max(0, self._pending_loads - 1)
                if self._pending_loads == 0:
                    self.loading = False
                    self._loaded.set()

    async def _fetch_or_create(self, epoch: int, user_id: str) -> Optional[EntitlementRecord]:
        records = await self._store.select_by_user(user_id)
        if records:
            if len(records) > 1:
                logger.warning(
                    "[entitlements] multiple records, using most recent",
                    extra=self._log_extra(user_id, count=len(records)),
                )
            return most_recent(records)

        if not self._is_current(epoch, user_id):
            return None
        return await self._create_default(user_id)

    async def _create_default(self, user_id: str) -> EntitlementRecord:
        """Single-flight creation: concurrent callers share one insert attempt."""
        task = self._creating
        if task is None or task.done():
            task = asyncio.ensure_future(self._compare_and_create(user_id))
            self._creating = task
        return await asyncio.shield(task)

    async def _compare_and_create(self, user_id: str) -> EntitlementRecord:
        """Read, insert if still absent, and adopt the winner on a uniqueness conflict."""
        existing = await self._store.select_by_user(user_id)
        if existing:
            logger.info("[entitlements] record appeared before create", extra=self._log_extra(user_id))
            return most_recent(existing)

        try:
            record = await self._store.insert_default(user_id)
        except RecordConflictError:
            logger.info("[entitlements] lost create race, re-fetching", extra=self._log_extra(user_id))
            rows = await self._store.select_by_user(user_id)
            if not rows:
                raise EntitlementStoreError(f"Subscription missing after conflicting insert for {user_id}")
            return most_recent(rows)

        logger.info("[entitlements] created default record", extra=self._log_extra(user_id, record_id=record.id))
        return record

    def _handle_fetch_failure(self, user_id: str, error: Exception) -> None:
        logger.error(
            "[entitlements] fetch failed",
            extra=self._log_extra(user_id, error_code="store_error", error=str(error)),
        )
        if not self._error_shown:
            self._error_shown = True
            self._notifier.error(FETCH_ERROR_MESSAGE)
        if not self._established:
            self.subscription = fallback_record(user_id)
            logger.warning("[entitlements] using fallback record", extra=self._log_extra(user_id))

    # --- Decisions ---

    def can_create_presentation(self) -> bool:
        return can_create_presentation(self.subscription)

    # --- Transitions ---

    async def increment_presentation_count(self) -> None:
        """Count one successful generation (optimistic, failures logged only)."""
        if self.identity is None or self.subscription is None:
            return
        count = self.subscription.presentations_generated + 1
        await self._transition(
            {"presentations_generated": count, "free_trial_used": count >= 1},
            UpdateStrategy.OPTIMISTIC,
            reconcile=INCREMENT_RECONCILED_FIELDS,
        )

    async def set_paid_status(self, payment_reference: Optional[str] = None) -> bool:
        """Mark the user's record paid (confirmed). Returns True once committed."""
        if self.identity is None or self.subscription is None:
            return False
        fields: Dict[str, Any] = {"status": SubscriptionStatus.PAID}
        if payment_reference:
            fields["payment_reference"] = payment_reference

        committed = await self._transition(fields, UpdateStrategy.CONFIRMED)
        if committed:
            self._notifier.success(PAID_SUCCESS_MESSAGE)
        else:
            self._notifier.error(PAID_ERROR_MESSAGE)
        return committed

    async def _transition(
        self,
        fields: Dict[str, Any],
        strategy: UpdateStrategy,
        *,
        reconcile: Optional[Iterable[str]] = None,
    ) -> bool:
        epoch, user_id = self._epoch, self.user_id

        if strategy is UpdateStrategy.OPTIMISTIC:
            self.subscription = self.subscription.model_copy(update=fields)

        try:
            stored = await self._store.update_by_user(user_id, fields)
        except EntitlementStoreError as e:
            if strategy is UpdateStrategy.OPTIMISTIC:
                logger.warning(
                    "[entitlements] optimistic update not persisted",
                    extra=self._log_extra(user_id, error_code="store_error", error=str(e)),
                )
            else:
                logger.error(
                    "[entitlements] confirmed update failed",
                    extra=self._log_extra(user_id, error_code="store_error", error=str(e)),
                )
            return False

        if not self._is_current(epoch, user_id) or self.subscription is None:
            logger.info("[entitlements] discarded stale update", extra=self._log_extra(user_id))
            return False

        if strategy is UpdateStrategy.OPTIMISTIC:
            names = tuple(reconcile) if reconcile else tuple(fields)
            self.subscription = self.subscription.model_copy(
                update={name: getattr(stored, name) for name in names}
            )
        else:
            self.subscription = stored
        logger.info(
            "[entitlements] update committed",
            extra=self._log_extra(user_id, strategy=strategy.value, fields=sorted(fields)),
        )
        return True

    # --- Views ---

    def snapshot(self) -> Dict[str, Any]:
        return {
            "loading": self.loading,
            "subscription": self.subscription.model_dump(mode="json") if self.subscription else None,
            "can_create_presentation": self.can_create_presentation(),
        }
