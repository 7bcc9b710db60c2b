"""In-memory collaborators for tests (no network, no database)."""
import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from slideai.features.entitlements.store import EntitlementStoreError, RecordConflictError
from slideai.features.generation.client import ContentFormat, GenerationApiError
from slideai.features.payments.gateway import PaymentGatewayError, PaymentSession
from slideai.models.entitlement import EntitlementRecord, default_record_fields


class InMemoryEntitlementStore:
    """
    Entitlement store with a unique user_id constraint.

    Every call yields to the event loop once so concurrent callers interleave.
    Set `fail_select` / `fail_insert` / `fail_update` to simulate outages and
    `block_insert` / `block_update` (asyncio.Event) to hold calls mid-flight.
    """

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.fail_select = False
        self.fail_insert = False
        self.fail_update = False
        self.block_select_for: Dict[str, asyncio.Event] = {}
        self.block_insert: Optional[asyncio.Event] = None
        self.block_update: Optional[asyncio.Event] = None
        self.insert_started: Optional[asyncio.Event] = None
        self.select_calls = 0
        self.insert_calls = 0
        self.update_calls = 0
        self.conflicts = 0
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def seed(self, user_id: str, **fields) -> EntitlementRecord:
        now = self._tick()
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            **default_record_fields(),
            "created_at": now,
            "updated_at": now,
        }
        row.update({k: getattr(v, "value", v) for k, v in fields.items()})
        self.rows[row["id"]] = row
        return EntitlementRecord.from_row(row)

    def records_for(self, user_id: str) -> List[EntitlementRecord]:
        rows = [r for r in self.rows.values() if r["user_id"] == user_id]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [EntitlementRecord.from_row(r) for r in rows]

    async def select_by_user(self, user_id: str) -> List[EntitlementRecord]:
        self.select_calls += 1
        await asyncio.sleep(0)
        gate = self.block_select_for.get(user_id)
        if gate is not None:
            await gate.wait()
        if self.fail_select:
            raise EntitlementStoreError("store unreachable")
        return self.records_for(user_id)

    async def insert_default(self, user_id: str) -> EntitlementRecord:
        self.insert_calls += 1
        if self.insert_started is not None:
            self.insert_started.set()
        await asyncio.sleep(0)
        if self.block_insert is not None:
            await self.block_insert.wait()
        if self.fail_insert:
            raise EntitlementStoreError("store unreachable")
        if self.records_for(user_id):
            self.conflicts += 1
            raise RecordConflictError(f"duplicate subscription for {user_id}")
        return self.seed(user_id)

    async def update_by_user(self, user_id: str, fields: Dict[str, Any]) -> EntitlementRecord:
        self.update_calls += 1
        await asyncio.sleep(0)
        if self.block_update is not None:
            await self.block_update.wait()
        if self.fail_update:
            raise EntitlementStoreError("store unreachable")
        rows = [r for r in self.rows.values() if r["user_id"] == user_id]
        if not rows:
            raise EntitlementStoreError(f"No subscription found for user {user_id}")
        for row in rows:
            row.update({k: getattr(v, "value", v) for k, v in fields.items()})
            row["updated_at"] = self._tick()
        return self.records_for(user_id)[0]


class FakeGateway:
    def __init__(self, payment_url: str = "https://pay.example.com/session/abc", fail: bool = False):
        self.payment_url = payment_url
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def create_payment(self, amount: int, redirect_url: Optional[str] = None) -> PaymentSession:
        self.calls.append({"amount": amount, "redirect_url": redirect_url})
        await asyncio.sleep(0)
        if self.fail:
            raise PaymentGatewayError("Payment API error: 503 Service Unavailable")
        return PaymentSession(payment_url=self.payment_url, special_reference=f"ref_{len(self.calls)}")


class FakePresentations:
    def __init__(self, download_url: str = "https://files.example.com/deck.pptx", fail: bool = False):
        self.download_url = download_url
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, topic: str, num_slides: Optional[int] = None, content_format=ContentFormat.MARKDOWN) -> str:
        self.calls.append({"topic": topic, "num_slides": num_slides, "format": ContentFormat(content_format)})
        await asyncio.sleep(0)
        if self.fail:
            raise GenerationApiError("API error: 500 Internal Server Error")
        return self.download_url
