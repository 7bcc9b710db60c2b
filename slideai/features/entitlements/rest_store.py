"""
PostgREST (Supabase) entitlement record store.

Talks to `<SUPABASE_URL>/rest/v1/subscriptions` with httpx. Requests carry
the configured key; an access token, when given, replaces it as the bearer.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from slideai.features.entitlements.store import EntitlementStoreError, RecordConflictError, record_from_row
from slideai.models.entitlement import EntitlementRecord, default_record_fields

logger = logging.getLogger(__name__)

TABLE = "subscriptions"
UNIQUE_VIOLATION = "23505"


class RestEntitlementStore:
    """httpx implementation of EntitlementStore against PostgREST."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    @property
    def _url(self) -> str:
        return f"{self.base_url}/rest/v1/{TABLE}"

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def _request(self, method: str, *, params=None, json=None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.request(method, self._url, params=params, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            raise EntitlementStoreError(f"Subscription store unreachable: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        code = None
        try:
            code = response.json().get("code")
        except ValueError:
            pass
        if response.status_code == 409 or code == UNIQUE_VIOLATION:
            raise RecordConflictError(f"Failed to {action}: duplicate subscription")
        raise EntitlementStoreError(f"Failed to {action}: HTTP {response.status_code}")

    @staticmethod
    def _rows(response: httpx.Response, action: str) -> List[Dict[str, Any]]:
        try:
            data = response.json()
        except ValueError as e:
            raise EntitlementStoreError(f"Failed to {action}: malformed response") from e
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
            raise EntitlementStoreError(f"Failed to {action}: malformed response")
        return data

    async def select_by_user(self, user_id: str) -> List[EntitlementRecord]:
        response = await self._request(
            "GET",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.desc"},
        )
        self._raise_for_status(response, "fetch subscription")
        return [record_from_row(row) for row in self._rows(response, "fetch subscription")]

    async def insert_default(self, user_id: str) -> EntitlementRecord:
        response = await self._request("POST", json={"user_id": user_id, **default_record_fields()})
        self._raise_for_status(response, "create subscription")
        rows = self._rows(response, "create subscription")
        if not rows:
            raise EntitlementStoreError("Failed to create subscription: empty response")
        return record_from_row(rows[0])

    async def update_by_user(self, user_id: str, fields: Dict[str, Any]) -> EntitlementRecord:
        body: Dict[str, Any] = {}
        for key, value in fields.items():
            value = getattr(value, "value", value)
            if isinstance(value, datetime):
                value = value.isoformat()
            body[key] = value
        body["updated_at"] = datetime.now(timezone.utc).isoformat()

        response = await self._request("PATCH", params={"user_id": f"eq.{user_id}"}, json=body)
        self._raise_for_status(response, "update subscription")
        rows = self._rows(response, "update subscription")
        if not rows:
            raise EntitlementStoreError(f"No subscription found for user {user_id}")
        return record_from_row(rows[0])
