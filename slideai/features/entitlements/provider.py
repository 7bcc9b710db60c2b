"""
Session-scoped entitlement provider.

Each browser session (cookie `slideai_session`) owns its own manager,
notification queue, payment checkout, generation gate and reconciliation
flow. The provider lives on `app.state`; nothing here is process-global.
"""
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from slideai.features.entitlements.manager import EntitlementManager
from slideai.features.entitlements.notifications import NotificationQueue
from slideai.features.entitlements.store import EntitlementStore
from slideai.features.generation.client import PresentationApiClient
from slideai.features.generation.gate import GenerationGate
from slideai.features.payments.checkout import PaymentCheckout
from slideai.features.payments.gateway import PaymentGateway
from slideai.features.payments.reconciliation import PaymentReconciliationFlow, PaymentVerifier
from slideai.models.identity import Identity

logger = logging.getLogger(__name__)

SESSION_COOKIE = "slideai_session"
MAX_SESSIONS = 10_000


@dataclass
class EntitlementSession:
    session_id: str
    manager: EntitlementManager
    notifications: NotificationQueue
    checkout: PaymentCheckout
    gate: GenerationGate
    reconciliation: PaymentReconciliationFlow


class EntitlementProvider:
    """Maps session ids to their entitlement state, evicting least recently used."""

    def __init__(
        self,
        store: EntitlementStore,
        gateway: PaymentGateway,
        presentations: PresentationApiClient,
        *,
        amount: int,
        base_url: str,
        verifier: Optional[PaymentVerifier] = None,
        identity_timeout: float = 5.0,
        max_sessions: int = MAX_SESSIONS,
    ):
        self.store = store
        self._gateway = gateway
        self._presentations = presentations
        self._amount = amount
        self._base_url = base_url
        self._verifier = verifier
        self._identity_timeout = identity_timeout
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[str, EntitlementSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def _build(self, session_id: str) -> EntitlementSession:
        notifications = NotificationQueue()
        manager = EntitlementManager(self.store, notifications, session_id=session_id)
        checkout = PaymentCheckout(self._gateway, notifications, amount=self._amount, base_url=self._base_url)
        gate = GenerationGate(
            manager,
            self._presentations,
            checkout,
            notifications,
            load_timeout=self._identity_timeout,
        )
        reconciliation = PaymentReconciliationFlow(
            manager,
            notifications,
            verifier=self._verifier,
            identity_timeout=self._identity_timeout,
        )
        return EntitlementSession(
            session_id=session_id,
            manager=manager,
            notifications=notifications,
            checkout=checkout,
            gate=gate,
            reconciliation=reconciliation,
        )

    def session(self, session_id: Optional[str] = None) -> EntitlementSession:
        """Return the session for `session_id`, creating it when unknown."""
        if session_id and session_id in self._sessions:
            self._sessions.move_to_end(session_id)
            return self._sessions[session_id]

        session_id = session_id or uuid.uuid4().hex
        session = self._build(session_id)
        self._sessions[session_id] = session
        while len(self._sessions) > self._max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("[entitlements] session evicted", extra={"session_id": evicted})
        return session

    async def bind_identity(self, session: EntitlementSession, identity: Optional[Identity]) -> None:
        """Set the session's identity, then finish any payment return left waiting on it."""
        await session.manager.set_identity(identity)
        if session.reconciliation.pending_params is not None:
            await session.reconciliation.resume()

    async def end_session(self, session_id: str) -> None:
        """Logout: clear the cached record locally and forget the session."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.manager.set_identity(None)
        session.gate.dismiss_payment_prompt()
        logger.info("[entitlements] session ended", extra={"session_id": session_id})
