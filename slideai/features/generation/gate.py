"""
Presentation generation gate.

Policy checkpoint in front of the generation API:
- logged-out users are sent to the login prompt
- users without entitlement get the payment prompt (one notice per opening)
- only a successful generation consumes entitlement
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from slideai.features.entitlements.manager import EntitlementManager
from slideai.features.entitlements.notifications import Notifier
from slideai.features.generation.client import ContentFormat, GenerationApiError, PresentationApiClient
from slideai.features.payments.checkout import PaymentCheckout
from slideai.features.payments.gateway import PaymentSession

logger = logging.getLogger(__name__)

UPGRADE_NOTICE = "You've used your free presentation. Upgrade to our Starter package for unlimited presentations."
GENERATED_MESSAGE = "Presentation generated successfully!"
GENERATION_FAILED_MESSAGE = "Failed to generate presentation. Please try again."


class GateStatus(str, Enum):
    GENERATED = "generated"
    PAYMENT_REQUIRED = "payment_required"
    LOGIN_REQUIRED = "login_required"
    FAILED = "failed"


@dataclass(frozen=True)
class GateResult:
    status: GateStatus
    download_url: Optional[str] = None
    payment: Optional[PaymentSession] = None
    message: Optional[str] = None


class GenerationGate:
    """One per session; remembers whether the payment prompt is open."""

    def __init__(
        self,
        manager: EntitlementManager,
        presentations: PresentationApiClient,
        checkout: PaymentCheckout,
        notifier: Notifier,
        *,
        load_timeout: float = 5.0,
    ):
        self._manager = manager
        self._presentations = presentations
        self._checkout = checkout
        self._notifier = notifier
        self._load_timeout = load_timeout
        self.payment_prompt_open = False
        self.payment_session: Optional[PaymentSession] = None

    def dismiss_payment_prompt(self) -> None:
        self.payment_prompt_open = False
        self.payment_session = None

    async def generate(
        self,
        topic: str,
        num_slides: Optional[int] = None,
        content_format: ContentFormat = ContentFormat.MARKDOWN,
    ) -> GateResult:
        identity = self._manager.identity
        if identity is None:
            return GateResult(status=GateStatus.LOGIN_REQUIRED)

        if self._manager.loading:
            await self._manager.wait_until_loaded(self._load_timeout)

        if not self._manager.can_create_presentation():
            return await self._open_payment_prompt()

        try:
            download_url = await self._presentations.generate(topic, num_slides, content_format)
        except GenerationApiError as e:
            logger.error(
                "[generation] failed",
                extra={"user_id": identity.user_id, "error_code": "generation_error", "error": str(e)},
            )
            self._notifier.error(GENERATION_FAILED_MESSAGE)
            return GateResult(status=GateStatus.FAILED, message=GENERATION_FAILED_MESSAGE)

        await self._manager.increment_presentation_count()
        self._notifier.success(GENERATED_MESSAGE)
        logger.info(
            "[generation] completed",
            extra={"user_id": identity.user_id, "content_format": ContentFormat(content_format).value},
        )
        return GateResult(status=GateStatus.GENERATED, download_url=download_url)

    async def _open_payment_prompt(self) -> GateResult:
        if self.payment_prompt_open:
            return GateResult(status=GateStatus.PAYMENT_REQUIRED, payment=self.payment_session)

        self.payment_prompt_open = True
        self._notifier.info(UPGRADE_NOTICE)
        self.payment_session = await self._checkout.start(self._manager.identity)
        return GateResult(
            status=GateStatus.PAYMENT_REQUIRED,
            payment=self.payment_session,
            message=UPGRADE_NOTICE,
        )
