"""
Presentation generation routes.

- POST /api/presentations/generate: Gate + generate + count usage
- POST /api/presentations/payment-prompt/dismiss: Close the payment prompt
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from slideai.api.deps import get_entitlement_session
from slideai.core.errors import ValidationError
from slideai.features.entitlements.provider import EntitlementSession
from slideai.features.generation.client import ContentFormat
from slideai.features.generation.gate import GateStatus


router = APIRouter(prefix="/api/presentations", tags=["presentations"])

LOGIN_URL = "/login"


class GenerateRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    num_slides: Optional[int] = Field(default=None, ge=1, le=30)
    format: ContentFormat = ContentFormat.MARKDOWN


class GenerateResponse(BaseModel):
    status: GateStatus
    download_url: Optional[str] = None
    payment_url: Optional[str] = None
    login_url: Optional[str] = None
    message: Optional[str] = None
    can_create_presentation: bool


@router.post("/generate", response_model=GenerateResponse)
async def generate_presentation(
    request: GenerateRequest,
    session: EntitlementSession = Depends(get_entitlement_session),
):
    """
    Generate a presentation if the session is entitled to.

    Outcomes (all 200):
        generated: download_url set, usage counted
        payment_required: payment_url set when a payment session was created
        login_required: login_url set
        failed: generation API error, usage not counted
    """
    topic = request.topic.strip()
    if not topic:
        raise ValidationError("Topic is required")

    result = await session.gate.generate(topic, request.num_slides, request.format)
    return {
        "status": result.status,
        "download_url": result.download_url,
        "payment_url": result.payment.payment_url if result.payment else None,
        "login_url": LOGIN_URL if result.status is GateStatus.LOGIN_REQUIRED else None,
        "message": result.message,
        "can_create_presentation": session.manager.can_create_presentation(),
    }


@router.post("/payment-prompt/dismiss")
async def dismiss_payment_prompt(session: EntitlementSession = Depends(get_entitlement_session)):
    session.gate.dismiss_payment_prompt()
    return {"ok": True}
