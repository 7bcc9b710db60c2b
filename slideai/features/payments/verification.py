"""
Payment redirect verification.

The gateway redirects back with query parameters describing the outcome.
A transaction counts as verified only when all three outcome fields carry
their exact success literals.

The check on its own is a UX fast-path: query parameters are forgeable.
The server-side verifier (payments.service) is the authoritative commit path.
"""
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

SUCCESS_PARAM = "success"
RESPONSE_CODE_PARAM = "txn_response_code"
MESSAGE_PARAM = "data.message"
ORDER_ID_PARAM = "merchant_order_id"

SUCCESS_VALUE = "true"
APPROVED_CODE = "APPROVED"
APPROVED_MESSAGE = "Approved"

# Parameters whose presence marks a page load as a gateway return
REDIRECT_PARAMS = (SUCCESS_PARAM, RESPONSE_CODE_PARAM, MESSAGE_PARAM, ORDER_ID_PARAM)


@dataclass(frozen=True)
class PaymentRedirect:
    """Outcome fields carried on the gateway's return URL."""
    success: Optional[str]
    txn_response_code: Optional[str]
    message: Optional[str]
    merchant_order_id: Optional[str]

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "PaymentRedirect":
        return cls(
            success=params.get(SUCCESS_PARAM),
            txn_response_code=params.get(RESPONSE_CODE_PARAM),
            message=params.get(MESSAGE_PARAM),
            merchant_order_id=params.get(ORDER_ID_PARAM) or None,
        )

    @property
    def verified(self) -> bool:
        return (
            self.success == SUCCESS_VALUE
            and self.txn_response_code == APPROVED_CODE
            and self.message == APPROVED_MESSAGE
        )


def verify_payment(params: Mapping[str, str]) -> bool:
    """True iff success, response code and message all match exactly."""
    return PaymentRedirect.from_params(params).verified


def has_redirect_params(params: Mapping[str, str]) -> bool:
    return any(name in params for name in REDIRECT_PARAMS)


def strip_redirect_params(url: str) -> str:
    """Remove the gateway outcome parameters from a URL, keeping the rest."""
    parts = urlsplit(url)
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in REDIRECT_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))
