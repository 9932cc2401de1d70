"""
Payment method resolution for a single checkout attempt.

A payment method is one of three variants:

- ``GatewayRedirect``: the shopper pays on the Razorpay checkout and the
  gateway calls back with order id, payment id and signature.
- ``DirectCard``: card details entered on the storefront, checked locally and
  authorized in sandbox mode (there is no card network integration).
- ``CashOnDelivery``: nothing to confirm up front.

``PaymentResolver`` walks one attempt through idle -> awaiting_confirmation
-> confirmed, or into failed, from which only an explicit ``retry`` returns
to idle.
"""
import asyncio
import hashlib
import hmac
import logging
import re
from datetime import date
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from errors import CardValidationError, PaymentNotConfirmedError, PaymentStateError, ValidationError
from schemas import CardDetails
from settings import Settings

logger = logging.getLogger(__name__)

EXPIRY_RE = re.compile(r"^([0-9]{2})/([0-9]{2})$")
CARD_NUMBER_RE = re.compile(r"[0-9]{16}")
CVV_RE = re.compile(r"^[0-9]{3}$")


class GatewayRedirect(BaseModel):
    kind: Literal["razorpay"] = "razorpay"


class DirectCard(BaseModel):
    kind: Literal["card"] = "card"
    card: CardDetails


class CashOnDelivery(BaseModel):
    kind: Literal["cod"] = "cod"


PaymentMethod = Annotated[Union[GatewayRedirect, DirectCard, CashOnDelivery], Field(discriminator="kind")]


class PaymentState(str, Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentConfirmation(BaseModel):
    """What a confirmed payment carries forward to the order."""

    kind: Literal["razorpay", "card", "cod"]
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    card_last4: Optional[str] = None

    @property
    def has_gateway_identifiers(self) -> bool:
        return bool(self.razorpay_order_id and self.razorpay_payment_id and self.razorpay_signature)

    def order_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"kind"})


# ------------------------- Card formatting -------------------------
def normalize_card_number(value: str) -> str:
    return re.sub(r"[\s-]", "", value or "")


def format_card_number(value: str) -> str:
    """Group digits in fours for display: ``4111 1111 1111 1111``."""
    digits = re.sub(r"[^0-9]", "", value or "")[:16]
    return " ".join(digits[i:i + 4] for i in range(0, len(digits), 4))


def mask_card_number(value: str) -> str:
    digits = normalize_card_number(value)
    return f"**** **** **** {digits[-4:]}"


def validate_card(card: CardDetails, today: Optional[date] = None) -> None:
    """Raise CardValidationError on the first rule the card breaks."""
    today = today or date.today()

    digits = normalize_card_number(card.card_number)
    if not CARD_NUMBER_RE.fullmatch(digits):
        raise CardValidationError("Card number must be 16 digits", field="cardNumber")

    if not card.name_on_card.strip():
        raise CardValidationError("Name on card is required", field="nameOnCard")

    match = EXPIRY_RE.match(card.expiry.strip())
    if not match:
        raise CardValidationError("Expiry must be in MM/YY format", field="expiry")
    month, year = int(match.group(1)), 2000 + int(match.group(2))
    if not 1 <= month <= 12:
        raise CardValidationError("Expiry month must be between 01 and 12", field="expiry")
    if (year, month) < (today.year, today.month):
        raise CardValidationError("Card has expired", field="expiry")

    if not CVV_RE.match(card.cvv.strip()):
        raise CardValidationError("CVV must be 3 digits", field="cvv")


def gateway_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


# ------------------------- Resolver -------------------------
class PaymentResolver:
    def __init__(self, method: Union[GatewayRedirect, DirectCard, CashOnDelivery], settings: Settings):
        self.method = method
        self.settings = settings
        self.state = PaymentState.IDLE
        self.message: Optional[str] = None
        self.confirmation: Optional[PaymentConfirmation] = None

    @property
    def confirmed(self) -> bool:
        return self.state is PaymentState.CONFIRMED

    def _require(self, action: str, *states: PaymentState) -> None:
        if self.state not in states:
            raise PaymentStateError(action, self.state.value)

    def _confirm(self, confirmation: PaymentConfirmation) -> PaymentConfirmation:
        self.state = PaymentState.CONFIRMED
        self.message = None
        self.confirmation = confirmation
        logger.info("Payment confirmed (%s)", confirmation.kind)
        return confirmation

    def _fail(self, message: str) -> PaymentNotConfirmedError:
        self.state = PaymentState.FAILED
        self.message = message
        self.confirmation = None
        logger.info("Payment failed (%s): %s", self.method.kind, message)
        return PaymentNotConfirmedError(message)

    async def start(self, today: Optional[date] = None) -> PaymentState:
        """Trigger payment for the chosen method."""
        self._require("start", PaymentState.IDLE)
        method = self.method

        if isinstance(method, CashOnDelivery):
            self._confirm(PaymentConfirmation(kind="cod"))
        elif isinstance(method, DirectCard):
            validate_card(method.card, today=today)
            # Sandbox authorization: always approves after a fixed delay.
            await asyncio.sleep(self.settings.card_authorization_delay)
            digits = normalize_card_number(method.card.card_number)
            self._confirm(PaymentConfirmation(kind="card", card_last4=digits[-4:]))
        elif isinstance(method, GatewayRedirect):
            self.state = PaymentState.AWAITING_CONFIRMATION
        else:
            raise TypeError(f"Unknown payment method: {method!r}")

        return self.state

    def complete(self, payload: Dict[str, Any]) -> PaymentConfirmation:
        """Handle the gateway callback; raise PaymentNotConfirmedError if unusable."""
        self._require("complete", PaymentState.AWAITING_CONFIRMATION)

        if payload.get("error"):
            raise self._fail(f"Payment failed: {payload['error']}")

        order_id = payload.get("razorpay_order_id")
        payment_id = payload.get("razorpay_payment_id")
        signature = payload.get("razorpay_signature")
        missing = [
            name for name, value in (
                ("order id", order_id),
                ("payment id", payment_id),
                ("signature", signature),
            )
            if not value
        ]
        if missing:
            raise self._fail(f"Payment verification failed: missing {', '.join(missing)}")

        secret = self.settings.razorpay_key_secret
        if secret:
            expected = gateway_signature(order_id, payment_id, secret)
            if not hmac.compare_digest(expected.encode(), str(signature).encode()):
                raise self._fail("Payment verification failed: invalid signature")

        return self._confirm(PaymentConfirmation(
            kind="razorpay",
            razorpay_order_id=order_id,
            razorpay_payment_id=payment_id,
            razorpay_signature=signature,
        ))

    def cancel(self) -> None:
        self._require("cancel", PaymentState.AWAITING_CONFIRMATION)
        self._fail("You cancelled the payment")

    def fail(self, message: str) -> None:
        self._require("fail", PaymentState.AWAITING_CONFIRMATION)
        self._fail(message)

    def retry(self) -> None:
        self._require("retry", PaymentState.FAILED)
        self.state = PaymentState.IDLE
        self.message = None


def method_from_request(kind: str, card: Optional[CardDetails] = None) -> PaymentMethod:
    """Build the payment method variant named by an order request."""
    if kind == "razorpay":
        return GatewayRedirect()
    if kind == "cod":
        return CashOnDelivery()
    if kind == "card":
        if card is None:
            raise CardValidationError("Card details are required", field="card")
        return DirectCard(card=card)
    raise ValidationError(f"Unsupported payment method: {kind}", field="paymentMethod")
