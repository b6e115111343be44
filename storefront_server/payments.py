"""Mock card payment processing."""

import asyncio
import logging
import re
from decimal import Decimal

from .errors import InputError
from .models import CardDetails, PaymentResult

logger = logging.getLogger(__name__)

# Test numbers with a scripted failure; any other valid number succeeds.
DECLINED_CARDS = {
    "4000000000000002": "Your card was declined",
    "4000000000009995": "Your card has insufficient funds",
    "4000000000000069": "Your card has expired",
}

TEST_CARDS = [
    ("4242 4242 4242 4242", "Visa - Success"),
    ("4000 0000 0000 0002", "Visa - Declined"),
    ("4000 0000 0000 9995", "Visa - Insufficient Funds"),
    ("5555 5555 5555 4444", "Mastercard - Success"),
]


def luhn_valid(number: str) -> bool:
    """Check a card number (spaces allowed) with the Luhn algorithm."""
    digits = number.replace(" ", "")
    if not digits.isdigit() or not 13 <= len(digits) <= 19:
        return False

    total = 0
    for i, char in enumerate(reversed(digits)):
        digit = int(char)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_card(card: CardDetails) -> str:
    """
    Validate the form fields.

    Returns:
        The card number without spaces

    Raises:
        InputError: On the first invalid field
    """
    if not card.number or not card.expiry or not card.cvc:
        raise InputError("Please fill in all required fields")
    if not luhn_valid(card.number):
        raise InputError("Please enter a valid card number")
    if not re.fullmatch(r"(0[1-9]|1[0-2])/\d{2}", card.expiry):
        raise InputError("Please enter a valid expiry date (MM/YY)")
    if not re.fullmatch(r"\d{3,4}", card.cvc):
        raise InputError("Please enter a valid CVC")
    return card.number.replace(" ", "")


class MockCardProcessor:
    """Simulates a card gateway; no real payment network is contacted."""

    def __init__(self, processing_delay: float = 0.0) -> None:
        self.processing_delay = processing_delay

    async def submit(self, order_id: str, amount: Decimal, card: CardDetails) -> PaymentResult:
        """
        Submit a card payment for an order.

        Raises:
            InputError: If the card fields are invalid (nothing is submitted)
        """
        number = validate_card(card)
        logger.info(f"=== CARD PAYMENT: order_id={order_id}, amount={amount} ===")

        if self.processing_delay:
            await asyncio.sleep(self.processing_delay)

        reason = DECLINED_CARDS.get(number)
        if reason:
            logger.warning(f"Card payment failed for order {order_id}: {reason}")
            return PaymentResult(success=False, reason=reason, card_last4=number[-4:])

        logger.info(f"Payment successful for order {order_id} (card ending {number[-4:]})")
        return PaymentResult(success=True, card_last4=number[-4:])
