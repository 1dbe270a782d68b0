"""
Intent issuer.

Creates the pending record a payment later settles against and hands back the
correlation reference PayToday will echo in its webhook as `ref`.
"""
import time
import uuid
from typing import Any, Dict, Optional

from payrecon.config import Settings
from payrecon.errors import ValidationError
from payrecon.logging_config import get_logger
from payrecon.models import PaymentTransaction
from payrecon.services.adapters import REFERENCE_DELIMITER, build_reference, require
from payrecon.services.ledger import Identity, Ledger

logger = get_logger(__name__)

# PayToday takes amounts in major units (NAD), not cents
LARGE_AMOUNT_WARNING = 1_000_000
DEFAULT_CURRENCY = "NAD"


class IssuedIntent:
    def __init__(self, intent_id: str, record: PaymentTransaction, checkout: Dict[str, Any]):
        self.intent_id = intent_id
        self.record = record
        self.checkout = checkout


class IntentIssuer:
    def __init__(self, ledger: Ledger, settings: Settings):
        self.ledger = ledger
        self.settings = settings

    def issue(
        self,
        errand_id: Optional[str],
        payment_type: Optional[str],
        amount: Optional[float],
        currency: Optional[str] = None,
        customer_id: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> IssuedIntent:
        """
        Raises:
            ValidationError: identity fields missing or amount not positive
            DuplicateActiveError: a live pending intent exists for the identity
        """
        identity = Identity(require(errand_id, "errand_id"), require(payment_type, "payment_type"))
        if amount is None or amount <= 0:
            raise ValidationError("amount must be a positive number")
        if amount > LARGE_AMOUNT_WARNING:
            logger.warning("intent.large_amount", errand_id=identity.errand_id, amount=amount)
        if REFERENCE_DELIMITER in identity.errand_id:
            # Webhook parsing cannot split this reference back reliably
            logger.warning(
                "intent.ambiguous_reference",
                errand_id=identity.errand_id,
                delimiter=REFERENCE_DELIMITER,
            )

        reference = build_reference(identity, int(time.time() * 1000))
        record = self.ledger.create(
            identity,
            reference=reference,
            amount=amount,
            currency=(currency or DEFAULT_CURRENCY).upper(),
            customer_id=customer_id,
            return_url=return_url,
        )
        logger.info(
            "intent.created",
            errand_id=identity.errand_id,
            payment_type=identity.payment_type,
            reference=reference,
            amount=amount,
        )

        # The page that loads the PayToday SDK is rendered client-side from this
        checkout = {
            "shop_handle": self.settings.PAYTODAY_SHOP_HANDLE,
            "invoice_number": reference,
            "amount": record.amount,
            "currency": record.currency,
            "return_url": return_url,
        }
        return IssuedIntent(intent_id=str(uuid.uuid4()), record=record, checkout=checkout)
