"""
Entry adapters: one per external trigger that can settle a payment.

Each adapter validates its payload, maps it to an (identity, outcome) pair and
calls Reconciler.reconcile() exactly once. Adapters never touch the ledger.
"""
from typing import Optional, Tuple

from payrecon.errors import ValidationError
from payrecon.logging_config import get_logger
from payrecon.models import PaymentStatus
from payrecon.providers.base import PaymentProvider
from payrecon.services.ledger import Identity
from payrecon.services.reconciler import Outcome, Reason, ReconcileResult, Reconciler

logger = get_logger(__name__)

REFERENCE_DELIMITER = "_"

# PayToday webhook status tokens. Anything not listed is UNRECOGNIZED and
# never settles a payment.
WEBHOOK_STATUS_TABLE = {
    "OK": Outcome.COMPLETED,
    "SUCCESS": Outcome.COMPLETED,
}

# Status values the payment-return page forwards. Anything else is a failure.
RETURN_STATUS_TABLE = {
    "completed": Outcome.COMPLETED,
    "success": Outcome.COMPLETED,
}

RETURN_FAILURE_DETAIL = "Payment cancelled or failed"


def require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing {field}")
    return str(value).strip()


def build_reference(identity: Identity, issued_at_ms: int) -> str:
    return REFERENCE_DELIMITER.join(
        [identity.errand_id, identity.payment_type, str(issued_at_ms)]
    )


def parse_reference(ref: str) -> Tuple[Identity, int]:
    """
    Split `{errand_id}_{payment_type}_{issued_at_ms}`.

    errand_id is taken up to the first delimiter and the timestamp after the
    last, so payment types like `first_half` survive. An errand_id that itself
    contains the delimiter cannot be recovered.
    """
    ref = require(ref, "ref")
    errand_id, sep, rest = ref.partition(REFERENCE_DELIMITER)
    payment_type, sep2, issued = rest.rpartition(REFERENCE_DELIMITER)
    if not sep or not sep2 or not errand_id or not payment_type or not issued.isdigit():
        raise ValidationError(f"Malformed payment reference: {ref!r}")
    return Identity(errand_id, payment_type), int(issued)


def handle_webhook(
    reconciler: Reconciler,
    ref: Optional[str],
    status: Optional[str],
    transaction_id: Optional[str],
) -> ReconcileResult:
    identity, issued_at_ms = parse_reference(ref)
    # Tokens match exactly; "success" or " OK" is not a completion
    outcome = WEBHOOK_STATUS_TABLE.get(status, Outcome.UNRECOGNIZED)
    if outcome is Outcome.UNRECOGNIZED:
        logger.warning("webhook.unrecognized_status", ref=ref, status=status)
    result = reconciler.reconcile(identity, outcome, external_reference=transaction_id)
    if result.applied and result.record.reference != build_reference(identity, issued_at_ms):
        # A stale ref settled the latest pending attempt of the same identity
        logger.warning(
            "webhook.reference_mismatch",
            ref=ref,
            record_reference=result.record.reference,
            errand_id=identity.errand_id,
            payment_type=identity.payment_type,
        )
    return result


def handle_return(
    reconciler: Reconciler,
    errand_id: Optional[str],
    payment_type: Optional[str],
    transaction_id: Optional[str],
    status: Optional[str],
) -> ReconcileResult:
    identity = Identity(require(errand_id, "errand_id"), require(payment_type, "payment_type"))
    outcome = RETURN_STATUS_TABLE.get(status, Outcome.FAILED)
    detail = RETURN_FAILURE_DETAIL if outcome is Outcome.FAILED else None
    return reconciler.reconcile(identity, outcome, external_reference=transaction_id, detail=detail)


async def handle_verify(
    reconciler: Reconciler,
    provider: PaymentProvider,
    errand_id: Optional[str],
    transaction_id: Optional[str],
    payment_type: Optional[str] = None,
) -> Tuple[bool, ReconcileResult]:
    """
    Client poll after checkout. Returns (verified, result).

    Completion rests entirely on the provider port. With UnverifiedProvider
    every call confirms, which is the known gap guarded by
    ALLOW_UNVERIFIED_COMPLETION.
    """
    errand_id = require(errand_id, "errand_id")
    if payment_type and payment_type.strip():
        identity = Identity(errand_id, payment_type.strip())
    else:
        identity = reconciler.locate(errand_id)
        if identity is None:
            logger.warning("verify.errand_not_found", errand_id=errand_id)
            return False, ReconcileResult(
                applied=False, status=None, record=None, reason=Reason.NOT_FOUND
            )

    answer = await provider.verify_transaction(transaction_id, errand_id)
    if answer.get("confirmed"):
        result = reconciler.reconcile(
            identity,
            Outcome.COMPLETED,
            external_reference=answer.get("transaction_id") or transaction_id,
        )
    else:
        result = reconciler.current(identity)
    return result.status is PaymentStatus.COMPLETED, result


def handle_failure_report(
    reconciler: Reconciler,
    errand_id: Optional[str],
    payment_type: Optional[str],
    error_message: Optional[str],
    details: Optional[dict] = None,
) -> ReconcileResult:
    identity = Identity(require(errand_id, "errand_id"), require(payment_type, "payment_type"))
    logger.info(
        "failure_report.received",
        errand_id=identity.errand_id,
        payment_type=identity.payment_type,
        error_message=error_message,
        details=details,
    )
    return reconciler.reconcile(identity, Outcome.FAILED, detail=error_message or None)
