"""
Payment outcome reconciler.

States:
  pending  → completed | failed
  completed, failed are absorbing: nothing leaves them.

Tie-break: the first successful conditional write wins. A later, conflicting
proposal (e.g. a failure report arriving after the webhook completed the
payment) is a no-op and reports the state that won.

Result reasons:
  applied              this call performed the transition
  already_settled      another call won earlier; status is the terminal one
  not_found            no record exists for the identity
  unrecognized_outcome the trigger's status token maps to no outcome; nothing written
  pending              record still pending (a newer intent raced the update)
"""
import enum
from dataclasses import dataclass
from typing import Optional

from payrecon.logging_config import get_logger
from payrecon.models import PaymentStatus, PaymentTransaction
from payrecon.services.ledger import Identity, Ledger, utcnow

logger = get_logger(__name__)


class Outcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    UNRECOGNIZED = "unrecognized"


OUTCOME_STATUS = {
    Outcome.COMPLETED: PaymentStatus.COMPLETED,
    Outcome.FAILED: PaymentStatus.FAILED,
}


class Reason(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_SETTLED = "already_settled"
    NOT_FOUND = "not_found"
    UNRECOGNIZED_OUTCOME = "unrecognized_outcome"
    PENDING = "pending"


@dataclass
class ReconcileResult:
    applied: bool
    status: Optional[PaymentStatus]
    record: Optional[PaymentTransaction]
    reason: Reason


class Reconciler:
    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    def reconcile(
        self,
        identity: Identity,
        proposed: Outcome,
        external_reference: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Apply `proposed` to the identity if it is still pending.

        Never raises for a lost race or a missing record; only LedgerError
        propagates.
        """
        target = OUTCOME_STATUS.get(proposed)
        if target is None:
            result = self.current(identity, Reason.UNRECOGNIZED_OUTCOME)
            self._audit(identity, proposed, result)
            return result

        fields = {}
        if external_reference:
            fields["transaction_id"] = external_reference
        if target is PaymentStatus.COMPLETED:
            fields["completed_at"] = utcnow()
        else:
            fields["error_message"] = detail or "Payment failed"

        record = self.ledger.try_transition(identity, PaymentStatus.PENDING, target, fields)
        if record is not None:
            result = ReconcileResult(
                applied=True, status=target, record=record, reason=Reason.APPLIED
            )
        else:
            result = self.current(identity)

        self._audit(identity, proposed, result)
        return result

    def read(self, identity: Identity) -> Optional[PaymentTransaction]:
        return self.ledger.read(identity)

    def locate(self, errand_id: str) -> Optional[Identity]:
        """Identity of the errand's most recent record, pending preferred."""
        record = self.ledger.latest_for_errand(errand_id)
        if record is None:
            return None
        return Identity(record.errand_id, record.payment_type)

    def current(self, identity: Identity, reason: Optional[Reason] = None) -> ReconcileResult:
        record = self.ledger.read(identity)
        if record is None:
            return ReconcileResult(
                applied=False, status=None, record=None, reason=reason or Reason.NOT_FOUND
            )
        status = record.payment_status
        if reason is None:
            reason = Reason.ALREADY_SETTLED if status.is_terminal else Reason.PENDING
        return ReconcileResult(applied=False, status=status, record=record, reason=reason)

    def _audit(self, identity: Identity, proposed: Outcome, result: ReconcileResult) -> None:
        log = logger.info if result.reason in (Reason.APPLIED, Reason.ALREADY_SETTLED) else logger.warning
        log(
            "reconcile.applied" if result.applied else "reconcile.noop",
            errand_id=identity.errand_id,
            payment_type=identity.payment_type,
            proposed=proposed.value,
            status=result.status.value if result.status else None,
            reason=result.reason.value,
            record_id=result.record.id if result.record else None,
        )
