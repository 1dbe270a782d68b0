"""
Ledger access for payment transaction records.

try_transition() is the only way a record leaves `pending`. It is a single
UPDATE ... WHERE status = :from_status statement, so of any number of
concurrent callers exactly one sees its row come back. Do not replace it with
a read followed by a conditional write.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, NamedTuple, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from payrecon.config import Settings
from payrecon.errors import DuplicateActiveError, LedgerError
from payrecon.logging_config import get_logger
from payrecon.models import PaymentStatus, PaymentTransaction

logger = get_logger(__name__)

SUPERSEDED_DETAIL = "Superseded by a newer payment attempt"

TRANSITION_FIELDS = {"transaction_id", "error_message", "completed_at"}


class Identity(NamedTuple):
    errand_id: str
    payment_type: str


def utcnow() -> datetime:
    # Stored naive, in UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Ledger:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.pending_ttl = timedelta(minutes=settings.PENDING_TTL_MINUTES)

    def create(
        self,
        identity: Identity,
        reference: str,
        amount: float,
        currency: str,
        customer_id: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> PaymentTransaction:
        """
        Insert a new pending record for the identity.

        An unexpired pending record blocks creation. An expired one is first
        settled as failed through try_transition(), so the pending-uniqueness
        invariant holds at every point.

        Raises:
            DuplicateActiveError: a live pending record exists
            LedgerError: the store failed
        """
        now = utcnow()
        current = self.read(identity)
        if current is not None and current.status == PaymentStatus.PENDING.value:
            if now - current.created_at < self.pending_ttl:
                raise DuplicateActiveError(
                    f"Pending payment {current.reference} already exists for "
                    f"{identity.errand_id}/{identity.payment_type}"
                )
            superseded = self.try_transition(
                identity,
                PaymentStatus.PENDING,
                PaymentStatus.FAILED,
                {"error_message": SUPERSEDED_DETAIL},
            )
            if superseded is not None:
                logger.info(
                    "ledger.pending_superseded",
                    errand_id=identity.errand_id,
                    payment_type=identity.payment_type,
                    reference=superseded.reference,
                )

        txn = PaymentTransaction(
            errand_id=identity.errand_id,
            payment_type=identity.payment_type,
            reference=reference,
            status=PaymentStatus.PENDING.value,
            amount=amount,
            currency=currency,
            customer_id=customer_id,
            return_url=return_url,
            created_at=now,
            updated_at=now,
        )
        self.db.add(txn)
        try:
            self.db.commit()
        except IntegrityError as e:
            # Lost a create race: the partial unique index already holds a pending row
            self.db.rollback()
            raise DuplicateActiveError(
                f"Pending payment already exists for "
                f"{identity.errand_id}/{identity.payment_type}"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to create payment record: {e}") from e
        self.db.refresh(txn)
        return txn

    def try_transition(
        self,
        identity: Identity,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        fields: Dict[str, Any],
    ) -> Optional[PaymentTransaction]:
        """
        Atomically move the identity's record from from_status to to_status.

        Returns the updated record, or None when no row matched (already
        settled, or never existed).
        """
        unknown = set(fields) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable on transition: {sorted(unknown)}")

        stmt = (
            update(PaymentTransaction)
            .where(
                PaymentTransaction.errand_id == identity.errand_id,
                PaymentTransaction.payment_type == identity.payment_type,
                PaymentTransaction.status == from_status.value,
            )
            .values(status=to_status.value, updated_at=utcnow(), **fields)
            .returning(PaymentTransaction.id)
            .execution_options(synchronize_session=False)
        )
        try:
            row_id = self.db.execute(stmt).scalar_one_or_none()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to update payment record: {e}") from e

        if row_id is None:
            return None
        return self._get(row_id)

    def read(self, identity: Identity) -> Optional[PaymentTransaction]:
        """Most recent record for the identity, or None."""
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.errand_id == identity.errand_id,
                PaymentTransaction.payment_type == identity.payment_type,
            )
            .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
            .limit(1)
        )
        return self._first(stmt)

    def latest_for_errand(self, errand_id: str) -> Optional[PaymentTransaction]:
        """Most recent record for the errand, a pending one if any exists."""
        pending_first = case(
            (PaymentTransaction.status == PaymentStatus.PENDING.value, 0), else_=1
        )
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.errand_id == errand_id)
            .order_by(pending_first, PaymentTransaction.created_at.desc())
            .limit(1)
        )
        return self._first(stmt)

    def _get(self, row_id: str) -> Optional[PaymentTransaction]:
        try:
            return self.db.get(PaymentTransaction, row_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to read payment record: {e}") from e

    def _first(self, stmt) -> Optional[PaymentTransaction]:
        # Another writer may have settled a row already in the identity map
        stmt = stmt.execution_options(populate_existing=True)
        try:
            return self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to read payment record: {e}") from e
