import enum
import uuid

from sqlalchemy import Column, DateTime, Float, Index, String, text

from payrecon.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


def generate_id():
    return f"ptx_{uuid.uuid4().hex[:12]}"


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"
    __table_args__ = (
        # At most one pending attempt per (errand_id, payment_type)
        Index(
            "uq_payment_transactions_pending_identity",
            "errand_id",
            "payment_type",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_payment_transactions_identity", "errand_id", "payment_type"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    errand_id = Column(String, nullable=False, index=True)
    payment_type = Column(String, nullable=False)
    reference = Column(String, nullable=False, unique=True)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    transaction_id = Column(String, nullable=True)  # provider-issued reference
    error_message = Column(String, nullable=True)  # only when failed
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    customer_id = Column(String, nullable=True)
    return_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)
