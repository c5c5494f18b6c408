"""Financial transaction audit log model: append-only."""

from sqlalchemy import Column, Integer, String, Text, DateTime, Float, Index
from sqlalchemy.orm import validates

from church_platform.core.exceptions import ValidationError
from church_platform.db.base import Base, utcnow

TRANSACTION_TYPES = (
    "payment_initiated",
    "payment_success",
    "payment_failed",
    "pledge_created",
    "pledge_updated",
    "contribution_recorded",
    "contribution_verified",
    "contribution",
)
PAYMENT_METHODS = ("mpesa", "bank_transfer", "cash", "manual")
TRANSACTION_STATUSES = ("pending", "success", "failed", "cancelled")


class TransactionAuditLog(Base):
    """Immutable record of one step of a monetary operation.

    Written synchronously by the payment, pledge and contribution code paths.
    Same immutability guards as ``AuditLog``.
    """
    __tablename__ = "transaction_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(100), nullable=True, index=True)
    transaction_type = Column(String(50), nullable=False)

    user_id = Column(String(100), nullable=False, index=True)
    user_email = Column(String(255), nullable=True)
    user_ip_address = Column(String(45), nullable=True)

    campaign_id = Column(String(100), nullable=True)
    pledge_id = Column(String(100), nullable=True)
    payment_id = Column(String(100), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False, default="KES")
    payment_method = Column(String(30), nullable=False)

    mpesa_checkout_request_id = Column(String(100), nullable=True)
    mpesa_receipt_number = Column(String(100), nullable=True)
    mpesa_phone_number = Column(String(30), nullable=True)

    before_state_json = Column(Text, nullable=True)
    after_state_json = Column(Text, nullable=True)

    status = Column(String(20), nullable=False)
    status_reason = Column(String(500), nullable=True)
    idempotency_key = Column(String(255), nullable=True, index=True)
    request_id = Column(String(100), nullable=True, index=True)

    action = Column(String(100), nullable=False)
    details_json = Column(Text, nullable=True)

    error = Column(Text, nullable=True)
    error_code = Column(String(100), nullable=True)
    stack_trace = Column(Text, nullable=True)

    verified_by = Column(String(100), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_txn_audit_user_created", "user_id", "created_at"),
        Index("ix_txn_audit_campaign_type", "campaign_id", "transaction_type"),
        Index("ix_txn_audit_status_created", "status", "created_at"),
        Index("ix_txn_audit_txn_type", "transaction_id", "transaction_type"),
    )

    @validates("transaction_type")
    def _check_type(self, key, value):
        if value not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type '{value}'")
        return value

    @validates("payment_method")
    def _check_method(self, key, value):
        if value not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{value}'")
        return value

    @validates("status")
    def _check_status(self, key, value):
        if value not in TRANSACTION_STATUSES:
            raise ValidationError(f"Unknown transaction status '{value}'")
        return value
