from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, Index, text

from storefront.data.database import Base
from storefront.domain.enums import PaymentStatus


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    # kopia cart_snapshot["cart_id"], żeby idempotencja była zwykłym WHERE
    cart_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    refunded_amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)  # pending, paid, failed, refunded
    payment_method = Column(String(20), nullable=False)

    transaction_id = Column(String(255), nullable=True, unique=True)
    client_secret = Column(String(255), nullable=True)
    cart_snapshot = Column(JSON, nullable=False)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        # najwyżej jedna płatność pending na (user, koszyk)
        Index(
            "uq_payment_pending_cart",
            "user_id",
            "cart_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )
