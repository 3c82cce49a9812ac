# storefront/repos/payment_repo.py
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import PaymentStatus

SORTABLE_COLUMNS = {
    "created_at": PaymentModel.created_at,
    "amount": PaymentModel.amount,
    "status": PaymentModel.status,
    "paid_at": PaymentModel.paid_at,
}


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_uuid(self, uuid: str, for_update: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.uuid == uuid)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_reference(self, transaction_id: str, for_update: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.transaction_id == transaction_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def find_pending_for_cart(self, user_id: int, cart_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(
                PaymentModel.user_id == user_id,
                PaymentModel.cart_id == cart_id,
                PaymentModel.status == PaymentStatus.PENDING.value,
            )
        ).scalars().first()

    def add(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def transition(self, payment_id: int, expected_status: str, new_data: Dict[str, Any]) -> int:
        """
        UPDATE ... WHERE id = :id AND status = :expected.
        0 zmienionych wierszy = ktoś był pierwszy albo stan już inny.
        """
        result = self.db.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.status == expected_status,
            )
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def paginate(
        self,
        filters: Dict[str, Any],
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        per_page: int = 15,
    ) -> Tuple[List[PaymentModel], int]:
        stmt = select(PaymentModel)

        q = filters.get("q")
        if q:
            like = f"%{q}%"
            stmt = stmt.where(
                or_(PaymentModel.uuid.like(like), PaymentModel.transaction_id.like(like))
            )

        for field in ("status", "payment_method", "user_id"):
            if filters.get(field) is not None:
                stmt = stmt.where(getattr(PaymentModel, field) == filters[field])

        if filters.get("date_from"):
            stmt = stmt.where(PaymentModel.created_at >= _day_start(filters["date_from"]))
        if filters.get("date_to"):
            stmt = stmt.where(PaymentModel.created_at <= _day_end(filters["date_to"]))

        if filters.get("amount_min") is not None:
            stmt = stmt.where(PaymentModel.amount >= filters["amount_min"])
        if filters.get("amount_max") is not None:
            stmt = stmt.where(PaymentModel.amount <= filters["amount_max"])

        total = self.db.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        column = SORTABLE_COLUMNS.get(sort_by, PaymentModel.created_at)
        order = column.asc() if sort_order == "asc" else column.desc()

        items = list(
            self.db.execute(
                stmt.order_by(order, PaymentModel.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            ).scalars()
        )
        return items, total

    def refresh(self, payment: PaymentModel) -> PaymentModel:
        self.db.refresh(payment)
        return payment

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)
