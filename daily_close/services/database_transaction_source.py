from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from daily_close.errors import PersistenceError
from daily_close.models import Voucher, VoucherItem
from daily_close.services.transaction_source import VoucherItemRow, VoucherRow


class DatabaseTransactionSource:
    """Reads the voucher tables that the bookkeeping system writes."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_vouchers(self, *, branch_id: int, on_date: date) -> list[VoucherRow]:
        try:
            rows = self.db.execute(
                select(Voucher)
                .where(Voucher.branch_id == branch_id, Voucher.voucher_date == on_date)
                .order_by(Voucher.id.asc())
            ).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError('Could not load vouchers') from exc
        return [
            VoucherRow(
                id=row.id,
                branch_id=row.branch_id,
                voucher_date=row.voucher_date,
                voucher_type=row.voucher_type,
                status=row.status,
                net_amount=row.net_amount if row.net_amount is not None else Decimal('0'),
            )
            for row in rows
        ]

    def list_voucher_items(self, *, voucher_ids: list[int]) -> list[VoucherItemRow]:
        if not voucher_ids:
            return []
        try:
            rows = self.db.execute(
                select(VoucherItem).where(VoucherItem.voucher_id.in_(voucher_ids)).order_by(VoucherItem.id.asc())
            ).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError('Could not load voucher items') from exc
        return [
            VoucherItemRow(
                voucher_id=row.voucher_id,
                quantity=row.quantity if row.quantity is not None else Decimal('0'),
                salesman_id=row.salesman_id,
            )
            for row in rows
        ]
