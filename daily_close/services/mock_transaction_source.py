from __future__ import annotations

from datetime import date
from decimal import Decimal

from daily_close.models import VoucherStatus, VoucherType
from daily_close.services.transaction_source import VoucherItemRow, VoucherRow


class MockTransactionSource:
    def __init__(
        self,
        vouchers: list[VoucherRow] | None = None,
        items: list[VoucherItemRow] | None = None,
        salesman_ids: tuple[int, ...] = (1, 2, 3),
    ) -> None:
        self.vouchers = vouchers
        self.items = items
        self.salesman_ids = salesman_ids
        self._generated_items: dict[int, list[VoucherItemRow]] = {}

    def _generate(self, branch_id: int, on_date: date) -> list[VoucherRow]:
        seed = on_date.toordinal() + branch_id * 31
        base_id = seed * 10
        rows = [
            VoucherRow(base_id + 1, branch_id, on_date, VoucherType.SALES, VoucherStatus.CONFIRMED, Decimal(400 + seed % 97)),
            VoucherRow(base_id + 2, branch_id, on_date, VoucherType.SALES, VoucherStatus.CONFIRMED, Decimal(150 + seed % 41)),
            VoucherRow(base_id + 3, branch_id, on_date, VoucherType.RECEIPT, VoucherStatus.CONFIRMED, Decimal(100 + seed % 13)),
            VoucherRow(base_id + 4, branch_id, on_date, VoucherType.PURCHASE, VoucherStatus.CONFIRMED, Decimal(60 + seed % 17)),
            VoucherRow(base_id + 5, branch_id, on_date, VoucherType.PAYMENT, VoucherStatus.CONFIRMED, Decimal(25 + seed % 7)),
            VoucherRow(base_id + 6, branch_id, on_date, VoucherType.SALES, VoucherStatus.CANCELLED, Decimal('999')),
        ]
        for row in rows:
            if row.voucher_type != VoucherType.SALES:
                continue
            self._generated_items[row.id] = [
                VoucherItemRow(
                    voucher_id=row.id,
                    quantity=Decimal((row.id + offset) % 4 + 1),
                    salesman_id=salesman_id,
                )
                for offset, salesman_id in enumerate(self.salesman_ids)
            ]
        return rows

    def list_vouchers(self, *, branch_id: int, on_date: date) -> list[VoucherRow]:
        if self.vouchers is None:
            return self._generate(branch_id, on_date)
        return [row for row in self.vouchers if row.branch_id == branch_id and row.voucher_date == on_date]

    def list_voucher_items(self, *, voucher_ids: list[int]) -> list[VoucherItemRow]:
        wanted = set(voucher_ids)
        if self.items is None:
            return [item for voucher_id in voucher_ids for item in self._generated_items.get(voucher_id, [])]
        return [item for item in self.items if item.voucher_id in wanted]
