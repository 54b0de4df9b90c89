from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from daily_close.models import VoucherStatus, VoucherType


@dataclass(frozen=True)
class VoucherRow:
    id: int
    branch_id: int
    voucher_date: date
    voucher_type: VoucherType
    status: VoucherStatus
    net_amount: Decimal

    @property
    def is_cancelled(self) -> bool:
        return self.status == VoucherStatus.CANCELLED


@dataclass(frozen=True)
class VoucherItemRow:
    voucher_id: int
    quantity: Decimal
    salesman_id: int | None


class TransactionSource(Protocol):
    def list_vouchers(self, *, branch_id: int, on_date: date) -> list[VoucherRow]: ...

    def list_voucher_items(self, *, voucher_ids: list[int]) -> list[VoucherItemRow]: ...


def live_vouchers(vouchers: list[VoucherRow], *, branch_id: int, on_date: date) -> list[VoucherRow]:
    """Same-day, same-branch vouchers that are not cancelled."""
    return [
        voucher
        for voucher in vouchers
        if voucher.branch_id == branch_id and voucher.voucher_date == on_date and not voucher.is_cancelled
    ]
