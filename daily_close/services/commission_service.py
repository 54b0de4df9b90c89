from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from daily_close.config import settings
from daily_close.errors import ValidationError
from daily_close.models import CommissionMode, VoucherType
from daily_close.services.reconciliation_service import ZERO, coerce_amount, quantize_money
from daily_close.services.transaction_source import TransactionSource, live_vouchers

logger = logging.getLogger(__name__)

UNKNOWN_STYLIST_LABEL = 'Unknown stylist'
INACTIVE_SUFFIX = ' (inactive)'


class CommissionTier(str, Enum):
    PRO = 'PRO'
    NORMAL = 'NORMAL'


class StaffMember(Protocol):
    id: int
    name: str
    is_active: bool
    is_dual_commission_eligible: bool


class ServiceTally(Protocol):
    stylist_id: int
    service_count: int


@dataclass(frozen=True)
class CommissionLine:
    employee_id: int | None
    name: str
    tier: CommissionTier
    service_count: Decimal
    commission_amount: Decimal
    is_payable_today: bool


@dataclass(frozen=True)
class CommissionSummary:
    lines: list[CommissionLine]
    rate: Decimal

    @property
    def total_payable_today(self) -> Decimal:
        return quantize_money(sum((line.commission_amount for line in self.lines if line.is_payable_today), ZERO))

    @property
    def total_accrued(self) -> Decimal:
        return quantize_money(sum((line.commission_amount for line in self.lines if not line.is_payable_today), ZERO))

    @property
    def total_commission(self) -> Decimal:
        return quantize_money(sum((line.commission_amount for line in self.lines), ZERO))

    @property
    def total_services(self) -> Decimal:
        return sum((line.service_count for line in self.lines), ZERO)


@dataclass(frozen=True)
class TransactionalContext:
    branch_id: int
    on_date: date
    employees: Sequence[StaffMember]
    source: TransactionSource


@dataclass(frozen=True)
class ManualContext:
    entries: Sequence[ServiceTally]
    employees: Sequence[StaffMember] = field(default_factory=list)


def tier_for(employee: StaffMember | None) -> CommissionTier:
    if employee is not None and employee.is_dual_commission_eligible:
        return CommissionTier.PRO
    return CommissionTier.NORMAL


def _line(*, employee_id: int | None, name: str, tier: CommissionTier, service_count: Decimal, rate: Decimal) -> CommissionLine:
    return CommissionLine(
        employee_id=employee_id,
        name=name,
        tier=tier,
        service_count=service_count,
        commission_amount=quantize_money(service_count * rate),
        is_payable_today=tier == CommissionTier.NORMAL,
    )


def _transactional_lines(context: TransactionalContext, rate: Decimal) -> list[CommissionLine]:
    sales = [
        voucher
        for voucher in live_vouchers(
            context.source.list_vouchers(branch_id=context.branch_id, on_date=context.on_date),
            branch_id=context.branch_id,
            on_date=context.on_date,
        )
        if voucher.voucher_type == VoucherType.SALES
    ]
    items = context.source.list_voucher_items(voucher_ids=[voucher.id for voucher in sales]) if sales else []

    sold_by_salesman: dict[int, Decimal] = {}
    for item in items:
        if item.salesman_id is None:
            continue
        sold_by_salesman[item.salesman_id] = sold_by_salesman.get(item.salesman_id, ZERO) + coerce_amount(item.quantity)

    lines = []
    for employee in context.employees:
        if not employee.is_active:
            continue
        count = sold_by_salesman.get(employee.id, ZERO)
        if count == ZERO:
            continue
        lines.append(_line(employee_id=employee.id, name=employee.name, tier=tier_for(employee), service_count=count, rate=rate))
    return lines


def _manual_lines(context: ManualContext, rate: Decimal) -> list[CommissionLine]:
    by_id = {employee.id: employee for employee in context.employees}
    lines = []
    for entry in context.entries:
        employee = by_id.get(entry.stylist_id)
        if employee is None:
            logger.warning('Stylist entry references unknown stylist %s', entry.stylist_id)
            name = UNKNOWN_STYLIST_LABEL
        elif not employee.is_active:
            name = f'{employee.name}{INACTIVE_SUFFIX}'
        else:
            name = employee.name
        lines.append(
            _line(
                employee_id=entry.stylist_id,
                name=name,
                tier=tier_for(employee),
                service_count=Decimal(int(entry.service_count or 0)),
                rate=rate,
            )
        )
    return lines


_STRATEGIES: dict[CommissionMode, tuple[type, Callable[[Any, Decimal], list[CommissionLine]]]] = {
    CommissionMode.TRANSACTIONAL: (TransactionalContext, _transactional_lines),
    CommissionMode.MANUAL: (ManualContext, _manual_lines),
}


def resolve_commission_mode(value: CommissionMode | str | None) -> CommissionMode:
    raw = value.value if isinstance(value, CommissionMode) else (value or settings.default_commission_mode)
    try:
        return CommissionMode(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(f'Unknown commission mode: {raw}') from exc


def compute_commissions(
    mode: CommissionMode | str,
    context: TransactionalContext | ManualContext,
    *,
    rate: Decimal | None = None,
) -> CommissionSummary:
    resolved = resolve_commission_mode(mode)
    effective_rate = settings.commission_rate if rate is None else rate
    if effective_rate < 0:
        raise ValidationError('Commission rate cannot be negative')

    context_type, strategy = _STRATEGIES[resolved]
    if not isinstance(context, context_type):
        raise ValidationError(f'{resolved.value} commissions need a {context_type.__name__}')
    return CommissionSummary(lines=strategy(context, effective_rate), rate=effective_rate)


def apply_payable_to_expenses(draft, summary: CommissionSummary) -> Decimal:
    """Fold today's payable commission into the draft's employee expenses.

    Replaces whatever amount an earlier click applied, so repeating the action
    with the same summary leaves employee_expenses unchanged.
    """
    previous = draft.commission_applied or ZERO
    base = coerce_amount(draft.fields.get('employee_expenses')) - previous
    if base < ZERO:
        base = ZERO
    payable = summary.total_payable_today
    draft.fields['employee_expenses'] = quantize_money(base + payable)
    draft.commission_applied = payable
    return draft.fields['employee_expenses']
