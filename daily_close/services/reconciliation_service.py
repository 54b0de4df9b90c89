from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from daily_close.errors import ValidationError
from daily_close.models import VoucherType
from daily_close.services.transaction_source import TransactionSource, live_vouchers

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0')

INFLOW_SALES_FIELDS = ('cash_sales', 'bank_transfer', 'mada_pos', 'online_order_sales')
OUTFLOW_FIELDS = ('expenses', 'drawings', 'purchases', 'employee_expenses')
MONEY_FIELDS = (
    'opening_cash',
    'cash_received',
    'cash_sales',
    'expenses',
    'drawings',
    'purchases',
    'employee_expenses',
    'bank_transfer',
    'mada_pos',
    'online_order_sales',
    'closing_cash_actual',
)
TEXT_FIELDS = ('deposited_by', 'notes')

AUTOFILL_TARGETS: dict[VoucherType, str] = {
    VoucherType.SALES: 'cash_sales',
    VoucherType.RECEIPT: 'cash_received',
    VoucherType.PURCHASE: 'purchases',
    VoucherType.PAYMENT: 'expenses',
}
NO_VOUCHERS_NOTICE = 'No vouchers found for this date'
AUTOFILLED_NOTICE = 'Values auto-filled from system vouchers'


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def coerce_amount(value: object) -> Decimal:
    """Lenient conversion used by the live preview. Anything unusable is zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, int):
        return Decimal(value)
    raw = str(value).strip()
    if not raw:
        return ZERO
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return ZERO
    return amount if amount.is_finite() else ZERO


def parse_amount(value: object, *, field_name: str) -> Decimal:
    """Strict conversion used when a record is saved."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal('0.00')
    if isinstance(value, bool):
        raise ValidationError(f'Invalid amount for {field_name}')
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f'Invalid amount for {field_name}') from exc
    if not amount.is_finite():
        raise ValidationError(f'Invalid amount for {field_name}')
    if amount < 0:
        raise ValidationError(f'Amount cannot be negative for {field_name}')
    # Stored at cent precision; finer input would make the saved totals drift from the preview.
    if amount != amount.quantize(CENT):
        raise ValidationError(f'At most two decimal places allowed for {field_name}')
    return quantize_money(amount)


def parse_record_fields(raw: Mapping[str, object]) -> dict[str, object]:
    parsed: dict[str, object] = {name: parse_amount(raw.get(name), field_name=name) for name in MONEY_FIELDS}
    for name in TEXT_FIELDS:
        parsed[name] = str(raw.get(name) or '').strip()
    return parsed


@dataclass(frozen=True)
class Totals:
    total_sales: Decimal
    total_outflow: Decimal
    system_cash: Decimal
    difference: Decimal
    variance_counted: bool

    @property
    def display_difference(self) -> Decimal | None:
        # Hidden until the cash has actually been counted.
        return self.difference if self.variance_counted else None

    def as_record_fields(self) -> dict[str, Decimal]:
        return {
            'total_sales': self.total_sales,
            'closing_cash_system': self.system_cash,
            'difference': self.difference,
        }


def total_outflow(fields: Mapping[str, object]) -> Decimal:
    return quantize_money(sum((coerce_amount(fields.get(name)) for name in OUTFLOW_FIELDS), ZERO))


def reconcile(fields: Mapping[str, object]) -> Totals:
    values = {name: coerce_amount(fields.get(name)) for name in MONEY_FIELDS}

    sales = sum((values[name] for name in INFLOW_SALES_FIELDS), ZERO)
    outflow = sum((values[name] for name in OUTFLOW_FIELDS), ZERO)
    system_cash = values['opening_cash'] + values['cash_received'] + values['cash_sales'] - outflow
    difference = values['closing_cash_actual'] - system_cash

    return Totals(
        total_sales=quantize_money(sales),
        total_outflow=quantize_money(outflow),
        system_cash=quantize_money(system_cash),
        difference=quantize_money(difference),
        variance_counted=values['closing_cash_actual'] != ZERO,
    )


@dataclass(frozen=True)
class AutofillResult:
    suggestions: dict[str, Decimal] = field(default_factory=dict)
    voucher_count: int = 0
    notice: str = NO_VOUCHERS_NOTICE

    @property
    def found(self) -> bool:
        return self.voucher_count > 0

    def apply_to(self, fields: Mapping[str, object]) -> dict[str, object]:
        merged = dict(fields)
        merged.update(self.suggestions)
        return merged


def autofill_from_transactions(source: TransactionSource, *, branch_id: int | None, on_date: date) -> AutofillResult:
    if not branch_id:
        raise ValidationError('Select a branch')

    vouchers = live_vouchers(
        source.list_vouchers(branch_id=branch_id, on_date=on_date),
        branch_id=branch_id,
        on_date=on_date,
    )
    if not vouchers:
        logger.info('Autofill found no vouchers for branch %s on %s', branch_id, on_date.isoformat())
        return AutofillResult()

    sums = {target: ZERO for target in AUTOFILL_TARGETS.values()}
    for voucher in vouchers:
        target = AUTOFILL_TARGETS.get(voucher.voucher_type)
        if target is None:
            continue
        sums[target] += coerce_amount(voucher.net_amount)

    return AutofillResult(
        suggestions={name: quantize_money(amount) for name, amount in sums.items()},
        voucher_count=len(vouchers),
        notice=AUTOFILLED_NOTICE,
    )
