from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from daily_close.services.reconciliation_service import MONEY_FIELDS, TEXT_FIELDS

# Raw form values: blank strings and numbers are both accepted here and
# resolved by the reconciliation service.
AmountInput = Decimal | str | None


class RecordFieldsIn(BaseModel):
    opening_cash: AmountInput = None
    deposited_by: str = ''
    cash_received: AmountInput = None
    cash_sales: AmountInput = None
    expenses: AmountInput = None
    drawings: AmountInput = None
    purchases: AmountInput = None
    employee_expenses: AmountInput = None
    bank_transfer: AmountInput = None
    mada_pos: AmountInput = None
    online_order_sales: AmountInput = None
    closing_cash_actual: AmountInput = None
    notes: str = ''

    def record_fields(self) -> dict[str, object]:
        return self.model_dump(include=set(MONEY_FIELDS) | set(TEXT_FIELDS), exclude_unset=True)


class StylistEntryIn(BaseModel):
    id: int | None = None
    stylist_id: int
    service_count: int | str = 0


class DailyRecordIn(RecordFieldsIn):
    version: int | None = None
    commission_applied: Decimal | None = None
    stylist_entries: list[StylistEntryIn] | None = None
    deleted_entry_ids: list[int] = []


class CommissionRequestIn(DailyRecordIn):
    apply_to_expenses: bool = False


class TotalsOut(BaseModel):
    total_sales: Decimal
    total_outflow: Decimal
    system_cash: Decimal
    difference: Decimal
    display_difference: Decimal | None
    variance_counted: bool


class StylistEntryOut(BaseModel):
    id: int | None
    stylist_id: int
    service_count: int


class DailyRecordOut(BaseModel):
    branch_id: int
    record_date: date
    status: str
    record_id: int | None
    version: int | None
    opened_by: str | None
    closed_by: str | None
    carried_forward_from: date | None
    commission_mode: str
    commission_applied: Decimal
    fields: dict[str, Decimal | str]
    stylist_entries: list[StylistEntryOut]
    totals: TotalsOut


class AutofillOut(BaseModel):
    found: bool
    notice: str
    voucher_count: int
    suggestions: dict[str, Decimal]
    fields: dict[str, Decimal | str | None]
    totals: TotalsOut


class CommissionLineOut(BaseModel):
    employee_id: int | None
    name: str
    tier: str
    service_count: Decimal
    commission_amount: Decimal
    is_payable_today: bool


class CommissionSummaryOut(BaseModel):
    mode: str
    rate: Decimal
    lines: list[CommissionLineOut]
    total_payable_today: Decimal
    total_accrued: Decimal
    total_commission: Decimal
    employee_expenses: Decimal | None = None
    commission_applied: Decimal | None = None


class BranchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    status: str


class HistoryRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    record_date: date
    branch_id: int
    branch_name: str
    deposited_by: str
    opening_cash: Decimal
    cash_received: Decimal
    cash_sales: Decimal
    total_sales: Decimal
    total_outflow: Decimal
    closing_cash_system: Decimal
    closing_cash_actual: Decimal
    difference: Decimal
    status: str
    notes: str


class HistoryOut(BaseModel):
    from_date: date
    to_date: date
    branch_id: int | None
    rows: list[HistoryRowOut]
    summary: dict[str, Decimal | int]
