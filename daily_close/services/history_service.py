from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import StringIO

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from daily_close.errors import PersistenceError, ValidationError
from daily_close.models import Branch, DailyRecord
from daily_close.services.reconciliation_service import ZERO, coerce_amount, quantize_money, total_outflow

UNKNOWN_BRANCH = 'Unknown'

EXPORT_HEADERS = [
    'Date',
    'Branch',
    'Narration',
    'Opening Cash',
    'Deposit Cash',
    'Cash Sales',
    'Total Sales',
    'Total Outflow',
    'Closing Cash (System)',
    'Closing Cash (Actual)',
    'Difference',
    'Status',
    'Notes',
]


@dataclass(frozen=True)
class HistoryRow:
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


def _money(value) -> Decimal:
    return quantize_money(coerce_amount(value))


def query_history(
    db: Session,
    *,
    company_id: int,
    branch_id: int | None,
    from_date: date,
    to_date: date,
) -> list[HistoryRow]:
    if from_date > to_date:
        raise ValidationError('From date must be on or before to date')

    # Calendar dates, so "<= to_date" already covers the whole last day.
    conditions = [
        DailyRecord.company_id == company_id,
        DailyRecord.record_date >= from_date,
        DailyRecord.record_date <= to_date,
    ]
    if branch_id:
        conditions.append(DailyRecord.branch_id == branch_id)

    query = (
        select(DailyRecord, Branch.name)
        .join(Branch, Branch.id == DailyRecord.branch_id, isouter=True)
        .where(and_(*conditions))
        .order_by(DailyRecord.record_date.desc(), DailyRecord.id.desc())
    )
    try:
        results = db.execute(query).all()
    except SQLAlchemyError as exc:
        raise PersistenceError('Could not load daily record history') from exc

    rows = []
    for record, branch_name in results:
        rows.append(
            HistoryRow(
                id=record.id,
                record_date=record.record_date,
                branch_id=record.branch_id,
                branch_name=branch_name or UNKNOWN_BRANCH,
                deposited_by=record.deposited_by or '',
                opening_cash=_money(record.opening_cash),
                cash_received=_money(record.cash_received),
                cash_sales=_money(record.cash_sales),
                total_sales=_money(record.total_sales),
                total_outflow=total_outflow(
                    {
                        'expenses': record.expenses,
                        'drawings': record.drawings,
                        'purchases': record.purchases,
                        'employee_expenses': record.employee_expenses,
                    }
                ),
                closing_cash_system=_money(record.closing_cash_system),
                closing_cash_actual=_money(record.closing_cash_actual),
                difference=_money(record.difference),
                status=record.status.value if hasattr(record.status, 'value') else str(record.status),
                notes=record.notes or '',
            )
        )
    return rows


def export_rows(rows: list[HistoryRow]) -> list[dict]:
    return [
        {
            'Date': row.record_date.isoformat(),
            'Branch': row.branch_name,
            'Narration': row.deposited_by,
            'Opening Cash': row.opening_cash,
            'Deposit Cash': row.cash_received,
            'Cash Sales': row.cash_sales,
            'Total Sales': row.total_sales,
            'Total Outflow': row.total_outflow,
            'Closing Cash (System)': row.closing_cash_system,
            'Closing Cash (Actual)': row.closing_cash_actual,
            'Difference': row.difference,
            'Status': row.status,
            'Notes': row.notes,
        }
        for row in rows
    ]


def summarize_history(rows: list[HistoryRow]) -> dict[str, Decimal | int]:
    return {
        'records': len(rows),
        'total_sales': quantize_money(sum((row.total_sales for row in rows), ZERO)),
        'total_outflow': quantize_money(sum((row.total_outflow for row in rows), ZERO)),
        'total_difference': quantize_money(sum((row.difference for row in rows), ZERO)),
    }


def render_history_csv(rows: list[HistoryRow]) -> str:
    sio = StringIO()
    writer = csv.DictWriter(sio, fieldnames=EXPORT_HEADERS)
    writer.writeheader()
    writer.writerows(export_rows(rows))
    return sio.getvalue()


def export_filename(from_date: date, to_date: date) -> str:
    return f'branch-records-{from_date.isoformat()}-to-{to_date.isoformat()}.csv'
