from __future__ import annotations

import argparse
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from daily_close.db import SessionLocal, engine
from daily_close.logging_config import configure_logging
from daily_close.models import (
    Base,
    Branch,
    BranchStatus,
    CommissionMode,
    Company,
    DailyRecord,
    DailyRecordStatus,
    Employee,
    Voucher,
    VoucherItem,
    VoucherStatus,
    VoucherType,
)
from daily_close.services.reconciliation_service import reconcile

DEMO_EMPLOYEES = [
    ('Amal', False),
    ('Basma', True),
    ('Dana', False),
]


def seed(*, on_date: date) -> None:
    with SessionLocal() as db:
        company = db.execute(select(Company).where(Company.name == 'Demo Salon Co')).scalar_one_or_none()
        if not company:
            company = Company(name='Demo Salon Co', commission_mode=CommissionMode.TRANSACTIONAL, active=True)
            db.add(company)
            db.flush()

        branches = {row.name: row for row in db.execute(select(Branch).where(Branch.company_id == company.id)).scalars()}
        for name, status in (('Olaya', BranchStatus.ACTIVE), ('Malaz', BranchStatus.ACTIVE), ('Old Town', BranchStatus.PERMANENTLY_CLOSED)):
            if name not in branches:
                branches[name] = Branch(company_id=company.id, name=name, status=status)
                db.add(branches[name])
        db.flush()

        employees = {row.name: row for row in db.execute(select(Employee).where(Employee.company_id == company.id)).scalars()}
        for name, is_pro in DEMO_EMPLOYEES:
            if name not in employees:
                employees[name] = Employee(company_id=company.id, name=name, is_active=True, is_dual_commission_eligible=is_pro)
                db.add(employees[name])
        db.flush()

        branch = branches['Olaya']
        has_vouchers = db.execute(
            select(Voucher.id).where(Voucher.branch_id == branch.id, Voucher.voucher_date == on_date)
        ).first()
        if not has_vouchers:
            sales = Voucher(
                company_id=company.id,
                branch_id=branch.id,
                voucher_date=on_date,
                voucher_type=VoucherType.SALES,
                status=VoucherStatus.CONFIRMED,
                net_amount=Decimal('450.00'),
            )
            db.add_all(
                [
                    sales,
                    Voucher(company_id=company.id, branch_id=branch.id, voucher_date=on_date, voucher_type=VoucherType.RECEIPT, net_amount=Decimal('200.00')),
                    Voucher(company_id=company.id, branch_id=branch.id, voucher_date=on_date, voucher_type=VoucherType.PURCHASE, net_amount=Decimal('80.00')),
                    Voucher(company_id=company.id, branch_id=branch.id, voucher_date=on_date, voucher_type=VoucherType.PAYMENT, net_amount=Decimal('35.00')),
                ]
            )
            db.flush()
            db.add_all(
                [
                    VoucherItem(voucher_id=sales.id, stock_item_name='Haircut', quantity=Decimal('3'), salesman_id=employees['Amal'].id),
                    VoucherItem(voucher_id=sales.id, stock_item_name='Colour', quantity=Decimal('2'), salesman_id=employees['Basma'].id),
                ]
            )

        yesterday = on_date - timedelta(days=1)
        previous = db.execute(
            select(DailyRecord).where(DailyRecord.branch_id == branch.id, DailyRecord.record_date == yesterday)
        ).scalar_one_or_none()
        if not previous:
            fields = {'opening_cash': Decimal('500.00'), 'cash_sales': Decimal('300.00'), 'expenses': Decimal('50.00'), 'closing_cash_actual': Decimal('750.00')}
            previous = DailyRecord(
                company_id=company.id,
                branch_id=branch.id,
                record_date=yesterday,
                status=DailyRecordStatus.CLOSED,
                opened_by='seed',
                closed_by='seed',
                **fields,
                **reconcile(fields).as_record_fields(),
            )
            db.add(previous)

        db.commit()


def main() -> None:
    parser = argparse.ArgumentParser(description='Insert demo branches, staff and vouchers')
    parser.add_argument('--date', default=date.today().isoformat(), help='Business date to seed (YYYY-MM-DD)')
    parser.add_argument('--create-tables', action='store_true', help='Create tables before seeding')
    args = parser.parse_args()

    configure_logging()
    if args.create_tables:
        Base.metadata.create_all(engine)
    seed(on_date=date.fromisoformat(args.date))
    print('Seed data inserted/verified.')


if __name__ == '__main__':
    main()
