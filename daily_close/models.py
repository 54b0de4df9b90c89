from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


class BranchStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    PERMANENTLY_CLOSED = 'PERMANENTLY_CLOSED'


class DailyRecordStatus(str, Enum):
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'


class CommissionMode(str, Enum):
    TRANSACTIONAL = 'TRANSACTIONAL'
    MANUAL = 'MANUAL'


class VoucherType(str, Enum):
    SALES = 'SALES'
    PURCHASE = 'PURCHASE'
    RECEIPT = 'RECEIPT'
    PAYMENT = 'PAYMENT'
    CONTRA = 'CONTRA'
    JOURNAL = 'JOURNAL'
    CREDIT_NOTE = 'CREDIT_NOTE'
    DEBIT_NOTE = 'DEBIT_NOTE'


class VoucherStatus(str, Enum):
    DRAFT = 'DRAFT'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'


class Company(Base):
    __tablename__ = 'companies'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    commission_mode: Mapped[CommissionMode] = mapped_column(
        SQLEnum(CommissionMode, name='commission_mode'),
        nullable=False,
        default=CommissionMode.TRANSACTIONAL,
        server_default='TRANSACTIONAL',
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Branch(Base):
    __tablename__ = 'branches'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    branch_code: Mapped[str | None] = mapped_column(Text)
    status: Mapped[BranchStatus] = mapped_column(
        SQLEnum(BranchStatus, name='branch_status'), nullable=False, default=BranchStatus.ACTIVE, server_default='ACTIVE'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Employee(Base):
    __tablename__ = 'employees'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    employee_code: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    is_dual_commission_eligible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default='false'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Voucher(Base):
    __tablename__ = 'vouchers'
    __table_args__ = (Index('ix_vouchers_branch_date', 'branch_id', 'voucher_date'),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    branch_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('branches.id'), nullable=False)
    voucher_number: Mapped[str | None] = mapped_column(Text)
    voucher_date: Mapped[date] = mapped_column(Date, nullable=False)
    voucher_type: Mapped[VoucherType] = mapped_column(SQLEnum(VoucherType, name='voucher_type'), nullable=False)
    status: Mapped[VoucherStatus] = mapped_column(
        SQLEnum(VoucherStatus, name='voucher_status'),
        nullable=False,
        default=VoucherStatus.CONFIRMED,
        server_default='CONFIRMED',
    )
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class VoucherItem(Base):
    __tablename__ = 'voucher_items'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    voucher_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('vouchers.id', ondelete='CASCADE'), nullable=False)
    stock_item_name: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'), server_default='0')
    salesman_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('employees.id'))


class DailyRecord(Base):
    __tablename__ = 'daily_records'
    __table_args__ = (
        UniqueConstraint('branch_id', 'record_date', name='uq_daily_records_branch_date'),
        CheckConstraint('commission_applied >= 0', name='ck_daily_records_commission_applied_non_negative'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    branch_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('branches.id'), nullable=False)
    record_date: Mapped[date] = mapped_column(Date, nullable=False)

    opening_cash: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    deposited_by: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    cash_received: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    cash_sales: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    expenses: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    drawings: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    purchases: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    employee_expenses: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    bank_transfer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    mada_pos: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    online_order_sales: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    closing_cash_actual: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    notes: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')

    total_sales: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    closing_cash_system: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    difference: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    commission_applied: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')

    status: Mapped[DailyRecordStatus] = mapped_column(
        SQLEnum(DailyRecordStatus, name='daily_record_status'),
        nullable=False,
        default=DailyRecordStatus.OPEN,
        server_default='OPEN',
    )
    opened_by: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    closed_by: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __mapper_args__ = {'version_id_col': version}


class StylistServiceEntry(Base):
    __tablename__ = 'stylist_service_entries'
    __table_args__ = (
        CheckConstraint('service_count >= 0', name='ck_stylist_service_entries_count_non_negative'),
        Index('ix_stylist_service_entries_branch_date', 'branch_id', 'entry_date'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('branches.id'), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    stylist_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    service_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(BigInteger)
    actor_name: Mapped[str | None] = mapped_column(Text)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    branch_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('branches.id'))
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
